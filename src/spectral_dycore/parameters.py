"""Model configuration.

`Parameters` is an immutable snapshot of everything the dynamical core needs
to know before a run: resolution, physical constants, the reference
atmosphere, diffusion time scales and time-stepping settings. Invalid
combinations are rejected in ``__post_init__`` with a `ConfigurationError`,
so nothing downstream has to re-check them.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConfigurationError

# Semi-implicit coefficients: explicit, centred implicit, backward implicit.
ALLOWED_ALPHA = (0.0, 0.5, 1.0)


def min_nlat(trunc: int) -> int:
    """Smallest number of Gaussian latitudes that keeps quadratic terms alias-free."""
    return int(math.ceil((3 * trunc + 1) / 2))


def min_nlon(trunc: int) -> int:
    """Smallest number of longitudes that keeps quadratic terms alias-free."""
    return 3 * trunc + 1


def default_nlat(trunc: int) -> int:
    """Even number of latitudes satisfying the anti-aliasing rule for ``trunc``."""
    nlat = min_nlat(trunc)
    return nlat + (nlat % 2)


@dataclass(frozen=True)
class GenLogisticCoefs:
    """Generalised logistic function coefficients for the sigma half levels.

    Defaults are a fit to the ECMWF L31 configuration; see
    `geometry.sigma_half_levels`.
    """

    A: float = -0.283
    K: float = 0.871
    C: float = 0.414
    Q: float = 6.695
    B: float = 10.336
    M: float = 0.602
    nu: float = 5.812


@dataclass(frozen=True)
class Parameters:
    """Configuration snapshot with documented defaults.

    ``None`` defaults are derived: ``nlat`` from the anti-aliasing rule,
    ``nlon = 2*nlat``, ``R_gas = akap*cp`` and ``dt = 86400/nstepsday``.
    """

    # resolution
    trunc: int = 30
    nlat: Optional[int] = None
    nlon: Optional[int] = None
    nlev: int = 8

    # physical constants
    radius: float = 6.371e6          # [m]
    rotation: float = 7.292e-5       # [1/s]
    gravity: float = 9.81            # [m/s^2]
    akap: float = 2.0 / 7.0          # R/cp
    cp: float = 1004.0               # [J/K/kg]
    R_gas: Optional[float] = None    # [J/K/kg]

    # standard atmosphere
    gamma: float = 6.0               # lapse rate [K/km]
    temp_ref: float = 288.0          # surface reference temperature [K]
    temp_top: float = 216.0          # stratospheric temperature [K]
    hscale: float = 7.5              # pressure scale height [km]
    p0: float = 1e5                  # reference pressure [Pa]
    pres_ref: float = 1013.0         # reference surface pressure [hPa]
    hshum: float = 2.5               # humidity scale height [km]
    rh_ref: float = 0.7              # near-surface relative humidity
    es_ref: float = 17.0             # saturation vapour pressure [hPa]

    # shallow water
    layer_thickness: float = 8500.0  # [m]

    # vertical coordinate
    GLcoefs: GenLogisticCoefs = field(default_factory=GenLogisticCoefs)

    # horizontal diffusion
    horizontal_diffusion: bool = True
    npowhd: float = 4.0              # power of the Laplacian
    thd: float = 2.4                 # [hrs] vorticity, temperature
    thdd: float = 2.4                # [hrs] divergence, humidity
    thds: float = 12.0               # [hrs] extra del^2 in the stratosphere
    tdrs: float = 24.0 * 30.0        # [hrs] stratospheric zonal-mean drag

    # time stepping
    nstepsday: int = 36
    dt: Optional[float] = None       # [s]
    ndays: float = 10.0
    robert_filter: float = 0.05
    williams_filter: float = 0.53
    alpha: float = 0.5

    def __post_init__(self) -> None:
        if int(self.trunc) < 1:
            raise ConfigurationError(f"trunc must be positive, got {self.trunc!r}")
        if int(self.nlev) < 1:
            raise ConfigurationError(f"nlev must be positive, got {self.nlev!r}")
        if int(self.nstepsday) < 1:
            raise ConfigurationError(f"nstepsday must be positive, got {self.nstepsday!r}")

        # frozen dataclass: derived defaults are filled in via object.__setattr__
        if self.nlat is None:
            object.__setattr__(self, "nlat", default_nlat(self.trunc))
        if self.nlon is None:
            object.__setattr__(self, "nlon", 2 * self.nlat)
        if self.R_gas is None:
            object.__setattr__(self, "R_gas", self.akap * self.cp)
        if self.dt is None:
            object.__setattr__(self, "dt", 86400.0 / self.nstepsday)

        if float(self.alpha) not in ALLOWED_ALPHA:
            raise ConfigurationError(
                f"Only semi-implicit alpha = 0, 0.5 or 1 allowed, got {self.alpha!r}"
            )
        if self.nlat < min_nlat(self.trunc) or self.nlon < min_nlon(self.trunc):
            raise ConfigurationError(
                f"Grid nlat={self.nlat}, nlon={self.nlon} aliases quadratic terms at "
                f"T{self.trunc}; need nlat >= {min_nlat(self.trunc)} and "
                f"nlon >= {min_nlon(self.trunc)}"
            )
        if not float(self.dt) > 0.0:
            raise ConfigurationError(f"dt must be positive, got {self.dt!r}")
        for name in ("robert_filter", "williams_filter"):
            value = float(getattr(self, name))
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must lie in [0, 1], got {value!r}")
        for name in ("thd", "thdd", "thds", "tdrs"):
            if not float(getattr(self, name)) > 0.0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)!r}")

    @property
    def lmax(self) -> int:
        return int(self.trunc)

    @property
    def mmax(self) -> int:
        return int(self.trunc)

    @property
    def n_steps(self) -> int:
        """Number of time steps covering ``ndays``."""
        return int(round(self.ndays * 86400.0 / self.dt))

