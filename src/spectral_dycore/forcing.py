"""
Forcing modules.

A forcing module adds to the spectral tendencies in ``diagn.tendencies``
once per tendency evaluation:

    module = module.initialize(model)            # once, before the run
    module.forcing(diagn, progn, model, lf)       # every evaluation

``lf`` is the leapfrog level the dynamics were evaluated at. Modules must
only rebind the tendency arrays; prognostic variables and other modules
are read-only. Any state carried across steps (random keys, autoregressive
coefficients) lives on the module itself.
"""
from __future__ import annotations

import abc
import logging
import math
import warnings
from datetime import timedelta
from typing import Optional, Union

import numpy as np

import jax
import jax.numpy as jnp

from .spectral import each_harmonic

_LOGGER = logging.getLogger(__name__)

_WARNED = set()

TimeScale = Union[timedelta, float]


def _warn_once(msg: str) -> None:
    """Emit a one-time warning through both logging and `warnings`."""
    if msg in _WARNED:
        return
    _WARNED.add(msg)
    _LOGGER.warning(msg)
    warnings.warn(msg, UserWarning, stacklevel=3)


def seconds(time_scale: TimeScale) -> float:
    """Time scale in seconds from a `timedelta` or a number of seconds."""
    if isinstance(time_scale, timedelta):
        return time_scale.total_seconds()
    return float(time_scale)


class AbstractForcing(abc.ABC):
    """Base class of all forcing modules."""

    def initialize(self, model) -> "AbstractForcing":
        return self

    @abc.abstractmethod
    def forcing(self, diagn, progn, model, lf: int) -> None:
        """Add this module's contribution to ``diagn.tendencies``."""


class NoForcing(AbstractForcing):
    def forcing(self, diagn, progn, model, lf: int) -> None:
        return None


class StochasticStirring(AbstractForcing):
    """
    AR(1) stirring of the surface-layer vorticity (Vallis et al. 2004).

    Every call the stirring pattern S is updated for the harmonics with
    ``lmin <= l <= lmax`` and ``mmin <= m <= mmax``,

        S <- a Q + b S,   a = A sqrt(1 - exp(-2 dt/tau)),   b = exp(-dt/tau)

    with Q uniform in the unit complex square, then confined to a latitude
    band by a Gaussian mask exp(-2 (lat - latitude)^2 / width^2) applied in
    grid space. ``strength`` is A in 1/s^2, unscaled.
    """

    def __init__(
        self,
        decorrelation_time: TimeScale = timedelta(days=2),
        strength: float = 1e-11,
        latitude: float = 45.0,
        width: float = 24.0,
        lmin: int = 8,
        lmax: Optional[int] = None,
        mmin: int = 4,
        mmax: Optional[int] = None,
        seed: int = 0,
    ):
        self.decorrelation_time = decorrelation_time
        self.strength = float(strength)
        self.latitude = float(latitude)
        self.width = float(width)
        self.lmin = int(lmin)
        self.lmax = lmax
        self.mmin = int(mmin)
        self.mmax = mmax
        self.seed = int(seed)

        # set by initialize
        self.a = 0.0
        self.b = 0.0
        self.mask = None
        self.lat_mask = None
        self.S = None
        self.key = None
        self._update = None

    def initialize(self, model) -> "StochasticStirring":
        st = model.transform
        lmax = st.lmax if self.lmax is None else int(self.lmax)
        mmax = st.mmax if self.mmax is None else int(self.mmax)
        if lmax > st.lmax or mmax > st.mmax:
            _warn_once(
                f"Stochastic stirring up to l={lmax}, m={mmax} exceeds T{st.lmax}; "
                f"stirring is limited to the model truncation."
            )
            lmax, mmax = min(lmax, st.lmax), min(mmax, st.mmax)

        dt = float(model.params.dt)
        tau = seconds(self.decorrelation_time)
        self.a = self.strength * math.sqrt(1.0 - math.exp(-2.0 * dt / tau))
        self.b = math.exp(-dt / tau)

        mask = np.zeros(st.spectral_shape, dtype=bool)
        for l, m in each_harmonic(st.lmax, st.mmax):
            if self.lmin <= l <= lmax and self.mmin <= m <= mmax:
                mask[m, l] = True
        self.mask = jnp.asarray(mask)

        latd = np.asarray(st.grid.latd)
        lat_mask = np.exp(-2.0 * (self.latitude - latd) ** 2 / self.width**2)
        self.lat_mask = jnp.asarray(lat_mask[:, None], dtype=st.P.dtype)

        self.S = st.zeros_spectral()
        self.key = jax.random.PRNGKey(self.seed)
        self._update = self._build_update(st)
        _LOGGER.debug("Stochastic stirring of %d harmonics, a=%.3g, b=%.5f",
                      int(mask.sum()), self.a, self.b)
        return self

    def _build_update(self, st):
        a, b = self.a, self.b
        mask, lat_mask = self.mask, self.lat_mask
        rdtype, cdtype = st.P.dtype, st.complex_dtype

        @jax.jit
        def update(key, S):
            kr, ki = jax.random.split(key)
            Q = (
                jax.random.uniform(kr, S.shape, dtype=rdtype, minval=-1.0, maxval=1.0)
                + 1j * jax.random.uniform(ki, S.shape, dtype=rdtype, minval=-1.0, maxval=1.0)
            ).astype(cdtype)
            S = jnp.where(mask, a * Q + b * S, S)
            stir = st.forward(st.inverse(S) * lat_mask)
            return S, stir

        return update

    def forcing(self, diagn, progn, model, lf: int) -> None:
        self.key, subkey = jax.random.split(self.key)
        self.S, stir = self._update(subkey, self.S)
        k = diagn.surface
        tend = diagn.tendencies
        tend.vor_tend = tend.vor_tend.at[k].add(stir)


class InterfaceRelaxation(AbstractForcing):
    """Newtonian relaxation of the shallow water interface displacement.

        d(eta)/dt += -(eta - eta_eq) / time_scale
        eta_eq = height * (1 - 3 sin(lat)^2) / 2

    a zero-mean equator-to-pole contrast of 1.5 ``height``.
    """

    def __init__(self, time_scale: TimeScale = timedelta(hours=96), height: float = 70.0):
        self.time_scale = time_scale
        self.height = float(height)
        self.eta_eq = None

    def initialize(self, model) -> "InterfaceRelaxation":
        st = model.transform
        mu = np.asarray(st.grid.sinlat)[:, None]
        eta_eq = 0.5 * self.height * (1.0 - 3.0 * mu**2) * np.ones(st.grid.shape)
        self.eta_eq = st.forward(jnp.asarray(eta_eq, dtype=st.P.dtype))
        return self

    def forcing(self, diagn, progn, model, lf: int) -> None:
        rate = 1.0 / seconds(self.time_scale)
        tend = diagn.tendencies
        tend.pres_tend = tend.pres_tend - rate * (progn.pres[lf] - self.eta_eq)


class TemperatureRelaxation(AbstractForcing):
    """Held and Suarez (1994) temperature relaxation for the primitive equations.

        T_eq = max(200, [315 - dT_y sin^2(lat) - dtheta_z ln(p/p0) cos^2(lat)] (p/p0)^kappa)
        k_T  = k_a + (k_s - k_a) max(0, (sigma - sigma_b)/(1 - sigma_b)) cos^4(lat)

    Evaluated in grid space on the temperature and surface pressure of the
    level the dynamics were evaluated at.
    """

    def __init__(
        self,
        temp_equator: float = 315.0,
        temp_min: float = 200.0,
        delta_temp_y: float = 60.0,
        delta_theta_z: float = 10.0,
        sigma_b: float = 0.7,
        relax_time_slow: TimeScale = timedelta(days=40),
        relax_time_fast: TimeScale = timedelta(days=4),
    ):
        self.temp_equator = float(temp_equator)
        self.temp_min = float(temp_min)
        self.delta_temp_y = float(delta_temp_y)
        self.delta_theta_z = float(delta_theta_z)
        self.sigma_b = float(sigma_b)
        self.relax_time_slow = relax_time_slow
        self.relax_time_fast = relax_time_fast
        self._tendency = None

    def initialize(self, model) -> "TemperatureRelaxation":
        st = model.transform
        dtype = st.P.dtype
        akap = float(model.params.akap)

        sigma = model.geometry.sigma_full[:, None, None]
        mu = np.asarray(st.grid.sinlat)[None, :, None]
        cos2 = 1.0 - mu**2

        ka = 1.0 / seconds(self.relax_time_slow)
        ks = 1.0 / seconds(self.relax_time_fast)
        kT = ka + (ks - ka) * np.maximum(0.0, (sigma - self.sigma_b) / (1.0 - self.sigma_b)) * cos2**2
        kT = jnp.asarray(kT, dtype=dtype)
        sigma = jnp.asarray(sigma, dtype=dtype)
        mu2 = jnp.asarray(mu**2, dtype=dtype)
        cos2 = jnp.asarray(cos2, dtype=dtype)
        t0, tmin = self.temp_equator, self.temp_min
        dty, dthz = self.delta_temp_y, self.delta_theta_z

        @jax.jit
        def tendency(temp_grid, pres_grid):
            lnp = jnp.log(sigma) + pres_grid[None]
            temp_eq = (t0 - dty * mu2 - dthz * lnp * cos2) * jnp.exp(akap * lnp)
            temp_eq = jnp.maximum(tmin, temp_eq)
            return st.forward(-kT * (temp_grid - temp_eq))

        self._tendency = tendency
        return self

    def forcing(self, diagn, progn, model, lf: int) -> None:
        tend = diagn.tendencies
        tend.temp_tend = tend.temp_tend + self._tendency(diagn.grid.temp_grid, diagn.grid.pres_grid)
