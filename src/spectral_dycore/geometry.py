"""Vertical coordinate, reference atmosphere and per-ring constants.

Sigma half levels follow a generalised logistic fit to ECMWF's L31
configuration; everything else (reference temperature, hydrostatic
geopotential weights, orographic temperature correction) follows SPEEDY.
All arrays are built on the host with NumPy and handed to JAX as constants.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

import jax.numpy as jnp

from .grids import FullGaussianGrid
from .parameters import GenLogisticCoefs, Parameters


def generalised_logistic(x: np.ndarray, coefs: GenLogisticCoefs) -> np.ndarray:
    """Y(x) = A + (K - A) / (C + Q exp(-B (x - M)))^(1/nu)."""
    return coefs.A + (coefs.K - coefs.A) / (
        coefs.C + coefs.Q * np.exp(-coefs.B * (x - coefs.M))
    ) ** (1.0 / coefs.nu)


def sigma_half_levels(nlev: int, coefs: GenLogisticCoefs = GenLogisticCoefs()) -> np.ndarray:
    """Sigma at the nlev+1 layer interfaces, 0 at the top and 1 at the surface."""
    z = np.linspace(0.0, 1.0, int(nlev) + 1)
    sigma = generalised_logistic(z, coefs)
    sigma = sigma - sigma[0]
    return sigma / sigma[-1]


@dataclass(frozen=True)
class Geometry:
    """Static per-level and per-ring constants for one model configuration.

    Levels are ordered top to bottom. ``dsigma`` is the layer thickness in
    sigma; ``tref`` is the reference temperature profile used by the
    semi-implicit scheme, with the derived ``tref1 = R tref``,
    ``tref2 = akap tref`` and ``tref3 = akap/(2 sigma) tref``.
    """

    nlev: int
    sigma_half: np.ndarray
    sigma_full: np.ndarray
    dsigma: np.ndarray
    dhsr: np.ndarray
    fsgr: np.ndarray
    rgam: float
    tref: np.ndarray
    tref1: np.ndarray
    tref2: np.ndarray
    tref3: np.ndarray
    xgeop1: np.ndarray
    xgeop2: np.ndarray
    lapse_corf: np.ndarray
    tcorv: np.ndarray
    coriolis: np.ndarray    # (nlat,) 2 Omega sin(lat)

    @classmethod
    def from_parameters(cls, params: Parameters, grid: FullGaussianGrid) -> "Geometry":
        nlev = int(params.nlev)
        R = float(params.R_gas)
        akap = float(params.akap)

        hsg = sigma_half_levels(nlev, params.GLcoefs)
        fsg = 0.5 * (hsg[1:] + hsg[:-1])
        dhs = np.diff(hsg)

        rgam = R * params.gamma / (1000.0 * params.gravity)
        tref = params.temp_ref * np.maximum(0.2, fsg) ** rgam
        fsgr = akap / (2.0 * fsg)

        # hydrostatic integration weights
        xgeop1 = R * np.log(hsg[1:] / fsg)
        xgeop2 = np.zeros(nlev)
        xgeop2[1:] = R * np.log(fsg[1:] / hsg[1:-1])

        # lapse-rate correction of the zonal-mean geopotential, interior levels only
        corf = np.zeros(nlev)
        if nlev >= 3:
            k = np.arange(1, nlev - 1)
            corf[k] = (
                xgeop1[k] * 0.5 * np.log(hsg[k + 1] / fsg[k])
                / np.log(fsg[k + 1] / fsg[k - 1])
            )

        tcorv = np.where(np.arange(nlev) >= 1, fsg**rgam, 0.0)

        return cls(
            nlev=nlev,
            sigma_half=hsg,
            sigma_full=fsg,
            dsigma=dhs,
            dhsr=0.5 / dhs,
            fsgr=fsgr,
            rgam=float(rgam),
            tref=tref,
            tref1=R * tref,
            tref2=akap * tref,
            tref3=fsgr * tref,
            xgeop1=xgeop1,
            xgeop2=xgeop2,
            lapse_corf=corf,
            tcorv=tcorv,
            coriolis=2.0 * params.rotation * grid.sinlat,
        )

    def column(self, name: str, dtype) -> jnp.ndarray:
        """A per-level constant shaped (nlev, 1, 1) for broadcasting against fields."""
        return jnp.asarray(getattr(self, name), dtype=dtype)[:, None, None]
