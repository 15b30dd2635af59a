"""Semi-implicit treatment of the linear gravity-wave terms.

The explicit tendencies arrive with the linear terms evaluated at the old
time level. The correction replaces them by the alpha-weighted average of
old and new level, which amounts to a linear solve per spherical-harmonic
degree:

  - shallow water: a scalar equation per degree;
  - primitive equations: an nlev x nlev system per degree (SPEEDY's
    vertical-mode matrices).

Coefficients depend on the effective step ``dt_eff`` (dt/2 for the initial
Euler step, dt for the first leapfrog, 2 dt afterwards) only through
``xi = alpha * dt_eff``; one set is precomputed per effective step.
"""
from __future__ import annotations

from typing import NamedTuple

import numpy as np

import jax.numpy as jnp

from .geometry import Geometry
from .parameters import Parameters
from .spectral_transform import SpectralTransform
from .variables import SpectralState


class ShallowWaterImplicit(NamedTuple):
    """Per-degree coefficients for one effective time step."""

    xi: jnp.ndarray       # alpha * dt_eff
    g_ll1: jnp.ndarray    # g l(l+1)/R^2, (mmax+1, lmax+2)
    denom: jnp.ndarray    # 1 + xi^2 g H l(l+1)/R^2
    depth: jnp.ndarray    # H, layer thickness


class PrimitiveImplicit(NamedTuple):
    """Vertical-mode matrices for one effective time step."""

    xd: jnp.ndarray       # (nlev, nlev) geopotential from temperature
    xc: jnp.ndarray       # (nlev, nlev) temperature from divergence, times xi
    xj: jnp.ndarray       # (lmax+2, nlev, nlev) inverse of the per-degree operator
    tref1: jnp.ndarray    # (nlev,) R tref
    dhsx: jnp.ndarray     # (nlev,) xi dsigma
    elz: jnp.ndarray      # (mmax+1, lmax+2) xi l(l+1)/R^2


def shallow_water_coefficients(params: Parameters, transform: SpectralTransform,
                               dt_eff: float) -> ShallowWaterImplicit:
    dtype = transform.P.dtype
    xi = float(params.alpha) * float(dt_eff)
    k = transform.ll1 / transform.radius**2
    return ShallowWaterImplicit(
        xi=jnp.asarray(xi, dtype=dtype),
        g_ll1=(params.gravity * k).astype(dtype),
        denom=(1.0 + xi * xi * params.gravity * params.layer_thickness * k).astype(dtype),
        depth=jnp.asarray(params.layer_thickness, dtype=dtype),
    )


def apply_shallow_water(coeffs: ShallowWaterImplicit, tend: SpectralState) -> SpectralState:
    """Implicitly correct the divergence and interface tendencies."""
    div_t = tend.div[0]
    eta_t = tend.pres
    new_div = (div_t + coeffs.xi * coeffs.g_ll1 * eta_t) / coeffs.denom
    new_eta = eta_t - coeffs.xi * coeffs.depth * new_div
    return tend._replace(div=new_div[None], pres=new_eta)


def vertical_matrices(geometry: Geometry, akap: float, R: float):
    """SPEEDY's xc (temperature response to divergence) and xd (geopotential
    response to temperature), before scaling by xi.
    """
    tref = geometry.tref
    dhs = geometry.dsigma
    fsg = geometry.sigma_full
    hsg = geometry.sigma_half
    nlev = geometry.nlev

    ya = -akap * np.outer(tref, dhs)

    xa = np.zeros((nlev, nlev))
    k = np.arange(1, nlev)
    xa[k, k - 1] = 0.5 * (akap * tref[k] / fsg[k] - (tref[k] - tref[k - 1]) / dhs[k])
    k = np.arange(nlev - 1)
    xa[k, k] = 0.5 * (akap * tref[k] / fsg[k] - (tref[k + 1] - tref[k]) / dhs[k])

    dsum = np.cumsum(dhs)
    xb = np.zeros((nlev, nlev))
    rows = np.arange(nlev - 1)[:, None]
    cols = np.arange(nlev)[None, :]
    xb[: nlev - 1, :] = dhs[cols] * dsum[rows] - np.where(cols <= rows, dhs[cols], 0.0)

    xc = ya + xa @ xb

    xd = np.zeros((nlev, nlev))
    kk, jj = np.meshgrid(np.arange(nlev), np.arange(nlev), indexing="ij")
    upper = jj > kk
    xd[upper] = R * np.log(hsg[jj[upper] + 1] / hsg[jj[upper]])
    xd[np.arange(nlev), np.arange(nlev)] = R * np.log(hsg[1:] / fsg)
    return xc, xd


def primitive_coefficients(params: Parameters, transform: SpectralTransform,
                           geometry: Geometry, dt_eff: float) -> PrimitiveImplicit:
    dtype = transform.P.dtype
    R = float(params.R_gas)
    radius = transform.radius
    xi = float(params.alpha) * float(dt_eff)
    nlev = geometry.nlev

    xc, xd = vertical_matrices(geometry, float(params.akap), R)
    xe = xd @ xc

    degrees = np.arange(transform.lmax + 2, dtype=np.float64)
    xxx = degrees * (degrees + 1.0) / radius**2
    coupling = np.outer(R * geometry.tref, geometry.dsigma) - xe
    xf = np.eye(nlev)[None] + xi * xi * xxx[:, None, None] * coupling[None]
    xj = np.linalg.inv(xf)

    return PrimitiveImplicit(
        xd=jnp.asarray(xd, dtype=dtype),
        xc=jnp.asarray(xi * xc, dtype=dtype),
        xj=jnp.asarray(xj, dtype=dtype),
        tref1=jnp.asarray(geometry.tref1, dtype=dtype),
        dhsx=jnp.asarray(xi * geometry.dsigma, dtype=dtype),
        elz=(xi * transform.ll1 / radius**2).astype(dtype),
    )


def apply_primitive(coeffs: PrimitiveImplicit, tend: SpectralState) -> SpectralState:
    """Implicitly correct divergence, temperature and log surface pressure tendencies."""
    ye = jnp.einsum("kj,jml->kml", coeffs.xd, tend.temp) + coeffs.tref1[:, None, None] * tend.pres[None]
    yf = tend.div + coeffs.elz[None] * ye
    div = jnp.einsum("lkj,jml->kml", coeffs.xj, yf)
    div = div.at[:, 0, 0].set(0.0)
    pres = tend.pres - jnp.einsum("k,kml->ml", coeffs.dhsx, div)
    temp = tend.temp + jnp.einsum("kj,jml->kml", coeffs.xc, div)
    return tend._replace(div=div, temp=temp, pres=pres)
