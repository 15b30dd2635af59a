"""
Filters needed for numerical stability: the Robert-Williams time filter of
the leapfrog scheme and SPEEDY's implicit horizontal diffusion.
"""
from __future__ import annotations

from typing import NamedTuple, Optional, Tuple

import numpy as np

import jax
import jax.numpy as jnp

from .geometry import Geometry
from .parameters import Parameters
from .spectral_transform import SpectralTransform
from .variables import SpectralState


def robert_williams_filter(
    old: jnp.ndarray,
    curr: jnp.ndarray,
    new: jnp.ndarray,
    robert: float,
    williams: float,
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Applies the Robert-Asselin-Williams filter (Williams 2009, Amezcua 2011).

    The filter displacement D = robert/2 * (old - 2 curr + new) is split
    between the current level (fraction ``williams``) and the new level
    (fraction ``1 - williams``); ``williams = 1`` gives the classic
    Robert-Asselin filter.

    Returns: (filtered current, filtered new)
    """
    d = 0.5 * robert * (old - 2.0 * curr + new)
    return curr + williams * d, new - (1.0 - williams) * d


def filter_states(
    old: SpectralState,
    curr: SpectralState,
    new: SpectralState,
    robert: float,
    williams: float,
) -> Tuple[SpectralState, SpectralState]:
    """`robert_williams_filter` over every prognostic variable."""
    pairs = [robert_williams_filter(o, c, n, robert, williams) for o, c, n in zip(old, curr, new)]
    return SpectralState(*(p[0] for p in pairs)), SpectralState(*(p[1] for p in pairs))


class HorizontalDiffusion(NamedTuple):
    """Damping rates [1/s] per spectral coefficient, broadcast to (nlev, mmax+1, lmax+2).

    ``dmp`` acts on vorticity and temperature, ``dmpd`` on divergence and
    humidity, ``dmps`` is the extra del^2 damping of the top (stratospheric)
    level and ``sdrag`` the drag on its zonal mean. ``tcor`` is the orographic
    correction added to temperature before it is damped.
    """

    dmp: jnp.ndarray
    dmpd: jnp.ndarray
    dmps: jnp.ndarray
    sdrag: jnp.ndarray
    tcor: jnp.ndarray


def damping_coefficients(params: Parameters, lmax: int, mmax: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Computes the diffusion rates of SPEEDY's horizontal_diffusion.

        dmp  = 1/thd  * (l(l+1) / (T(T+1)))^(npowhd/2)
        dmpd = 1/thdd * (l(l+1) / (T(T+1)))^(npowhd/2)
        dmps = 1/thds *  l(l+1) / (T(T+1))

    with the time scales converted from hours to seconds.
    """
    trunc = float(params.trunc)
    l = np.arange(lmax + 2, dtype=np.float64)
    elap = l * (l + 1.0) / (trunc * (trunc + 1.0))
    elapn = elap ** (0.5 * params.npowhd)
    shape = (mmax + 1, lmax + 2)
    dmp = np.broadcast_to(elapn / (params.thd * 3600.0), shape)
    dmpd = np.broadcast_to(elapn / (params.thdd * 3600.0), shape)
    dmps = np.broadcast_to(elap / (params.thds * 3600.0), shape)
    return dmp, dmpd, dmps


def horizontal_diffusion(
    params: Parameters,
    transform: SpectralTransform,
    nlev: int,
    *,
    stratosphere: bool = False,
    geometry: Optional[Geometry] = None,
    orography_spec: Optional[jnp.ndarray] = None,
) -> HorizontalDiffusion:
    """Build the diffusion coefficients for a model with ``nlev`` levels.

    With ``stratosphere`` the top level also gets the del^2 damping and the
    zonal-mean drag. The temperature correction needs both ``geometry`` and
    ``orography_spec``; without them it is zero. When
    ``params.horizontal_diffusion`` is off every rate is zero.
    """
    dtype = transform.P.dtype
    lmax, mmax = transform.lmax, transform.mmax
    shape = (nlev, mmax + 1, lmax + 2)
    zeros = np.zeros(shape)

    if not params.horizontal_diffusion:
        z = jnp.asarray(zeros, dtype=dtype)
        return HorizontalDiffusion(z, z, z, z, transform.zeros_spectral(nlev))

    dmp, dmpd, dmps = damping_coefficients(params, lmax, mmax)
    dmp3 = np.broadcast_to(dmp, shape)
    dmpd3 = np.broadcast_to(dmpd, shape)

    dmps3 = zeros.copy()
    sdrag3 = zeros.copy()
    if stratosphere and nlev > 1:
        dmps3[0] = dmps
        sdrag3[0, 0, :] = 1.0 / (params.tdrs * 3600.0)

    tcor = transform.zeros_spectral(nlev)
    if geometry is not None and orography_spec is not None:
        tcorh = (params.gamma / 1000.0) * orography_spec
        tcor = geometry.column("tcorv", dtype) * tcorh[None]
        tcor = transform.spectral_truncation(tcor)

    return HorizontalDiffusion(
        dmp=jnp.asarray(dmp3, dtype=dtype),
        dmpd=jnp.asarray(dmpd3, dtype=dtype),
        dmps=jnp.asarray(dmps3, dtype=dtype),
        sdrag=jnp.asarray(sdrag3, dtype=dtype),
        tcor=tcor,
    )


def _implicit_damp(tend: jnp.ndarray, x: jnp.ndarray, rate: jnp.ndarray, dt_eff) -> jnp.ndarray:
    """Backward-implicit damping: (tend - rate * x) / (1 + rate * dt_eff)."""
    return (tend - rate * x) / (1.0 + rate * dt_eff)


def apply_diffusion(
    coeffs: HorizontalDiffusion,
    tend: SpectralState,
    old: SpectralState,
    dt_eff,
) -> SpectralState:
    """
    Adds horizontal diffusion to the tendencies, relative to the level ``old``
    the step starts from.

    Order follows SPEEDY: primary diffusion, stratospheric zonal-mean drag,
    stratospheric del^2 diffusion. Surface pressure is not diffused.
    """
    temp_c = old.temp + coeffs.tcor

    vor = _implicit_damp(tend.vor, old.vor, coeffs.dmp, dt_eff)
    div = _implicit_damp(tend.div, old.div, coeffs.dmpd, dt_eff)
    temp = _implicit_damp(tend.temp, temp_c, coeffs.dmp, dt_eff)
    humid = _implicit_damp(tend.humid, old.humid, coeffs.dmpd, dt_eff)

    vor = vor - coeffs.sdrag * old.vor
    div = div - coeffs.sdrag * old.div

    vor = _implicit_damp(vor, old.vor, coeffs.dmps, dt_eff)
    div = _implicit_damp(div, old.div, coeffs.dmps, dt_eff)
    temp = _implicit_damp(temp, temp_c, coeffs.dmps, dt_eff)

    return tend._replace(vor=vor, div=div, temp=temp, humid=humid)


@jax.jit
def all_finite(state: SpectralState) -> jnp.ndarray:
    """True if no NaN or Inf is present anywhere in ``state``."""
    return jnp.all(jnp.stack([jnp.all(jnp.isfinite(x)) for x in state]))
