"""
Dynamical tendencies of the three model variants.

Each function takes the level the nonlinear terms are evaluated at (``dyn``)
and the level for the linear gravity-wave terms (``lin``; the same as ``dyn``
for explicit stepping, the old leapfrog level for semi-implicit stepping),
and returns the spectral tendencies together with the grid-point fields of
``dyn``. All functions are pure and traced once inside the model's jitted
step.

Momentum is carried as vorticity and divergence. Nonlinear terms are formed
on the grid in vector-invariant form,

    du/dt =  v (zeta + f) - ...
    dv/dt = -u (zeta + f) - ...

and returned to spectral space through `curl_grid` / `divergence_grid`.
The primitive equations follow SPEEDY's sigma-coordinate formulation.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import jax.numpy as jnp

from .boundaries import Boundaries
from .geometry import Geometry
from .parameters import Parameters
from .spectral_transform import SpectralTransform
from .variables import GridVariables, SpectralState


@dataclass(frozen=True)
class DynamicsContext:
    """Everything the tendency functions read; built once per simulation."""

    params: Parameters
    transform: SpectralTransform
    geometry: Geometry
    boundaries: Boundaries

    @property
    def dtype(self):
        return self.transform.P.dtype

    def coriolis(self) -> jnp.ndarray:
        """f per ring shaped (nlat, 1)."""
        return jnp.asarray(self.geometry.coriolis, dtype=self.dtype)[:, None]

    def column(self, name: str) -> jnp.ndarray:
        return self.geometry.column(name, self.dtype)


def _zero_tendencies(dyn: SpectralState) -> SpectralState:
    return dyn.map(jnp.zeros_like)


def _grid_variables(st: SpectralTransform, dyn: SpectralState, u, v) -> GridVariables:
    return GridVariables(
        vor_grid=st.inverse(dyn.vor),
        div_grid=st.inverse(dyn.div),
        temp_grid=st.inverse(dyn.temp),
        humid_grid=st.inverse(dyn.humid),
        pres_grid=st.inverse(dyn.pres),
        u_grid=u,
        v_grid=v,
    )


def barotropic_tendencies(ctx: DynamicsContext, dyn: SpectralState,
                          lin: SpectralState) -> Tuple[SpectralState, GridVariables]:
    """Nondivergent vorticity advection, d(zeta)/dt = -div((zeta + f) u)."""
    st = ctx.transform
    u, v = st.winds_grid(dyn.vor, jnp.zeros_like(dyn.vor))
    grid = _grid_variables(st, dyn, u, v)

    absvor = grid.vor_grid + ctx.coriolis()
    vor_tend = st.curl_grid(v * absvor, -u * absvor)

    tend = _zero_tendencies(dyn)._replace(vor=vor_tend)
    return tend, grid


def shallow_water_tendencies(ctx: DynamicsContext, dyn: SpectralState,
                             lin: SpectralState) -> Tuple[SpectralState, GridVariables]:
    """Vorticity, divergence and interface displacement of a single layer.

    ``pres`` holds the interface displacement eta; the fluid depth is
    ``layer_thickness + eta - orography``.
    """
    st = ctx.transform
    g = ctx.params.gravity
    depth = ctx.params.layer_thickness

    u, v = st.winds_grid(dyn.vor, dyn.div)
    grid = _grid_variables(st, dyn, u, v)

    absvor = grid.vor_grid + ctx.coriolis()
    u_tend = v * absvor
    v_tend = -u * absvor

    vor_tend = st.curl_grid(u_tend, v_tend)

    kinetic = st.forward(0.5 * (u * u + v * v))
    div_tend = st.divergence_grid(u_tend, v_tend) - st.laplacian(kinetic)

    h = grid.pres_grid - ctx.boundaries.orography
    pres_tend = -st.divergence_grid(u[0] * h, v[0] * h)

    # linear gravity-wave terms
    div_tend = div_tend - st.laplacian(g * lin.pres)[None]
    pres_tend = pres_tend - depth * lin.div[0]

    tend = _zero_tendencies(dyn)._replace(vor=vor_tend, div=div_tend, pres=pres_tend)
    return tend, grid


def _half_level_flux(sigdt: jnp.ndarray, x: jnp.ndarray) -> jnp.ndarray:
    """sigma_dot * (x[k+1] - x[k]) at the interior half levels, zero at top and surface."""
    flux = sigdt[1:-1] * (x[1:] - x[:-1])
    return jnp.pad(flux, [(1, 1)] + [(0, 0)] * (x.ndim - 1))


def _layer_sum(flux: jnp.ndarray) -> jnp.ndarray:
    """flux[k] + flux[k+1] for every full level."""
    return flux[1:] + flux[:-1]


def geopotential(ctx: DynamicsContext, temp: jnp.ndarray) -> jnp.ndarray:
    """Hydrostatic geopotential per level from spectral temperature (SPEEDY).

    Integrates upward from the surface geopotential, half a layer for the
    lowest level, then adds the lapse-rate correction to the zonal means of
    the interior levels.
    """
    geo = ctx.geometry
    xgeop1 = ctx.column("xgeop1")
    xgeop2 = ctx.column("xgeop2")

    bottom = ctx.boundaries.geopot_surf + xgeop1[-1] * temp[-1]
    if geo.nlev == 1:
        return bottom[None]

    increments = xgeop2[1:] * temp[1:] + xgeop1[:-1] * temp[:-1]
    upper = bottom[None] + jnp.cumsum(increments[::-1], axis=0)[::-1]
    phi = jnp.concatenate([upper, bottom[None]], axis=0)

    if geo.nlev >= 3:
        corf = jnp.asarray(geo.lapse_corf[1:-1], dtype=ctx.dtype)[:, None]
        phi = phi.at[1:-1, 0, :].add(corf * (temp[2:, 0, :] - temp[:-2, 0, :]))
    return phi


def primitive_tendencies(ctx: DynamicsContext, dyn: SpectralState,
                         lin: SpectralState) -> Tuple[SpectralState, GridVariables]:
    """Dry-dynamics primitive equations with humidity as a passive tracer.

    ``pres`` holds ln(ps / p0). Grid-point terms are SPEEDY's nonlinear
    tendencies; the linear terms around the reference temperature profile
    are added in spectral space from ``lin``.
    """
    st = ctx.transform
    R = ctx.params.R_gas
    akap = ctx.params.akap

    dsigma = ctx.column("dsigma")
    dhsr = ctx.column("dhsr")
    fsgr = ctx.column("fsgr")
    tref = ctx.column("tref")
    tref2 = ctx.column("tref2")
    tref3 = ctx.column("tref3")

    u, v = st.winds_grid(dyn.vor, dyn.div)
    grid = _grid_variables(st, dyn, u, v)

    absvor = grid.vor_grid + ctx.coriolis()
    div = grid.div_grid
    temp = grid.temp_grid
    humid = grid.humid_grid
    tgg = temp - tref

    # surface pressure
    umean = jnp.sum(dsigma * u, axis=0)
    vmean = jnp.sum(dsigma * v, axis=0)
    dmean = jnp.sum(dsigma * div, axis=0)
    px, py = st.gradient_grid(dyn.pres)
    pres_tend = st.forward(-umean * px - vmean * py)
    pres_tend = pres_tend.at[0, 0].set(0.0)

    # vertical velocity at half levels, zero at the top
    puv = (u - umean) * px + (v - vmean) * py
    zero_level = jnp.zeros_like(dmean)[None]
    sigdt = jnp.concatenate([zero_level, -jnp.cumsum(dsigma * (puv + div - dmean), axis=0)], axis=0)
    sigm = jnp.concatenate([zero_level, -jnp.cumsum(dsigma * puv, axis=0)], axis=0)

    # grid-point tendencies
    u_tend = v * absvor - tgg * R * px - _layer_sum(_half_level_flux(sigdt, u)) * dhsr
    v_tend = -u * absvor - tgg * R * py - _layer_sum(_half_level_flux(sigdt, v)) * dhsr

    temp_flux = _half_level_flux(sigdt, tgg) + _half_level_flux(sigm, jnp.broadcast_to(tref, tgg.shape))
    temp_tend = (
        tgg * div
        - _layer_sum(temp_flux) * dhsr
        + fsgr * tgg * _layer_sum(sigdt)
        + tref3 * _layer_sum(sigm)
        + akap * (temp * puv - tgg * dmean)
    )
    humid_tend = humid * div - _layer_sum(_half_level_flux(sigdt, humid)) * dhsr

    # back to spectral space
    vor_tend_s = st.curl_grid(u_tend, v_tend)
    kinetic = st.forward(0.5 * (u * u + v * v))
    div_tend_s = st.divergence_grid(u_tend, v_tend) - st.laplacian(kinetic)
    temp_tend_s = st.forward(temp_tend) + st.divergence_grid(-u * tgg, -v * tgg)
    humid_tend_s = st.forward(humid_tend) + st.divergence_grid(-u * humid, -v * humid)

    # linear terms around the reference atmosphere
    dsigma_s = dsigma.astype(lin.div.dtype)
    dmeanc = jnp.sum(dsigma_s * lin.div, axis=0)
    pres_tend = pres_tend - dmeanc
    pres_tend = pres_tend.at[0, 0].set(0.0)

    sigdtc = jnp.concatenate(
        [jnp.zeros_like(dmeanc)[None], -jnp.cumsum(dsigma_s * (lin.div - dmeanc), axis=0)], axis=0
    )
    sigdtc = sigdtc.at[-1].set(0.0)
    tref_flux = _half_level_flux(sigdtc, jnp.broadcast_to(tref, lin.temp.shape).astype(lin.temp.dtype))
    temp_tend_s = (
        temp_tend_s
        - _layer_sum(tref_flux) * dhsr
        + tref3 * _layer_sum(sigdtc)
        - tref2 * dmeanc
    )

    phi = geopotential(ctx, lin.temp)
    div_tend_s = div_tend_s - st.laplacian(phi + R * tref * lin.pres[None])

    tend = SpectralState(
        vor=vor_tend_s,
        div=div_tend_s,
        temp=temp_tend_s,
        humid=humid_tend_s,
        pres=pres_tend,
    )
    return tend, grid
