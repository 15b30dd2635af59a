"""
Initial conditions.

Each class describes how to fill the prognostic variables; `state(model)`
is called by `model.initialize` once the spectral transform, geometry and
boundaries exist and returns one `SpectralState`, used for both leapfrog
levels. Fields are formed on the grid and transformed, so that analytic
states are band-limited to the model truncation by construction.
"""
from __future__ import annotations

import logging
import math

import numpy as np

import jax.numpy as jnp

from .errors import ConfigurationError
from .spectral import triangular_mask
from .variables import SpectralState

_LOGGER = logging.getLogger(__name__)


def _forward_levels(transform, grid_field: np.ndarray, nlev: int) -> jnp.ndarray:
    """Forward transform of a 2-D grid field, repeated on ``nlev`` levels."""
    spec = transform.forward(jnp.asarray(grid_field, dtype=transform.P.dtype))
    return jnp.broadcast_to(spec, (nlev,) + spec.shape)


class StartFromRest:
    """No motion. The primitive model gets the reference atmosphere.

    Barotropic and shallow water: every field zero. Primitive equations:
    temperature follows the reference lapse rate above the orography with an
    isothermal stratosphere, surface pressure is in hydrostatic balance with
    the orography and humidity decays with the humidity scale height.
    """

    def state(self, model) -> SpectralState:
        transform = model.transform
        state = SpectralState.zeros(transform, model.nlev)
        if model.kind != "primitive":
            return state
        return self._reference_atmosphere(model, state)

    @staticmethod
    def _reference_atmosphere(model, state: SpectralState) -> SpectralState:
        params = model.params
        st = model.transform
        geo = model.geometry
        phis = model.boundaries.geopot_surf

        gam1 = params.gamma / (1000.0 * params.gravity)
        rgam = geo.rgam
        sigma = geo.sigma_full
        sqrt2 = math.sqrt(2.0)

        # temperature: lapse rate in the troposphere, temp_top above
        surfs = (-gam1 * phis).at[0, 0].add(sqrt2 * params.temp_ref)
        strat = st.zeros_spectral().at[0, 0].set(sqrt2 * params.temp_top)
        troposphere = params.temp_ref * sigma**rgam >= params.temp_top
        temp = jnp.stack([
            surfs * float(sigma[k] ** rgam) if troposphere[k] else strat
            for k in range(geo.nlev)
        ])

        # log surface pressure in hydrostatic balance with the orography
        phis_grid = st.inverse(phis)
        lnps_ref = math.log(params.pres_ref * 100.0 / params.p0)
        lnps = lnps_ref + jnp.log(1.0 - gam1 / params.temp_ref * phis_grid) / rgam
        pres = st.spectral_truncation(st.forward(lnps))

        # specific humidity [g/kg] from the reference relative humidity
        qref = params.rh_ref * 0.622 * params.es_ref
        qexp = params.hscale / params.hshum
        surfq = st.spectral_truncation(st.forward(qref * jnp.exp(qexp * lnps)))
        humid = jnp.stack([
            surfq * float(sigma[k] ** qexp) if troposphere[k] else jnp.zeros_like(surfq)
            for k in range(geo.nlev)
        ])

        return state._replace(temp=temp.astype(st.complex_dtype), humid=humid, pres=pres)


class SolidBodyRotation:
    """Zonal flow u = u0 cos(lat) on every level.

    In the shallow water model the interface displacement is set into
    geostrophic balance (Williamson et al. 1992, test 2) so that the state
    is steady. Other fields follow `StartFromRest`.
    """

    def __init__(self, u0: float = 20.0):
        self.u0 = float(u0)

    def state(self, model) -> SpectralState:
        params = model.params
        st = model.transform
        grid = st.grid
        state = StartFromRest().state(model)

        R, omega, g = st.radius, params.rotation, params.gravity
        mu = np.asarray(grid.sinlat)[:, None]
        vor = 2.0 * self.u0 / R * mu * np.ones(grid.shape)
        state = state._replace(vor=_forward_levels(st, vor, model.nlev))

        if model.kind == "shallow_water":
            # mean removed so that the layer keeps its thickness
            eta = -(R * omega * self.u0 + 0.5 * self.u0**2) / g * (mu**2 - 1.0 / 3.0)
            eta = eta * np.ones(grid.shape)
            state = state._replace(pres=st.forward(jnp.asarray(eta, dtype=st.P.dtype)))
        return state


class RossbyHaurwitzWave:
    """Rossby-Haurwitz wave of zonal wavenumber ``m`` (Williamson et al. 1992, test 6).

    Vorticity:

        zeta = 2 w sin(lat) - K sin(lat) cos(lat)^m (m^2 + 3m + 2) cos(m lon)

    The shallow water model also gets the balanced interface displacement.
    """

    def __init__(self, m: int = 4, omega: float = 7.848e-6, K: float = 7.848e-6):
        if int(m) < 1:
            raise ConfigurationError(f"Rossby-Haurwitz wavenumber must be positive, got {m!r}")
        self.m = int(m)
        self.omega = float(omega)
        self.K = float(K)

    def state(self, model) -> SpectralState:
        st = model.transform
        if self.m + 1 > st.lmax:
            raise ConfigurationError(f"Wavenumber m={self.m} is not resolved at T{st.lmax}")
        state = StartFromRest().state(model)

        m, w, K = self.m, self.omega, self.K
        lat = st.grid.latitudes[:, None]
        lon = st.grid.longitudes[None, :]
        sin, cos = np.sin(lat), np.cos(lat)
        vor = 2.0 * w * sin - K * sin * cos**m * (m**2 + 3 * m + 2) * np.cos(m * lon)
        state = state._replace(vor=_forward_levels(st, vor, model.nlev))

        if model.kind == "shallow_water":
            eta = self._interface(model, lat, lon)
            spec = st.forward(jnp.asarray(eta, dtype=st.P.dtype))
            state = state._replace(pres=spec.at[0, 0].set(0.0))
        return state

    def _interface(self, model, lat, lon) -> np.ndarray:
        params = model.params
        R, Omega, g = model.transform.radius, params.rotation, params.gravity
        m, w, K = self.m, self.omega, self.K
        c = np.cos(lat)

        A = (
            0.5 * w * (2.0 * Omega + w) * c**2
            + 0.25 * K**2 * (c ** (2 * m) * ((m + 1) * c**2 + (2 * m**2 - m - 2)) - 2 * m**2 * c ** (2 * m - 2))
        )
        B = 2.0 * (Omega + w) * K / ((m + 1) * (m + 2)) * c**m * ((m**2 + 2 * m + 2) - (m + 1) ** 2 * c**2)
        C = 0.25 * K**2 * c ** (2 * m) * ((m + 1) * c**2 - (m + 2))
        return R**2 * (A + B * np.cos(m * lon) + C * np.cos(2 * m * lon)) / g


class RandomVorticity:
    """Random vorticity with a power-law spectrum, reproducible via ``seed``.

    Coefficient (l, m) is ``amplitude * l**power_law * Q`` with Q uniform in
    the unit complex square; zonal (m = 0) coefficients are real. Every level
    gets an independent draw.
    """

    def __init__(self, amplitude: float = 1e-5, power_law: float = -3.0, seed: int = 0,
                 lmin: int = 1):
        self.amplitude = float(amplitude)
        self.power_law = float(power_law)
        self.seed = int(seed)
        self.lmin = int(lmin)

    def state(self, model) -> SpectralState:
        st = model.transform
        state = StartFromRest().state(model)
        rng = np.random.default_rng(self.seed)

        shape = (model.nlev,) + st.spectral_shape
        Q = rng.uniform(-1.0, 1.0, shape) + 1j * rng.uniform(-1.0, 1.0, shape)
        Q[:, 0, :] = Q[:, 0, :].real

        l = np.asarray(st.l, dtype=np.float64)
        spectrum = np.where(l >= max(self.lmin, 1), np.maximum(l, 1.0) ** self.power_law, 0.0)
        mask = triangular_mask(st.lmax, st.mmax)
        vor = np.where(mask, self.amplitude * spectrum * Q, 0.0)

        _LOGGER.debug("Random vorticity, amplitude %.3g, power law %.2f, seed %d",
                      self.amplitude, self.power_law, self.seed)
        return state._replace(vor=jnp.asarray(vor, dtype=st.complex_dtype))
