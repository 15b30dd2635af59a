"""Orography and surface geopotential at model resolution.

Raw surface height arrives on some high-resolution grid. It is moved to the
model resolution purely through spectral transforms:

    high-res grid -> spectral (truncated at the model truncation)
                  -> model-grid orography
                  -> surface geopotential g * orography (spectral)

so the model sees an orography that is exactly band-limited to its own
truncation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.interpolate import RegularGridInterpolator

import jax.numpy as jnp

from .errors import ConfigurationError
from .grids import FullGaussianGrid
from .spectral_transform import SpectralTransform

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Boundaries:
    """Immutable boundary fields for one spectral transform."""

    orography: jnp.ndarray        # (nlat, nlon) surface height [m]
    orography_spec: jnp.ndarray   # spectral surface height [m]
    geopot_surf: jnp.ndarray      # spectral surface geopotential [m^2/s^2]

    @property
    def is_flat(self) -> bool:
        return not bool(jnp.any(self.orography_spec != 0))

    @classmethod
    def flat(cls, transform: SpectralTransform) -> "Boundaries":
        """Zero orography; used by the barotropic model and idealised setups."""
        return cls(
            orography=transform.zeros_grid(),
            orography_spec=transform.zeros_spectral(),
            geopot_surf=transform.zeros_spectral(),
        )

    @classmethod
    def from_spectral(cls, orography_spec: jnp.ndarray, transform: SpectralTransform,
                      gravity: float = 9.81) -> "Boundaries":
        """Boundaries from spectral surface height already in the model layout."""
        spec = transform.spectral_truncation(orography_spec)
        return cls(
            orography=transform.inverse(spec),
            orography_spec=spec,
            geopot_surf=transform.spectral_truncation(gravity * spec),
        )

    @classmethod
    def from_gaussian(cls, orography_highres, transform: SpectralTransform,
                      gravity: float = 9.81) -> "Boundaries":
        """Boundaries from surface height on a full Gaussian grid (north to south).

        The raw grid must be fine enough for the model truncation.
        """
        orog = np.asarray(orography_highres, dtype=np.float64)
        if orog.ndim != 2:
            raise ConfigurationError(f"Orography must be a 2-D (lat, lon) field, got shape {orog.shape}")
        grid = FullGaussianGrid(nlat=orog.shape[0], nlon=orog.shape[1])
        highres = SpectralTransform.build(
            grid, transform.lmax, transform.mmax,
            radius=transform.radius, dtype=transform.P.dtype,
        )
        spec = highres.forward(jnp.asarray(orog, dtype=transform.P.dtype))
        spec = highres.truncate(spec, transform.lmax, transform.mmax)
        _LOGGER.debug("Orography transformed from %s to T%d", grid, transform.lmax)
        return cls.from_spectral(spec, transform, gravity)

    @classmethod
    def from_latlon(cls, orography, lat, lon, transform: SpectralTransform,
                    gravity: float = 9.81, nlat: Optional[int] = None) -> "Boundaries":
        """Boundaries from surface height on a regular lat-lon grid.

        ``lat`` and ``lon`` are in degrees; ``orography`` has shape
        ``(len(lat), len(lon))``. Latitudes may run either way but must be
        monotonic. The field is resampled (linearly, periodic in longitude)
        onto a Gaussian grid with at least as many rings as the input before
        entering the spectral pipeline.
        """
        orog = np.asarray(orography, dtype=np.float64)
        lat = np.asarray(lat, dtype=np.float64)
        lon = np.asarray(lon, dtype=np.float64)
        if orog.shape != (lat.size, lon.size):
            raise ConfigurationError(
                f"Orography shape {orog.shape} does not match (nlat, nlon) = ({lat.size}, {lon.size})"
            )
        dlat = np.diff(lat)
        if np.all(dlat < 0):
            lat, orog = lat[::-1], orog[::-1, :]
        elif not np.all(dlat > 0):
            raise ConfigurationError("Latitudes of the orography field must be strictly monotonic")
        if not np.all(np.diff(lon) > 0):
            raise ConfigurationError("Longitudes of the orography field must be strictly increasing")

        # periodic closure in longitude
        lon_ext = np.concatenate([lon, [lon[0] + 360.0]])
        orog_ext = np.concatenate([orog, orog[:, :1]], axis=1)
        interpolator = RegularGridInterpolator(
            (lat, lon_ext), orog_ext, bounds_error=False, fill_value=None,
        )

        if nlat is None:
            nlat = max(transform.nlat, lat.size + lat.size % 2)
        target = FullGaussianGrid(nlat=int(nlat), nlon=2 * int(nlat))
        tlat, tlon = np.meshgrid(target.latd, target.lond, indexing="ij")
        tlon = lon[0] + np.mod(tlon - lon[0], 360.0)
        resampled = interpolator(np.stack([tlat, tlon], axis=-1))
        _LOGGER.debug("Orography resampled from %dx%d lat-lon to %s", lat.size, lon.size, target)
        return cls.from_gaussian(resampled, transform, gravity)
