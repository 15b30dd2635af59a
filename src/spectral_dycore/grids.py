"""Grid-point representation of fields on the sphere.

Grid fields are plain arrays of shape ``(nlat, nlon)`` (one level) or
``(nlev, nlat, nlon)``: rings run north to south, longitudes eastward from 0.
A `FullGaussianGrid` carries the metadata that the spectral transform's
Legendre tables are built for; any code creating a grid field for a given
transform must use the same grid.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import jax.numpy as jnp
import numpy as np

from . import legendre
from .dtypes import float_dtype
from .errors import ConfigurationError
from .parameters import default_nlat


@dataclass(frozen=True)
class FullGaussianGrid:
    """Gaussian latitudes with ``nlon`` equally spaced longitudes on every ring."""

    nlat: int
    nlon: int

    def __post_init__(self) -> None:
        if int(self.nlat) < 2 or int(self.nlon) < 4:
            raise ConfigurationError(
                f"Grid needs at least 2 rings and 4 longitudes, got nlat={self.nlat}, nlon={self.nlon}"
            )

    @classmethod
    def for_truncation(cls, trunc: int) -> "FullGaussianGrid":
        """Smallest alias-free grid for triangular truncation ``trunc``."""
        nlat = default_nlat(int(trunc))
        return cls(nlat=nlat, nlon=2 * nlat)

    @property
    def shape(self) -> Tuple[int, int]:
        return (int(self.nlat), int(self.nlon))

    @property
    def npoints(self) -> int:
        return int(self.nlat) * int(self.nlon)

    # Host (NumPy) coordinates; cheap to recompute, cached in `legendre`.
    @property
    def sinlat(self) -> np.ndarray:
        """mu = sin(latitude) per ring, north to south."""
        nodes, _ = legendre.gauss_legendre(int(self.nlat))
        return nodes[::-1]

    @property
    def weights(self) -> np.ndarray:
        _, weights = legendre.gauss_legendre(int(self.nlat))
        return weights[::-1]

    @property
    def coslat(self) -> np.ndarray:
        return np.sqrt(1.0 - self.sinlat**2)

    @property
    def latitudes(self) -> np.ndarray:
        """Ring latitudes in radians."""
        return np.arcsin(self.sinlat)

    @property
    def latd(self) -> np.ndarray:
        """Ring latitudes in degrees north."""
        return np.degrees(self.latitudes)

    @property
    def longitudes(self) -> np.ndarray:
        """Longitudes in radians, [0, 2 pi)."""
        return 2.0 * np.pi * np.arange(int(self.nlon)) / int(self.nlon)

    @property
    def lond(self) -> np.ndarray:
        return np.degrees(self.longitudes)

    def zeros(self, nlev: Optional[int] = None, *, dtype=None) -> jnp.ndarray:
        """Zero field on this grid, optionally with a leading level axis."""
        dtype = float_dtype() if dtype is None else dtype
        shape = self.shape if nlev is None else (int(nlev),) + self.shape
        return jnp.zeros(shape, dtype=dtype)

    def from_function(self, fun, *, dtype=None) -> jnp.ndarray:
        """Evaluate ``fun(lat, lon)`` (radians, broadcast arrays) on the grid."""
        dtype = float_dtype() if dtype is None else dtype
        lat = self.latitudes[:, None]
        lon = self.longitudes[None, :]
        values = np.broadcast_to(np.asarray(fun(lat, lon), dtype=np.float64), self.shape)
        return jnp.asarray(values, dtype=dtype)

    def check(self, field) -> None:
        """Fail fast if ``field`` was not laid out for this grid."""
        if tuple(field.shape[-2:]) != self.shape:
            raise ConfigurationError(
                f"Grid field of shape {tuple(field.shape)} does not match grid {self.shape}"
            )
