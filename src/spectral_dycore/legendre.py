"""
Gaussian quadrature and associated Legendre tables.

Conventions:
  - Gauss-Legendre nodes mu = sin(lat) and weights come from NumPy's
    `leggauss` and are cached per ring count.
  - Associated Legendre functions are orthonormal on [-1, 1] with no
    Condon-Shortley phase:
        integral_{-1}^{1} P_lm(mu)^2 dmu = 1
  - Tables have shape (nlat, mmax+1, lmax+2); the last degree is the catch
    degree needed by the meridional derivative recurrences.

Tables are built on the host with NumPy (small, built once) and handed to JAX
by the spectral transform.
"""
from __future__ import annotations

from typing import Dict, Tuple

import numpy as np

import jax.numpy as jnp

_GL_CACHE: Dict[int, Tuple[np.ndarray, np.ndarray]] = {}
_PLM_CACHE: Dict[Tuple[bytes, int, int], np.ndarray] = {}


def gauss_legendre(nlat: int) -> Tuple[np.ndarray, np.ndarray]:
    """Gauss-Legendre nodes (ascending, south to north) and weights."""
    nlat = int(nlat)
    cached = _GL_CACHE.get(nlat)
    if cached is None:
        nodes, weights = np.polynomial.legendre.leggauss(nlat)
        nodes.setflags(write=False)
        weights.setflags(write=False)
        cached = (nodes, weights)
        _GL_CACHE[nlat] = cached
    return cached


def epsilon_table(lmax: int, mmax: int) -> np.ndarray:
    """eps[m, l] = sqrt((l^2 - m^2) / (4 l^2 - 1)) for l >= m, zero otherwise.

    Shape (mmax+1, lmax+3): one column beyond the catch degree so that the
    derivative recurrences can read eps_{l+1} for every stored degree.
    """
    m = np.arange(mmax + 1, dtype=np.float64)[:, None]
    l = np.arange(lmax + 3, dtype=np.float64)[None, :]
    num = l * l - m * m
    eps = np.sqrt(np.where(num > 0.0, num / (4.0 * l * l - 1.0), 0.0))
    return eps


def legendre_table(sinlat: np.ndarray, lmax: int, mmax: int) -> np.ndarray:
    """Orthonormal P_lm(mu) on the given nodes, shape (nlat, mmax+1, lmax+2).

    Three-term recurrence in l for fixed m, started from the sectoral values
    P_mm, which are themselves built up from P_00 = 1/sqrt(2).
    """
    mu = np.asarray(sinlat, dtype=np.float64)
    nlat = mu.shape[0]
    key = (mu.tobytes(), int(lmax), int(mmax))
    cached = _PLM_CACHE.get(key)
    if cached is not None:
        return cached

    ldim = lmax + 2
    eps = epsilon_table(lmax, mmax)
    sqrt_1mmu2 = np.sqrt(np.maximum(0.0, 1.0 - mu * mu))

    P = np.zeros((nlat, mmax + 1, ldim), dtype=np.float64)
    pmm = np.full(nlat, 1.0 / np.sqrt(2.0))
    for m in range(mmax + 1):
        if m > 0:
            pmm = np.sqrt((2.0 * m + 1.0) / (2.0 * m)) * sqrt_1mmu2 * pmm
        P[:, m, m] = pmm
        if m + 1 < ldim:
            P[:, m, m + 1] = np.sqrt(2.0 * m + 3.0) * mu * pmm
        for l in range(m + 2, ldim):
            P[:, m, l] = (mu * P[:, m, l - 1] - eps[m, l - 1] * P[:, m, l - 2]) / eps[m, l]

    P.setflags(write=False)
    _PLM_CACHE[key] = P
    return P


def forward_legendre(fourier: jnp.ndarray, weighted_P: jnp.ndarray) -> jnp.ndarray:
    """Meridional analysis: (..., nlat, mmax+1) Fourier coefficients -> (..., mmax+1, lmax+2).

    ``weighted_P`` is the Legendre table premultiplied by the quadrature
    weights, ``w[j] * P[j, m, l]``.
    """
    return jnp.einsum("...jm,jml->...ml", fourier, weighted_P)


def inverse_legendre(coeffs: jnp.ndarray, P: jnp.ndarray) -> jnp.ndarray:
    """Meridional synthesis: (..., mmax+1, lmax+2) -> (..., nlat, mmax+1)."""
    return jnp.einsum("...ml,jml->...jm", coeffs, P)
