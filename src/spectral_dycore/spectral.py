"""Spectral coefficient arrays: layout, index helpers and truncation.

A spectral field is a complex array of shape ``(..., mmax+1, lmax+2)`` indexed
``[m, l]`` (order first, degree second). Entries with ``l < m`` are outside
the triangle and always zero; column ``l = lmax+1`` is the catch degree,
populated only transiently by meridional derivative recurrences.
"""
from __future__ import annotations

from typing import Iterator, Optional, Tuple

import jax.numpy as jnp
import numpy as np

from .dtypes import complex_dtype
from .errors import ConfigurationError


def spectral_shape(lmax: int, mmax: Optional[int] = None, nlev: Optional[int] = None) -> Tuple[int, ...]:
    mmax = lmax if mmax is None else mmax
    shape = (int(mmax) + 1, int(lmax) + 2)
    return shape if nlev is None else (int(nlev),) + shape


def zeros(lmax: int, mmax: Optional[int] = None, nlev: Optional[int] = None, *, dtype=None) -> jnp.ndarray:
    """Zero-filled spectral field, optionally with a leading level axis."""
    dtype = complex_dtype() if dtype is None else dtype
    return jnp.zeros(spectral_shape(lmax, mmax, nlev), dtype=dtype)


def degrees(lmax: int, mmax: Optional[int] = None) -> np.ndarray:
    """Degree l of every storage slot, shape (mmax+1, lmax+2)."""
    shape = spectral_shape(lmax, mmax)
    return np.broadcast_to(np.arange(shape[1])[None, :], shape)


def orders(lmax: int, mmax: Optional[int] = None) -> np.ndarray:
    """Order m of every storage slot, shape (mmax+1, lmax+2)."""
    shape = spectral_shape(lmax, mmax)
    return np.broadcast_to(np.arange(shape[0])[:, None], shape)


def triangular_mask(lmax: int, mmax: Optional[int] = None, ltrunc: Optional[int] = None,
                    mtrunc: Optional[int] = None) -> np.ndarray:
    """Boolean mask of retained coefficients ``m <= l <= ltrunc``, ``m <= mtrunc``.

    The catch degree is never part of the mask.
    """
    mmax = lmax if mmax is None else mmax
    ltrunc = lmax if ltrunc is None else min(int(ltrunc), lmax)
    mtrunc = mmax if mtrunc is None else min(int(mtrunc), mmax)
    l = degrees(lmax, mmax)
    m = orders(lmax, mmax)
    return (l >= m) & (l <= ltrunc) & (m <= mtrunc)


def each_harmonic(lmax: int, mmax: Optional[int] = None) -> Iterator[Tuple[int, int]]:
    """Yield every valid ``(l, m)`` pair: ascending m, then ascending l."""
    mmax = lmax if mmax is None else mmax
    for m in range(int(mmax) + 1):
        for l in range(m, int(lmax) + 1):
            yield l, m


def scale_add(y: jnp.ndarray, x: jnp.ndarray, a) -> jnp.ndarray:
    """Return ``y + a*x`` (the functional form of an in-place axpy)."""
    return y + a * x


def check_shape(field, lmax: int, mmax: Optional[int] = None) -> None:
    """Reject spectral fields that do not match the ``(lmax, mmax)`` layout."""
    expected = spectral_shape(lmax, mmax)
    got = tuple(field.shape[-2:])
    if got != expected:
        if got[0] > expected[0] or got[1] > expected[1]:
            reason = "exceeds"
        else:
            reason = "does not match"
        raise ConfigurationError(
            f"Spectral field of shape {tuple(field.shape)} {reason} the layout {expected} "
            f"for lmax={lmax}, mmax={expected[0] - 1}"
        )


def spectral_truncation(field: jnp.ndarray, ltrunc: int, mtrunc: Optional[int] = None) -> jnp.ndarray:
    """Zero every coefficient outside the triangle ``(ltrunc, mtrunc)`` and the catch degree.

    Keeps the array shape; a triangular truncation inside the same storage.
    """
    mdim, ldim = field.shape[-2:]
    lmax, mmax = ldim - 2, mdim - 1
    mask = triangular_mask(lmax, mmax, ltrunc, ltrunc if mtrunc is None else mtrunc)
    return jnp.where(jnp.asarray(mask), field, jnp.zeros((), dtype=field.dtype))


def truncate(field: jnp.ndarray, lmax: int, mmax: Optional[int] = None) -> jnp.ndarray:
    """Copy ``field`` into the ``(lmax, mmax)`` layout, dropping or zero-padding coefficients.

    The result's catch degree is zero.
    """
    mmax = lmax if mmax is None else mmax
    mdim, ldim = field.shape[-2:]
    src_lmax = ldim - 2
    out = jnp.zeros(field.shape[:-2] + spectral_shape(lmax, mmax), dtype=field.dtype)
    mcopy = min(mdim, mmax + 1)
    lcopy = min(src_lmax, lmax) + 1
    out = out.at[..., :mcopy, :lcopy].set(field[..., :mcopy, :lcopy])
    return spectral_truncation(out, lmax, mmax)


def harmonic(lmax: int, l: int, m: int, value=1.0, mmax: Optional[int] = None, *, dtype=None) -> jnp.ndarray:
    """A single spherical harmonic ``value * Y_lm`` in the ``(lmax, mmax)`` layout."""
    mmax = lmax if mmax is None else mmax
    if not (0 <= m <= min(l, mmax) and l <= lmax):
        raise ConfigurationError(f"(l={l}, m={m}) is outside the T{lmax} triangle")
    return zeros(lmax, mmax, dtype=dtype).at[m, l].set(value)
