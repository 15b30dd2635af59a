"""spectral_dycore.dtypes

Centralized dtype choices for the dynamical core.

JAX defaults to float32. The spectral transforms and the semi-implicit solver
are usually run in double precision, which needs JAX 64-bit mode::

    export SPECTRAL_DYCORE_ENABLE_X64=1

before importing the package, or, before any computation::

    from jax import config
    config.update("jax_enable_x64", True)

The dtype is not frozen at import time; the current ``jax_enable_x64`` flag
is queried at each call site.
"""

from __future__ import annotations

from typing import Any

import jax
import jax.numpy as jnp
import numpy as np


def x64_enabled() -> bool:
    """Return True if JAX 64-bit mode is enabled."""
    return bool(jax.config.read("jax_enable_x64"))


def float_dtype():
    """Return the package float dtype (float32 or float64)."""
    return jnp.float64 if x64_enabled() else jnp.float32


def complex_dtype():
    """Return the package complex dtype (complex64 or complex128)."""
    return jnp.complex128 if x64_enabled() else jnp.complex64


def complex_for(dtype) -> Any:
    """Complex dtype matching the precision of a real dtype."""
    return jnp.complex128 if jnp.dtype(dtype) == jnp.float64 else jnp.complex64


def numpy_dtype(dtype) -> np.dtype:
    """NumPy equivalent of a JAX dtype, used for host-side table building."""
    return np.dtype(jnp.dtype(dtype).name)


def as_real(x: Any):
    """Convert to a JAX scalar/array with the package float dtype."""
    return jnp.asarray(x, dtype=float_dtype())


def as_complex(x: Any):
    """Convert to a JAX scalar/array with the package complex dtype."""
    return jnp.asarray(x, dtype=complex_dtype())
