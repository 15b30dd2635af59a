"""
Spectral transform between Gaussian-grid fields and spherical harmonics.

Conventions:
  - Grid fields are (..., nlat, nlon), rings north to south (see `grids`).
  - Spectral fields are complex (..., mmax+1, lmax+2) indexed [m, l]; the last
    degree is the catch degree (see `spectral`).
  - Basis functions are orthonormal Legendre functions times exp(i m lon), so
    that f(lat, lon) = sum_{m>=0} sum_l f_lm P_lm(mu) exp(i m lon) + c.c.
    for m > 0.
  - Vector fields are handled "coslat-scaled": the spectral gradient and
    `uv_from_vordiv` return U = u cos(lat), V = v cos(lat). Inverse
    transforms with ``unscale_coslat=True`` give back true u, v.

All operators are pure functions of their inputs and are safe to call inside
`jax.jit`; the tables are built once on the host.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np

import jax
import jax.numpy as jnp

from . import legendre
from . import spectral
from .dtypes import complex_for, float_dtype, numpy_dtype
from .errors import ConfigurationError
from .grids import FullGaussianGrid
from .parameters import min_nlat, min_nlon


def fwd_fft_trunc(data: jnp.ndarray, nlon: int, mmax: int) -> jnp.ndarray:
    """Forward FFT in longitude, truncated to m = 0..mmax.

    Args:
        data: (..., nlon) real field.
    Returns:
        (..., mmax+1) complex Fourier coefficients.
    """
    coeff = jnp.fft.rfft(data, axis=-1) / float(nlon)
    return coeff[..., : int(mmax) + 1]


def invrs_fft(coeff: jnp.ndarray, nlon: int) -> jnp.ndarray:
    """Inverse FFT in longitude from m = 0..mmax coefficients (real field)."""
    nlon = int(nlon)
    nfreq = nlon // 2 + 1
    pad = [(0, 0)] * (coeff.ndim - 1) + [(0, nfreq - coeff.shape[-1])]
    full = jnp.pad(coeff, pad)
    return jnp.fft.irfft(full * float(nlon), n=nlon, axis=-1)


def _shift_down(f: jnp.ndarray) -> jnp.ndarray:
    """out[..., l] = f[..., l-1], zero at l = 0."""
    pad = [(0, 0)] * (f.ndim - 1) + [(1, 0)]
    return jnp.pad(f[..., :-1], pad)


def _shift_up(f: jnp.ndarray) -> jnp.ndarray:
    """out[..., l] = f[..., l+1], zero at the catch degree."""
    pad = [(0, 0)] * (f.ndim - 1) + [(0, 1)]
    return jnp.pad(f[..., 1:], pad)


@jax.tree_util.register_pytree_node_class
@dataclass(frozen=True)
class SpectralTransform:
    """Precomputed tables for one (grid, truncation, dtype) combination.

    Build with `SpectralTransform.build`; never mutated afterwards.
    """

    grid: FullGaussianGrid
    lmax: int
    mmax: int
    radius: float

    # basis, (nlat, mmax+1, lmax+2)
    P: jnp.ndarray
    wP: jnp.ndarray

    # ring metadata, (nlat,)
    sinlat: jnp.ndarray
    coslat: jnp.ndarray

    # spectral helper arrays, (mmax+1, lmax+2)
    im: jnp.ndarray           # i*m
    l: jnp.ndarray            # degree l
    ll1: jnp.ndarray          # l(l+1)
    inv_ll1: jnp.ndarray      # 1/(l(l+1)), 0 at l = 0
    eps_l: jnp.ndarray        # eps[m, l]
    eps_lp1: jnp.ndarray      # eps[m, l+1]

    def tree_flatten(self) -> Tuple[Tuple[Any, ...], Dict[str, Any]]:
        children = (
            self.P, self.wP,
            self.sinlat, self.coslat,
            self.im, self.l, self.ll1, self.inv_ll1, self.eps_l, self.eps_lp1,
        )
        aux = dict(grid=self.grid, lmax=self.lmax, mmax=self.mmax, radius=self.radius)
        return children, aux

    @classmethod
    def tree_unflatten(cls, aux: Dict[str, Any], children: Tuple[Any, ...]) -> "SpectralTransform":
        P, wP, sinlat, coslat, im, l, ll1, inv_ll1, eps_l, eps_lp1 = children
        return cls(
            P=P, wP=wP,
            sinlat=sinlat, coslat=coslat,
            im=im, l=l, ll1=ll1, inv_ll1=inv_ll1, eps_l=eps_l, eps_lp1=eps_lp1,
            **aux,
        )

    @classmethod
    def build(
        cls,
        grid: FullGaussianGrid,
        lmax: int,
        mmax: Optional[int] = None,
        *,
        radius: float = 1.0,
        dtype: Optional[jnp.dtype] = None,
    ) -> "SpectralTransform":
        """Precompute Legendre tables and operator coefficients.

        Raises `ConfigurationError` when the grid cannot resolve quadratic
        products at this truncation without aliasing.
        """
        lmax = int(lmax)
        mmax = lmax if mmax is None else int(mmax)
        if lmax < 1 or not 0 <= mmax <= lmax:
            raise ConfigurationError(f"Need 0 <= mmax <= lmax and lmax >= 1, got lmax={lmax}, mmax={mmax}")
        if grid.nlat < min_nlat(lmax) or grid.nlon < min_nlon(lmax):
            raise ConfigurationError(
                f"{grid} is too coarse for T{lmax}: need nlat >= {min_nlat(lmax)}, "
                f"nlon >= {min_nlon(lmax)}"
            )

        dtype = float_dtype() if dtype is None else dtype
        np_dtype = numpy_dtype(dtype)
        ctype = complex_for(dtype)

        P = legendre.legendre_table(grid.sinlat, lmax, mmax)
        wP = grid.weights[:, None, None] * P

        eps = legendre.epsilon_table(lmax, mmax)
        l = spectral.degrees(lmax, mmax).astype(np.float64)
        m = spectral.orders(lmax, mmax).astype(np.float64)
        ll1 = l * (l + 1.0)
        inv_ll1 = np.where(ll1 > 0.0, 1.0 / np.where(ll1 > 0.0, ll1, 1.0), 0.0)

        return cls(
            grid=grid, lmax=lmax, mmax=mmax, radius=float(radius),
            P=jnp.asarray(P.astype(np_dtype)),
            wP=jnp.asarray(wP.astype(np_dtype)),
            sinlat=jnp.asarray(grid.sinlat.astype(np_dtype)),
            coslat=jnp.asarray(grid.coslat.astype(np_dtype)),
            im=jnp.asarray(1j * m, dtype=ctype),
            l=jnp.asarray(l.astype(np_dtype)),
            ll1=jnp.asarray(ll1.astype(np_dtype)),
            inv_ll1=jnp.asarray(inv_ll1.astype(np_dtype)),
            eps_l=jnp.asarray(eps[:, : lmax + 2].astype(np_dtype)),
            eps_lp1=jnp.asarray(eps[:, 1 : lmax + 3].astype(np_dtype)),
        )

    # ------------------------------------------------------------------
    # Layout helpers
    # ------------------------------------------------------------------
    @property
    def spectral_shape(self) -> Tuple[int, int]:
        return spectral.spectral_shape(self.lmax, self.mmax)

    @property
    def nlat(self) -> int:
        return self.grid.nlat

    @property
    def nlon(self) -> int:
        return self.grid.nlon

    @property
    def complex_dtype(self):
        return complex_for(self.P.dtype)

    def zeros_spectral(self, nlev: Optional[int] = None) -> jnp.ndarray:
        return spectral.zeros(self.lmax, self.mmax, nlev, dtype=self.complex_dtype)

    def zeros_grid(self, nlev: Optional[int] = None) -> jnp.ndarray:
        return self.grid.zeros(nlev, dtype=self.P.dtype)

    def truncate(self, field: jnp.ndarray, lmax: Optional[int] = None, mmax: Optional[int] = None) -> jnp.ndarray:
        """Move ``field`` into the ``(lmax, mmax)`` layout (default: this transform's)."""
        lmax = self.lmax if lmax is None else int(lmax)
        mmax = min(lmax, self.mmax) if mmax is None else int(mmax)
        return spectral.truncate(field, lmax, mmax)

    def spectral_truncation(self, field: jnp.ndarray, ltrunc: Optional[int] = None) -> jnp.ndarray:
        """Zero everything outside the triangle (and the catch degree), keeping the shape."""
        return spectral.spectral_truncation(field, self.lmax if ltrunc is None else ltrunc)

    def _zero_catch(self, field: jnp.ndarray) -> jnp.ndarray:
        return field.at[..., -1].set(0.0)

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------
    def forward(self, grid_field: jnp.ndarray, *, keep_catch: bool = False) -> jnp.ndarray:
        """Grid -> spectral. Band-limited input is reproduced to rounding."""
        self.grid.check(grid_field)
        x = jnp.asarray(grid_field, dtype=self.P.dtype)
        fourier = fwd_fft_trunc(x, self.nlon, self.mmax)
        coeffs = legendre.forward_legendre(fourier, self.wP)
        return coeffs if keep_catch else self._zero_catch(coeffs)

    def inverse(self, spectral_field: jnp.ndarray, *, unscale_coslat: bool = False) -> jnp.ndarray:
        """Spectral -> grid.

        With ``unscale_coslat=True`` the result is divided by cos(lat), turning
        coslat-scaled vector components into true ones.
        """
        spectral.check_shape(spectral_field, self.lmax, self.mmax)
        coeffs = jnp.asarray(spectral_field, dtype=self.complex_dtype)
        fourier = legendre.inverse_legendre(coeffs, self.P)
        field = invrs_fft(fourier, self.nlon)
        if unscale_coslat:
            field = field / self.coslat[:, None]
        return field

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------
    def _cos_dmu(self, f: jnp.ndarray) -> jnp.ndarray:
        """Spectral (1 - mu^2) d/dmu; populates the catch degree."""
        return (
            -(self.l - 1.0) * self.eps_l * _shift_down(f)
            + (self.l + 2.0) * self.eps_lp1 * _shift_up(f)
        )

    def laplacian(self, f: jnp.ndarray) -> jnp.ndarray:
        """Multiply degree l by -l(l+1)/R^2."""
        return -self.ll1 / self.radius**2 * f

    def inverse_laplacian(self, f: jnp.ndarray) -> jnp.ndarray:
        """Inverse of `laplacian`; the l = 0 mode maps to zero."""
        return -(self.radius**2) * self.inv_ll1 * f

    def gradient(self, f: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
        """Coslat-scaled gradient (cos(lat) df/dx, cos(lat) df/dy) of a scalar."""
        dlon = self.im * f / self.radius
        dlat = self._cos_dmu(f) / self.radius
        return dlon, dlat

    def uv_from_vordiv(self, vor: jnp.ndarray, div: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
        """Coslat-scaled winds (U, V) from spectral vorticity and divergence.

        The catch degree of U, V is populated; `inverse` with
        ``unscale_coslat=True`` yields u, v.
        """
        zeta = vor * self.inv_ll1
        delta = div * self.inv_ll1
        U = self.radius * (self._cos_dmu(zeta) - self.im * delta)
        V = -self.radius * (self.im * zeta + self._cos_dmu(delta))
        return U, V

    def curl(self, U: jnp.ndarray, V: jnp.ndarray) -> jnp.ndarray:
        """Vorticity of (u, v) from the spectral transforms of u/cos(lat), v/cos(lat).

        ``U`` and ``V`` must carry their catch degree (``forward(..., keep_catch=True)``).
        """
        l = self.l
        out = (
            self.im * V
            + (l + 1.0) * self.eps_l * _shift_down(U)
            - l * self.eps_lp1 * _shift_up(U)
        ) / self.radius
        return self._zero_catch(out)

    def divergence(self, U: jnp.ndarray, V: jnp.ndarray) -> jnp.ndarray:
        """Divergence of (u, v), inputs as in `curl`."""
        l = self.l
        out = (
            self.im * U
            + l * self.eps_lp1 * _shift_up(V)
            - (l + 1.0) * self.eps_l * _shift_down(V)
        ) / self.radius
        return self._zero_catch(out)

    def _scaled_pair(self, u: jnp.ndarray, v: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
        inv_cos = 1.0 / self.coslat[:, None]
        return (
            self.forward(u * inv_cos, keep_catch=True),
            self.forward(v * inv_cos, keep_catch=True),
        )

    def curl_grid(self, u: jnp.ndarray, v: jnp.ndarray) -> jnp.ndarray:
        """Spectral vorticity of the grid vector field (u, v)."""
        return self.curl(*self._scaled_pair(u, v))

    def divergence_grid(self, u: jnp.ndarray, v: jnp.ndarray) -> jnp.ndarray:
        """Spectral divergence of the grid vector field (u, v)."""
        return self.divergence(*self._scaled_pair(u, v))

    def winds_grid(self, vor: jnp.ndarray, div: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
        """True grid-point u, v from spectral vorticity and divergence."""
        U, V = self.uv_from_vordiv(vor, div)
        return (
            self.inverse(U, unscale_coslat=True),
            self.inverse(V, unscale_coslat=True),
        )

    def gradient_grid(self, f: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
        """True grid-point gradient (df/dx, df/dy) of a spectral scalar."""
        dlon, dlat = self.gradient(f)
        return (
            self.inverse(dlon, unscale_coslat=True),
            self.inverse(dlat, unscale_coslat=True),
        )
