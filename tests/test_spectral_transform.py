from __future__ import annotations

import numpy as np
import pytest


def _transform(trunc: int = 15, radius: float = 1.0):
    from spectral_dycore.grids import FullGaussianGrid
    from spectral_dycore.spectral_transform import SpectralTransform

    return SpectralTransform.build(FullGaussianGrid.for_truncation(trunc), trunc, radius=radius)


def _random_spectral(st, seed: int = 0, nlev=None) -> np.ndarray:
    from spectral_dycore.spectral import triangular_mask

    rng = np.random.default_rng(seed)
    shape = st.spectral_shape if nlev is None else (nlev,) + st.spectral_shape
    f = rng.standard_normal(shape) + 1j * rng.standard_normal(shape)
    f[..., 0, :] = f[..., 0, :].real
    return np.where(triangular_mask(st.lmax, st.mmax), f, 0.0)


def test_each_harmonic_order() -> None:
    from spectral_dycore.spectral import each_harmonic

    assert list(each_harmonic(2)) == [(0, 0), (1, 0), (2, 0), (1, 1), (2, 1), (2, 2)]
    assert list(each_harmonic(3, 1)) == [(0, 0), (1, 0), (2, 0), (3, 0), (1, 1), (2, 1), (3, 1)]


def test_spectral_layout_helpers() -> None:
    from spectral_dycore import spectral

    assert spectral.spectral_shape(5) == (6, 7)
    assert spectral.spectral_shape(5, 3, nlev=2) == (2, 4, 7)

    z = spectral.zeros(4)
    y = spectral.scale_add(z, spectral.harmonic(4, 2, 1, 3.0), 2.0)
    assert complex(y[1, 2]) == 6.0
    assert np.count_nonzero(np.asarray(y)) == 1

    mask = spectral.triangular_mask(4)
    assert mask.shape == (5, 6)
    assert not mask[:, -1].any()
    assert not mask[3, 2]
    assert mask[2, 4]


def test_gauss_legendre_and_normalisation() -> None:
    from spectral_dycore import legendre

    nodes, weights = legendre.gauss_legendre(24)
    assert np.isclose(weights.sum(), 2.0)

    P = legendre.legendre_table(nodes, 6, 6)
    assert P.shape == (24, 7, 8)

    # orthonormal on [-1, 1], no Condon-Shortley phase
    assert np.allclose(P[:, 0, 0], 1.0 / np.sqrt(2.0))
    assert np.allclose(P[:, 0, 1], np.sqrt(1.5) * nodes)
    assert np.allclose(P[:, 2, 2], np.sqrt(15.0) / 4.0 * (1.0 - nodes**2))
    for m in range(7):
        gram = np.einsum("j,jl,jk->lk", weights, P[:, m, m:7], P[:, m, m:7])
        assert np.allclose(gram, np.eye(7 - m), atol=1e-12)


def test_forward_of_known_fields() -> None:
    st = _transform(10)
    grid = st.grid
    omega = 7.292e-5

    const = st.forward(grid.from_function(lambda lat, lon: 3.0 + 0.0 * lon))
    assert np.isclose(complex(const[0, 0]), 3.0 * np.sqrt(2.0))
    assert np.allclose(np.asarray(const).ravel()[1:], 0.0, atol=1e-12)

    # planetary vorticity 2 Omega sin(lat) lives in (l, m) = (1, 0) only
    f = st.forward(grid.from_function(lambda lat, lon: 2.0 * omega * np.sin(lat) + 0.0 * lon))
    assert np.isclose(complex(f[0, 1]), 2.0 * omega / np.sqrt(1.5))
    f = np.asarray(f).copy()
    f[0, 1] = 0.0
    assert np.allclose(f, 0.0, atol=1e-15)

    # a real field cos(lon) P_11 has coefficient 1/2 at m = 1 (conjugate pair)
    wave = grid.from_function(lambda lat, lon: np.sqrt(0.75) * np.cos(lat) * np.cos(lon))
    spec = st.forward(wave)
    assert np.isclose(complex(spec[1, 1]), 0.5)


def test_round_trip_band_limited() -> None:
    st = _transform(21)
    f = _random_spectral(st, seed=1)
    back = np.asarray(st.forward(st.inverse(f)))
    assert np.allclose(back, f, rtol=1e-10, atol=1e-10)

    # batched over levels
    f3 = _random_spectral(st, seed=2, nlev=3)
    back3 = np.asarray(st.forward(st.inverse(f3)))
    assert back3.shape == f3.shape
    assert np.allclose(back3, f3, rtol=1e-10, atol=1e-10)


def test_inverse_is_left_inverse_of_forward_on_band_limited_grids() -> None:
    st = _transform(12)
    grid_field = st.inverse(_random_spectral(st, seed=3))
    again = st.inverse(st.forward(grid_field))
    assert np.allclose(np.asarray(again), np.asarray(grid_field), atol=1e-10)


def test_truncation_idempotence() -> None:
    from spectral_dycore import spectral

    st = _transform(21)
    f = _random_spectral(st, seed=4)

    t1 = spectral.truncate(f, 10, 8)
    t2 = spectral.truncate(t1, 10, 8)
    assert t1.shape == (9, 12)
    assert np.array_equal(np.asarray(t1), np.asarray(t2))
    assert np.all(np.asarray(t1)[:, -1] == 0.0)

    # same-shape triangular truncation zeroes everything beyond (10, 8)
    s = np.asarray(spectral.spectral_truncation(f, 10, 8))
    l = spectral.degrees(21)
    m = spectral.orders(21)
    assert np.all(s[(l > 10) | (m > 8)] == 0.0)
    assert np.array_equal(s[:9, :11], np.asarray(t1)[:, :11])

    # zero-padding back up keeps the retained coefficients
    up = np.asarray(spectral.truncate(t1, 21))
    assert up.shape == f.shape
    assert np.array_equal(up[:9, :11], np.asarray(t1)[:, :11])


def test_laplacian_eigenvalue() -> None:
    from spectral_dycore.spectral import harmonic

    R = 6.371e6
    st = _transform(15, radius=R)
    for l, m in [(1, 0), (5, 3), (15, 15)]:
        f = harmonic(15, l, m, 2.0 - 1.0j, dtype=st.complex_dtype)
        lap = np.asarray(st.laplacian(f))
        expected = np.zeros_like(lap)
        expected[m, l] = -l * (l + 1) / R**2 * (2.0 - 1.0j)
        assert np.allclose(lap, expected, rtol=1e-14, atol=0.0)
        assert np.allclose(np.asarray(st.inverse_laplacian(st.laplacian(f))), np.asarray(f))


def test_winds_curl_divergence_round_trip() -> None:
    R = 6.371e6
    st = _transform(21, radius=R)
    vor = _random_spectral(st, seed=5) * 1e-5
    div = _random_spectral(st, seed=6) * 1e-6
    vor[0, 0] = 0.0
    div[0, 0] = 0.0

    u, v = st.winds_grid(vor, div)
    assert u.shape == st.grid.shape
    assert np.allclose(np.asarray(st.curl_grid(u, v)), vor, rtol=1e-9, atol=1e-17)
    assert np.allclose(np.asarray(st.divergence_grid(u, v)), div, rtol=1e-9, atol=1e-17)


def test_solid_body_winds() -> None:
    R = 6.371e6
    u0 = 20.0
    st = _transform(15, radius=R)
    lat = st.grid.latitudes[:, None]
    vor = st.forward(st.grid.from_function(lambda la, lo: 2.0 * u0 / R * np.sin(la) + 0.0 * lo))
    u, v = st.winds_grid(vor, np.zeros_like(np.asarray(vor)))
    assert np.allclose(np.asarray(u), u0 * np.cos(lat) * np.ones(st.grid.shape), atol=1e-10)
    assert np.allclose(np.asarray(v), 0.0, atol=1e-10)


def test_gradient_of_sin_lat() -> None:
    st = _transform(10)
    f = st.forward(st.grid.from_function(lambda lat, lon: np.sin(lat) + 0.0 * lon))
    dfdx, dfdy = st.gradient_grid(f)
    lat = st.grid.latitudes[:, None]
    # d/dy = (1/R) d/dlat on the unit sphere
    assert np.allclose(np.asarray(dfdy), np.cos(lat) * np.ones(st.grid.shape), atol=1e-12)
    assert np.allclose(np.asarray(dfdx), 0.0, atol=1e-12)


def test_configuration_errors() -> None:
    from spectral_dycore.errors import ConfigurationError
    from spectral_dycore.grids import FullGaussianGrid
    from spectral_dycore.spectral_transform import SpectralTransform

    # grid too coarse for the truncation
    with pytest.raises(ConfigurationError):
        SpectralTransform.build(FullGaussianGrid(nlat=16, nlon=32), 21)

    st = _transform(10)
    # grid field from another grid
    with pytest.raises(ConfigurationError):
        st.forward(np.zeros((20, 40)))
    # spectral field larger than the tables
    with pytest.raises(ConfigurationError, match="exceeds"):
        st.inverse(np.zeros((22, 23), dtype=complex))
    with pytest.raises(ConfigurationError, match="does not match"):
        st.inverse(np.zeros((5, 7), dtype=complex))
