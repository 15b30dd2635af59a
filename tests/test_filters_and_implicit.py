from __future__ import annotations

import numpy as np
import pytest


def _setup(trunc: int = 21, nlev: int = 1, **kwargs):
    from spectral_dycore.geometry import Geometry
    from spectral_dycore.grids import FullGaussianGrid
    from spectral_dycore.parameters import Parameters
    from spectral_dycore.spectral_transform import SpectralTransform

    params = Parameters(trunc=trunc, nlev=nlev, **kwargs)
    grid = FullGaussianGrid(params.nlat, params.nlon)
    st = SpectralTransform.build(grid, params.lmax, radius=params.radius)
    return params, st, Geometry.from_parameters(params, grid)


def _random_state(st, nlev: int, seed: int = 0):
    from spectral_dycore.spectral import triangular_mask
    from spectral_dycore.variables import SpectralState

    rng = np.random.default_rng(seed)
    mask = triangular_mask(st.lmax, st.mmax)

    def draw(shape):
        x = rng.standard_normal(shape) + 1j * rng.standard_normal(shape)
        return np.where(mask, x, 0.0)

    shape3 = (nlev,) + st.spectral_shape
    return SpectralState(draw(shape3), draw(shape3), draw(shape3), draw(shape3), draw(st.spectral_shape))


def test_robert_williams_filter() -> None:
    from spectral_dycore.filters import robert_williams_filter

    old, curr, new = np.array(1.0), np.array(3.0), np.array(2.0)
    d = 0.5 * 0.05 * (old - 2 * curr + new)

    fc, fn = robert_williams_filter(old, curr, new, 0.05, 0.53)
    assert float(fc) == pytest.approx(curr + 0.53 * d)
    assert float(fn) == pytest.approx(new - 0.47 * d)

    # williams = 1 is the Robert-Asselin filter, which leaves the new level alone
    fc, fn = robert_williams_filter(old, curr, new, 0.05, 1.0)
    assert float(fn) == pytest.approx(new)

    # the filter conserves the three-level mean when williams = 0.5
    fc, fn = robert_williams_filter(old, curr, new, 0.1, 0.5)
    assert float(old + fc + fn) == pytest.approx(old + curr + new)


def test_diffusion_damps_high_degrees_faster() -> None:
    from spectral_dycore.filters import apply_diffusion, horizontal_diffusion
    from spectral_dycore.spectral import harmonic
    from spectral_dycore.variables import SpectralState

    params, st, _ = _setup()
    coeffs = horizontal_diffusion(params, st, 1)
    dt = 2.0 * params.dt

    x = (harmonic(21, 5, 2, 1.0) + harmonic(21, 20, 2, 1.0))[None].astype(st.complex_dtype)
    old = SpectralState.zeros(st, 1)._replace(vor=x, div=x)
    tend = apply_diffusion(coeffs, SpectralState.zeros(st, 1), old, dt)
    new = np.array(old.vor + dt * tend.vor)[0]

    low, high = abs(new[2, 5]), abs(new[2, 20])
    assert high < low < 1.0
    # backward implicit: every mode decays, none overshoots
    assert 0.0 < high
    # everything else untouched
    new[2, 5] = new[2, 20] = 0.0
    assert np.allclose(new, 0.0)

    # divergence uses thdd, identical to thd by default
    assert np.allclose(np.asarray(tend.div), np.asarray(tend.vor))
    # surface pressure is never diffused
    assert np.allclose(np.asarray(tend.pres), 0.0)


def test_diffusion_rates() -> None:
    from spectral_dycore.filters import damping_coefficients, horizontal_diffusion

    params, st, _ = _setup(horizontal_diffusion=True)
    dmp, dmpd, dmps = damping_coefficients(params, st.lmax, st.mmax)
    T = params.trunc
    # the truncation degree is damped on the time scale thd
    assert dmp[0, T] == pytest.approx(1.0 / (params.thd * 3600.0))
    assert dmp[0, 0] == 0.0
    assert dmps[0, T] == pytest.approx(1.0 / (params.thds * 3600.0))

    off, st_off, _ = _setup(horizontal_diffusion=False)
    coeffs = horizontal_diffusion(off, st_off, 1)
    assert not np.any(np.asarray(coeffs.dmp))


def test_stratospheric_diffusion_only_on_top_level() -> None:
    from spectral_dycore.filters import horizontal_diffusion

    params, st, geo = _setup(nlev=5)
    coeffs = horizontal_diffusion(params, st, 5, stratosphere=True, geometry=geo,
                                  orography_spec=st.zeros_spectral())
    dmps = np.asarray(coeffs.dmps)
    sdrag = np.asarray(coeffs.sdrag)
    assert np.any(dmps[0]) and not np.any(dmps[1:])
    assert np.all(sdrag[0, 0, :] > 0.0) and not np.any(sdrag[0, 1:]) and not np.any(sdrag[1:])
    assert not np.any(np.asarray(coeffs.tcor))


def test_shallow_water_implicit_solves_centred_equations() -> None:
    from spectral_dycore.implicit import apply_shallow_water, shallow_water_coefficients

    params, st, _ = _setup()
    dt_eff = 2.0 * params.dt
    coeffs = shallow_water_coefficients(params, st, dt_eff)
    G = _random_state(st, 1, seed=1)
    out = apply_shallow_water(coeffs, G)

    xi = params.alpha * dt_eff
    k = np.asarray(st.ll1) / params.radius**2
    div, eta = np.asarray(out.div[0]), np.asarray(out.pres)
    # delta' = G_delta + xi g k eta',  eta' = G_eta - xi H delta'
    assert np.allclose(div, G.div[0] + xi * params.gravity * k * eta, rtol=1e-10, atol=1e-12)
    assert np.allclose(eta, G.pres - xi * params.layer_thickness * div, rtol=1e-10, atol=1e-12)
    assert np.array_equal(np.asarray(out.vor), G.vor)


def test_primitive_implicit_solves_coupled_system() -> None:
    from spectral_dycore.implicit import apply_primitive, primitive_coefficients

    params, st, geo = _setup(nlev=6)
    coeffs = primitive_coefficients(params, st, geo, 2.0 * params.dt)
    G = _random_state(st, 6, seed=2)
    G = G._replace(div=G.div * 1e-6, temp=G.temp * 1e-4, pres=G.pres * 1e-8)
    out = apply_primitive(coeffs, G)

    div = np.asarray(out.div)
    temp = np.asarray(out.temp)
    pres = np.asarray(out.pres)
    xd = np.asarray(coeffs.xd)
    elz = np.asarray(coeffs.elz)
    tref1 = np.asarray(coeffs.tref1)

    rhs = G.div + elz[None] * (np.einsum("kj,jml->kml", xd, temp) + tref1[:, None, None] * pres[None])
    rhs[:, 0, 0] = 0.0
    assert np.allclose(div, rhs, rtol=1e-8, atol=1e-18)
    assert np.allclose(pres, G.pres - np.einsum("k,kml->ml", np.asarray(coeffs.dhsx), div), rtol=1e-12, atol=1e-22)


def test_all_finite() -> None:
    from spectral_dycore.filters import all_finite
    from spectral_dycore.variables import SpectralState

    _, st, _ = _setup(trunc=10)
    state = SpectralState.zeros(st, 2)
    assert bool(all_finite(state))
    bad = state._replace(temp=state.temp.at[1, 2, 3].set(np.nan))
    assert not bool(all_finite(bad))
    inf = state._replace(pres=state.pres.at[0, 0].set(np.inf))
    assert not bool(all_finite(inf))
