from __future__ import annotations

from datetime import timedelta

import numpy as np
import pytest


def _simulation(model_cls_name: str = "BarotropicModel", trunc: int = 21, **model_kwargs):
    from spectral_dycore import model as model_module
    from spectral_dycore.parameters import Parameters

    model_cls = getattr(model_module, model_cls_name)
    return model_module.initialize(model_cls(Parameters(trunc=trunc), **model_kwargs))


def test_seconds_accepts_timedelta_and_numbers() -> None:
    from spectral_dycore.forcing import seconds

    assert seconds(timedelta(hours=2)) == 7200.0
    assert seconds(60) == 60.0


def test_stirring_mask_respects_wavenumber_limits() -> None:
    from spectral_dycore.forcing import StochasticStirring
    from spectral_dycore.spectral import degrees, orders

    sim = _simulation(forcings=[StochasticStirring(lmin=5, lmax=12, mmin=2, mmax=6)])
    stirring = sim.model.forcings[0]
    mask = np.asarray(stirring.mask)

    l = degrees(21)
    m = orders(21)
    expected = (l >= 5) & (l <= 12) & (m >= 2) & (m <= 6) & (l >= m)
    assert np.array_equal(mask, expected)
    assert 0.0 < stirring.b < 1.0
    assert stirring.a > 0.0


def test_stirring_beyond_truncation_warns() -> None:
    from spectral_dycore.forcing import StochasticStirring

    with pytest.warns(UserWarning, match="exceeds"):
        sim = _simulation(forcings=[StochasticStirring(lmax=100)])
    mask = np.asarray(sim.model.forcings[0].mask)
    assert not mask[:, -1].any()


def test_stirring_pattern_and_tendency() -> None:
    from spectral_dycore.forcing import StochasticStirring

    sim = _simulation(forcings=[StochasticStirring(seed=7)])
    stirring = sim.model.forcings[0]
    diagn = sim.diagn
    before = np.asarray(diagn.tendencies.vor_tend).copy()
    key0 = np.asarray(stirring.key).copy()

    stirring.forcing(diagn, sim.progn, sim.model, 1)

    S = np.asarray(stirring.S)
    mask = np.asarray(stirring.mask)
    assert np.any(S[mask] != 0.0)
    assert not np.any(S[~mask])
    assert not np.array_equal(np.asarray(stirring.key), key0)

    after = np.asarray(diagn.tendencies.vor_tend)
    assert np.any(after[diagn.surface] != before[diagn.surface])


def test_stirring_is_reproducible_per_seed() -> None:
    from spectral_dycore.forcing import StochasticStirring

    patterns = []
    for seed in (1, 1, 2):
        sim = _simulation(trunc=10, forcings=[StochasticStirring(seed=seed, lmin=2, mmin=1)])
        module = sim.model.forcings[0]
        module.forcing(sim.diagn, sim.progn, sim.model, 1)
        patterns.append(np.asarray(module.S))
    assert np.array_equal(patterns[0], patterns[1])
    assert not np.array_equal(patterns[0], patterns[2])


def test_interface_relaxation() -> None:
    from spectral_dycore.forcing import InterfaceRelaxation

    sim = _simulation("ShallowWaterModel", forcings=[InterfaceRelaxation(timedelta(hours=10), height=70.0)])
    module = sim.model.forcings[0]

    # 0.5 h (1 - 3 mu^2) = -h P_2 projects on (l, m) = (2, 0) only
    eta_eq = np.asarray(module.eta_eq).copy()
    assert complex(eta_eq[0, 2]).real == pytest.approx(-70.0 * np.sqrt(0.4))
    eta_eq[0, 2] = 0.0
    assert np.allclose(eta_eq, 0.0, atol=1e-10)

    diagn = sim.diagn
    module.forcing(diagn, sim.progn, sim.model, 1)
    tend = np.asarray(diagn.tendencies.pres_tend)
    assert complex(tend[0, 2]).real == pytest.approx(-70.0 * np.sqrt(0.4) / 36000.0)


def test_temperature_relaxation_warms_cold_start() -> None:
    from spectral_dycore.forcing import TemperatureRelaxation
    from spectral_dycore.model import PrimitiveEquationModel, initialize
    from spectral_dycore.parameters import Parameters

    sim = initialize(PrimitiveEquationModel(Parameters(trunc=10, nlev=5), forcings=[TemperatureRelaxation()]))
    diagn = sim.diagn
    # grid fields are zero before the first step: everything is below T_eq
    sim.model.forcings[0].forcing(diagn, sim.progn, sim.model, 1)
    tend = np.asarray(diagn.tendencies.temp_tend)
    assert np.all(tend[:, 0, 0].real > 0.0)

    sim.run(n_steps=3).raise_for_status()


def test_jet_drag_reference_is_zonal() -> None:
    from spectral_dycore.drag import JetDrag

    sim = _simulation(drags=[JetDrag(time_scale=timedelta(days=1))])
    module = sim.model.drags[0]
    vor_ref = np.asarray(module.vor_ref)
    assert np.any(vor_ref[0] != 0.0)
    assert np.allclose(vor_ref[1:], 0.0, atol=1e-18)

    # from rest the drag spins up the reference vorticity
    progn = sim.progn
    progn.set_level(1, progn.level(1)._replace(vor=np.zeros_like(np.asarray(progn.level(1).vor))))
    diagn = sim.diagn
    module.drag(diagn, progn, sim.model, 1)
    tend = np.asarray(diagn.tendencies.vor_tend)[0]
    assert np.allclose(tend, vor_ref / 86400.0, rtol=1e-12, atol=1e-24)


def test_rayleigh_drag_tendency() -> None:
    from spectral_dycore.drag import RayleighDrag
    from spectral_dycore.initial_conditions import RandomVorticity

    sim = _simulation(drags=[RayleighDrag(3600.0)], initial_conditions=RandomVorticity(seed=4))
    diagn = sim.diagn
    sim.model.drags[0].drag(diagn, sim.progn, sim.model, 0)
    vor = np.asarray(sim.progn.vor[0])
    assert np.allclose(np.asarray(diagn.tendencies.vor_tend), -vor / 3600.0, rtol=1e-12, atol=1e-30)


def test_no_op_modules() -> None:
    from spectral_dycore.drag import NoDrag
    from spectral_dycore.forcing import NoForcing

    sim = _simulation(trunc=10, forcings=NoForcing(), drags=NoDrag())
    before = sim.diagn.tendencies.as_state()
    sim.model.forcings[0].forcing(sim.diagn, sim.progn, sim.model, 1)
    sim.model.drags[0].drag(sim.diagn, sim.progn, sim.model, 1)
    after = sim.diagn.tendencies.as_state()
    assert all(a is b for a, b in zip(before, after))
