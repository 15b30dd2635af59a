from __future__ import annotations

import logging
from datetime import timedelta

import numpy as np
import pytest


class _ZonalHarmonic:
    """Vorticity in a single zonal harmonic (l, 0), everything else at rest."""

    def __init__(self, l: int = 3, value: float = 1e-5):
        self.l = l
        self.value = value

    def state(self, model):
        from spectral_dycore.initial_conditions import StartFromRest
        from spectral_dycore.spectral import harmonic

        st = model.transform
        state = StartFromRest().state(model)
        vor = harmonic(st.lmax, self.l, 0, self.value, st.mmax, dtype=st.complex_dtype)
        return state._replace(vor=vor[None])


def _barotropic(trunc: int = 21, **kwargs):
    from spectral_dycore.model import BarotropicModel
    from spectral_dycore.parameters import Parameters

    model_kwargs = {k: kwargs.pop(k) for k in ("forcings", "drags", "initial_conditions") if k in kwargs}
    return BarotropicModel(Parameters(trunc=trunc, **kwargs), **model_kwargs)


def test_leapfrog_stages() -> None:
    from spectral_dycore.time_stepping import Leapfrog, Stage

    scheme = Leapfrog(dt=600.0)
    assert Leapfrog.stages(True) == (Stage.EULER, Stage.FIRST_LEAPFROG)
    assert Leapfrog.stages(False) == (Stage.LEAPFROG,)
    assert [scheme.dt_eff(s) for s in Stage] == [300.0, 600.0, 1200.0]
    assert Leapfrog.levels(Stage.EULER) == (0, 0)
    assert Leapfrog.levels(Stage.LEAPFROG) == (1, 0)


def test_single_layer_models_force_one_level(caplog) -> None:
    from spectral_dycore.model import ShallowWaterModel
    from spectral_dycore.parameters import Parameters

    with caplog.at_level(logging.INFO, logger="spectral_dycore.model"):
        model = ShallowWaterModel(Parameters(trunc=10, nlev=8))
    assert model.nlev == 1
    assert "single layer" in caplog.text


def test_barotropic_rejects_orography() -> None:
    from spectral_dycore.errors import ConfigurationError
    from spectral_dycore.model import BarotropicModel

    with pytest.raises(ConfigurationError):
        BarotropicModel(orography=np.zeros((32, 64)))


def test_model_variants_must_define_tendencies() -> None:
    from spectral_dycore.model import AbstractModel
    from spectral_dycore.parameters import Parameters

    with pytest.raises(TypeError):
        AbstractModel(Parameters(trunc=10))

    class NoTendencies(AbstractModel):
        kind = "barotropic"

    with pytest.raises(TypeError):
        NoTendencies(Parameters(trunc=10))


def test_barotropic_zonal_flow_is_steady() -> None:
    from spectral_dycore.initial_conditions import SolidBodyRotation
    from spectral_dycore.model import RunStatus, initialize

    sim = initialize(_barotropic(horizontal_diffusion=False, initial_conditions=SolidBodyRotation()))
    vor0 = np.asarray(sim.progn.level(0).vor)
    result = sim.run(n_steps=10)

    assert result.status is RunStatus.COMPLETED
    assert result.n_steps == 10
    assert sim.clock.n_steps == 10
    assert sim.clock.time == pytest.approx(10 * sim.model.params.dt)
    assert np.allclose(np.asarray(sim.progn.level(1).vor), vor0, rtol=1e-10, atol=1e-18)

    fields = sim.to_numpy()
    lat = sim.model.transform.grid.latitudes[:, None]
    assert np.allclose(fields["u_grid"][0], 20.0 * np.cos(lat), atol=1e-8)


def test_shallow_water_balanced_flow_is_steady() -> None:
    from spectral_dycore.initial_conditions import SolidBodyRotation
    from spectral_dycore.model import ShallowWaterModel, initialize
    from spectral_dycore.parameters import Parameters

    model = ShallowWaterModel(
        Parameters(trunc=21, horizontal_diffusion=False),
        initial_conditions=SolidBodyRotation(u0=20.0),
    )
    sim = initialize(model)
    start = sim.progn.level(0)
    sim.run(n_steps=12).raise_for_status()
    end = sim.progn.level(1)

    assert np.allclose(np.asarray(end.vor), np.asarray(start.vor), rtol=1e-9, atol=1e-16)
    assert np.allclose(np.asarray(end.pres), np.asarray(start.pres), rtol=1e-9, atol=1e-8)
    assert np.allclose(np.asarray(end.div), 0.0, atol=1e-16)


def test_instability_is_detected_and_sticky() -> None:
    from spectral_dycore.errors import InstabilityError
    from spectral_dycore.initial_conditions import RandomVorticity
    from spectral_dycore.model import RunStatus, initialize

    model = _barotropic(
        nstepsday=1,
        horizontal_diffusion=False,
        initial_conditions=RandomVorticity(amplitude=1e-3, power_law=0.0),
    )
    sim = initialize(model)
    result = sim.run(n_steps=200)

    assert result.status is RunStatus.INSTABILITY
    assert not result.ok
    assert 0 < result.n_steps < 200
    assert sim.feedback.nars_detected
    with pytest.raises(InstabilityError):
        result.raise_for_status()

    again = sim.run(n_steps=5)
    assert again.status is RunStatus.INSTABILITY
    assert again.n_steps == 0


def test_rayleigh_drag_decays_exponentially() -> None:
    from spectral_dycore.drag import RayleighDrag
    from spectral_dycore.model import initialize

    sim = initialize(_barotropic(
        horizontal_diffusion=False,
        drags=[RayleighDrag(timedelta(days=1))],
        initial_conditions=_ZonalHarmonic(l=3, value=1e-5),
    ))
    sim.run(timedelta(days=2)).raise_for_status()
    assert sim.clock.time == pytest.approx(2 * 86400.0)

    vor = complex(np.asarray(sim.progn.level(1).vor)[0, 0, 3])
    assert vor.real == pytest.approx(1e-5 * np.exp(-2.0), rel=1e-2)


def test_drag_modules_add_up() -> None:
    from spectral_dycore.drag import RayleighDrag
    from spectral_dycore.model import initialize

    ic = _ZonalHarmonic(l=4, value=2e-5)
    one = initialize(_barotropic(drags=RayleighDrag(timedelta(days=1)), initial_conditions=ic))
    two = initialize(_barotropic(
        drags=[RayleighDrag(timedelta(days=2)), RayleighDrag(2 * 86400.0)], initial_conditions=ic,
    ))
    one.run(n_steps=5)
    two.run(n_steps=5)
    assert np.allclose(np.asarray(one.progn.level(1).vor), np.asarray(two.progn.level(1).vor),
                       rtol=1e-12, atol=1e-20)


def test_run_can_be_stopped_between_steps() -> None:
    from spectral_dycore.model import RunStatus, initialize

    sim = initialize(_barotropic(trunc=10))

    def on_step(simulation) -> None:
        if simulation.clock.n_steps == 3:
            simulation.stop()

    result = sim.run(n_steps=10, on_step=on_step)
    assert result.status is RunStatus.STOPPED
    assert result.ok
    assert result.n_steps == 3

    # a later run starts afresh and continues the clock
    result = sim.run(n_steps=2)
    assert result.status is RunStatus.COMPLETED
    assert sim.clock.n_steps == 5


def test_period_and_steps_are_exclusive() -> None:
    from spectral_dycore.errors import ConfigurationError
    from spectral_dycore.model import initialize

    sim = initialize(_barotropic(trunc=10))
    with pytest.raises(ConfigurationError):
        sim.run(timedelta(hours=2), n_steps=3)
    assert sim._steps_for(timedelta(hours=4), None) == 6
    assert sim._steps_for(None, None) == sim.model.params.n_steps


@pytest.mark.parametrize("kind", ["barotropic", "shallow_water"])
def test_forced_single_layer_runs(kind: str) -> None:
    from spectral_dycore.drag import JetDrag
    from spectral_dycore.forcing import StochasticStirring
    from spectral_dycore.initial_conditions import StartFromRest
    from spectral_dycore.model import BarotropicModel, RunStatus, ShallowWaterModel, initialize
    from spectral_dycore.parameters import Parameters

    model_cls = BarotropicModel if kind == "barotropic" else ShallowWaterModel
    model = model_cls(
        Parameters(trunc=31, nlev=4),
        forcings=[StochasticStirring(seed=3)],
        drags=[JetDrag()],
        initial_conditions=StartFromRest(),
    )
    assert model.nlev == 1

    sim = initialize(model)
    result = sim.run(timedelta(days=5))
    assert result.status is RunStatus.COMPLETED
    assert result.n_steps == 5 * 36

    fields = sim.to_numpy()
    for name, x in fields.items():
        assert np.all(np.isfinite(x)), name
    # the jet relaxation spins up westerlies near 30N
    lat = sim.model.transform.grid.latd
    band = (lat > 20.0) & (lat < 40.0)
    assert fields["u_grid"][0, band].mean() > 0.0


def test_primitive_rest_state_stays_at_rest() -> None:
    from spectral_dycore.model import PrimitiveEquationModel, initialize
    from spectral_dycore.parameters import Parameters

    sim = initialize(PrimitiveEquationModel(Parameters(trunc=21, nlev=8)))
    start = sim.progn.level(0)
    temp0 = np.asarray(start.temp)
    # horizontally uniform reference atmosphere
    assert np.count_nonzero(np.abs(temp0) > 1e-12 * np.abs(temp0).max()) <= 8
    assert np.all(np.asarray(start.humid)[:, 0, 0].real >= 0.0)

    sim.run(n_steps=10).raise_for_status()
    end = sim.progn.level(1)
    assert np.allclose(np.asarray(end.vor), 0.0, atol=1e-14)
    assert np.allclose(np.asarray(end.div), 0.0, atol=1e-14)
    assert np.allclose(np.asarray(end.temp), temp0, rtol=1e-10, atol=1e-10)
    assert np.allclose(np.asarray(end.pres), np.asarray(start.pres), rtol=1e-10, atol=1e-12)


def test_primitive_with_mountain_stays_finite() -> None:
    from spectral_dycore.forcing import TemperatureRelaxation
    from spectral_dycore.grids import FullGaussianGrid
    from spectral_dycore.model import PrimitiveEquationModel, initialize
    from spectral_dycore.parameters import Parameters

    params = Parameters(trunc=21, nlev=8)
    grid = FullGaussianGrid(params.nlat, params.nlon)
    lat = grid.latd[:, None]
    lon = grid.lond[None, :]
    mountain = 1000.0 * np.exp(-((lat - 30.0) ** 2 + (lon - 90.0) ** 2) / (2.0 * 15.0**2))

    model = PrimitiveEquationModel(params, forcings=[TemperatureRelaxation()], orography=mountain)
    sim = initialize(model)
    assert not model.boundaries.is_flat
    # surface pressure lower over the mountain
    lnps = np.asarray(model.transform.inverse(sim.progn.level(0).pres))
    j, i = np.unravel_index(np.argmax(mountain), mountain.shape)
    assert lnps[j, i] < lnps.mean()

    result = sim.run(n_steps=12)
    assert result.ok
    for name, x in sim.to_numpy().items():
        assert np.all(np.isfinite(x)), name
