"""Model variants and run control.

Typical use::

    model = ShallowWaterModel(Parameters(trunc=31), drags=[JetDrag()])
    simulation = initialize(model)
    result = simulation.run(timedelta(days=10))
    result.raise_for_status()

`initialize` builds the spectral transform, geometry and boundaries, runs
every forcing and drag module's ``initialize`` and fills the prognostic
variables from the initial conditions. `Simulation.run` then steps the
semi-implicit leapfrog scheme until the period has elapsed, the caller asks
to stop (checked between steps) or NaN/Inf shows up in the prognostic
variables, which aborts the run and sets ``feedback.nars_detected``.
"""
from __future__ import annotations

import abc
import dataclasses
import enum
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Iterable, List, Optional, Union

import numpy as np

import jax
import jax.numpy as jnp

from . import filters
from . import implicit
from . import spectral
from . import tendencies
from .boundaries import Boundaries
from .errors import ConfigurationError, InstabilityError
from .forcing import seconds
from .geometry import Geometry
from .grids import FullGaussianGrid
from .initial_conditions import RandomVorticity, StartFromRest
from .parameters import Parameters
from .spectral_transform import SpectralTransform
from .time_stepping import Leapfrog, Stage, build_finalize, build_leapfrog_update, euler_update
from .variables import (
    DiagnosticVariables,
    GridVariables,
    PrognosticVariables,
    SpectralState,
    Tendencies,
)

_LOGGER = logging.getLogger(__name__)


# =============================================================================
# Run status
# =============================================================================

class RunStatus(enum.Enum):
    COMPLETED = "completed"
    INSTABILITY = "instability"
    STOPPED = "stopped"


@dataclass
class Feedback:
    """Persistent run feedback; ``nars_detected`` stays set once NaN/Inf was seen."""

    nars_detected: bool = False


@dataclass(frozen=True)
class RunResult:
    """Outcome of `Simulation.run`: status, steps taken in this run, model time [s]."""

    status: RunStatus
    n_steps: int
    time: float

    @property
    def ok(self) -> bool:
        return self.status is not RunStatus.INSTABILITY

    def raise_for_status(self) -> "RunResult":
        if self.status is RunStatus.INSTABILITY:
            raise InstabilityError(
                f"NaN or Inf in the prognostic variables at t = {self.time:.0f} s"
            )
        return self


# =============================================================================
# Models
# =============================================================================

def _as_modules(modules) -> List:
    if modules is None:
        return []
    if isinstance(modules, (list, tuple)):
        return list(modules)
    return [modules]


class AbstractModel(abc.ABC):
    """Configuration of one model variant plus its forcing and drag modules.

    ``transform``, ``geometry`` and ``boundaries`` are set by `initialize`;
    modules may read them (and ``params``) but never modify them.
    """

    kind = ""
    has_orography = True

    def __init__(
        self,
        params: Optional[Parameters] = None,
        *,
        forcings: Union[None, object, Iterable] = None,
        drags: Union[None, object, Iterable] = None,
        initial_conditions=None,
        orography=None,
    ):
        params = Parameters() if params is None else params
        self.params = self._adapt_parameters(params)
        self.forcings = _as_modules(forcings)
        self.drags = _as_modules(drags)
        self.initial_conditions = (
            self.default_initial_conditions() if initial_conditions is None else initial_conditions
        )
        if orography is not None and not self.has_orography:
            raise ConfigurationError(f"The {self.kind} model has no orography")
        self.orography = orography

        self.transform: Optional[SpectralTransform] = None
        self.geometry: Optional[Geometry] = None
        self.boundaries: Optional[Boundaries] = None

    def _adapt_parameters(self, params: Parameters) -> Parameters:
        return params

    def default_initial_conditions(self):
        return StartFromRest()

    @property
    def nlev(self) -> int:
        return int(self.params.nlev)

    @property
    def semi_implicit(self) -> bool:
        return float(self.params.alpha) > 0.0

    def build_boundaries(self, transform: SpectralTransform) -> Boundaries:
        orog = self.orography
        if orog is None:
            return Boundaries.flat(transform)
        if isinstance(orog, Boundaries):
            return orog
        return Boundaries.from_gaussian(orog, transform, self.params.gravity)

    @abc.abstractmethod
    def tendencies(self, ctx, dyn, lin):
        """Return ``(tendencies, grid variables)`` for the dynamics state ``dyn``."""

    def implicit_coefficients(self, dt_eff: float):
        return None

    apply_implicit: Optional[Callable] = None

    def diffusion(self) -> filters.HorizontalDiffusion:
        return filters.horizontal_diffusion(self.params, self.transform, self.nlev)


class _SingleLayerModel(AbstractModel):
    def _adapt_parameters(self, params: Parameters) -> Parameters:
        if params.nlev != 1:
            _LOGGER.info("%s model uses a single layer; nlev=%d replaced by 1", self.kind, params.nlev)
            params = dataclasses.replace(params, nlev=1)
        return params


class BarotropicModel(_SingleLayerModel):
    """Barotropic vorticity equation on the sphere."""

    kind = "barotropic"
    has_orography = False

    def default_initial_conditions(self):
        return RandomVorticity()

    def tendencies(self, ctx, dyn, lin):
        return tendencies.barotropic_tendencies(ctx, dyn, lin)


class ShallowWaterModel(_SingleLayerModel):
    """Single-layer shallow water equations; ``pres`` is the interface displacement."""

    kind = "shallow_water"

    def tendencies(self, ctx, dyn, lin):
        return tendencies.shallow_water_tendencies(ctx, dyn, lin)

    def implicit_coefficients(self, dt_eff: float):
        if not self.semi_implicit:
            return None
        return implicit.shallow_water_coefficients(self.params, self.transform, dt_eff)

    @property
    def apply_implicit(self):
        return implicit.apply_shallow_water if self.semi_implicit else None


class PrimitiveEquationModel(AbstractModel):
    """Dry primitive equations in sigma coordinates with humidity as a passive tracer."""

    kind = "primitive"

    def tendencies(self, ctx, dyn, lin):
        return tendencies.primitive_tendencies(ctx, dyn, lin)

    def implicit_coefficients(self, dt_eff: float):
        if not self.semi_implicit:
            return None
        return implicit.primitive_coefficients(self.params, self.transform, self.geometry, dt_eff)

    @property
    def apply_implicit(self):
        return implicit.apply_primitive if self.semi_implicit else None

    def diffusion(self) -> filters.HorizontalDiffusion:
        return filters.horizontal_diffusion(
            self.params, self.transform, self.nlev,
            stratosphere=True,
            geometry=self.geometry,
            orography_spec=self.boundaries.orography_spec,
        )


# =============================================================================
# Simulation
# =============================================================================

def _check_state(state: SpectralState, transform: SpectralTransform, nlev: int) -> None:
    for name, x in zip(SpectralState._fields, state):
        spectral.check_shape(x, transform.lmax, transform.mmax)
        if name != "pres" and x.shape[0] != nlev:
            raise ConfigurationError(f"Initial {name} has {x.shape[0]} levels, model has {nlev}")


def initialize(model: AbstractModel) -> "Simulation":
    """Build everything static for ``model`` and return a ready-to-run `Simulation`."""
    params = model.params
    grid = FullGaussianGrid(nlat=params.nlat, nlon=params.nlon)
    transform = SpectralTransform.build(grid, params.lmax, params.mmax, radius=params.radius)

    model.transform = transform
    model.geometry = Geometry.from_parameters(params, grid)
    model.boundaries = model.build_boundaries(transform)
    model.forcings = [module.initialize(model) for module in model.forcings]
    model.drags = [module.initialize(model) for module in model.drags]

    progn = PrognosticVariables.zeros(transform, model.nlev)
    state = model.initial_conditions.state(model)
    _check_state(state, transform, model.nlev)
    progn.set_level(0, state)
    progn.set_level(1, state)
    diagn = DiagnosticVariables.zeros(transform, model.nlev)

    _LOGGER.info(
        "Initialised %s model: T%d on %dx%d Gaussian grid, %d level(s), dt=%.0fs, alpha=%.1f",
        model.kind, params.trunc, grid.nlat, grid.nlon, model.nlev, params.dt, params.alpha,
    )
    return Simulation(model, progn, diagn)


class Simulation:
    """Prognostic and diagnostic variables of one model plus the compiled step."""

    def __init__(self, model: AbstractModel, progn: PrognosticVariables, diagn: DiagnosticVariables):
        self.model = model
        self.progn = progn
        self.diagn = diagn
        self.feedback = Feedback()
        self.scheme = Leapfrog.from_parameters(model.params)
        self._stop_requested = False

        transform = model.transform
        self._dtype = transform.P.dtype
        ctx = tendencies.DynamicsContext(model.params, transform, model.geometry, model.boundaries)
        self._dynamics = jax.jit(lambda dyn, lin: model.tendencies(ctx, dyn, lin))
        self._implicit = {stage: model.implicit_coefficients(self.scheme.dt_eff(stage)) for stage in Stage}
        self._finalize = build_finalize(model.apply_implicit, model.diffusion(), transform.spectral_truncation)
        self._update = build_leapfrog_update(self.scheme)

    @property
    def clock(self):
        return self.progn.clock

    def stop(self) -> None:
        """Ask `run` to stop at the next step boundary."""
        self._stop_requested = True

    def _tendencies(self, stage: Stage) -> SpectralState:
        model, progn, diagn = self.model, self.progn, self.diagn
        lf, old_lf = Leapfrog.levels(stage)
        dyn = progn.level(lf)
        old = progn.level(old_lf)
        lin = old if model.semi_implicit else dyn

        tend, grid = self._dynamics(dyn, lin)
        diagn.tendencies = Tendencies.from_state(tend)
        diagn.grid = grid
        for module in model.forcings:
            module.forcing(diagn, progn, model, lf)
        for module in model.drags:
            module.drag(diagn, progn, model, lf)

        dt_eff = jnp.asarray(self.scheme.dt_eff(stage), dtype=self._dtype)
        return self._finalize(diagn.tendencies.as_state(), old, self._implicit[stage], dt_eff)

    def step(self) -> bool:
        """Advance one time step; returns False if NaN/Inf appeared."""
        progn = self.progn
        dt = self.scheme.dt
        if progn.clock.n_steps == 0:
            tend = self._tendencies(Stage.EULER)
            progn.set_level(1, euler_update(progn.level(0), tend, jnp.asarray(0.5 * dt, dtype=self._dtype)))
            tend = self._tendencies(Stage.FIRST_LEAPFROG)
            progn.set_level(1, euler_update(progn.level(0), tend, jnp.asarray(dt, dtype=self._dtype)))
        else:
            tend = self._tendencies(Stage.LEAPFROG)
            level0, level1 = self._update(
                progn.level(0), progn.level(1), tend, jnp.asarray(2.0 * dt, dtype=self._dtype)
            )
            progn.set_level(0, level0)
            progn.set_level(1, level1)
        progn.clock.tick(dt)
        return bool(filters.all_finite(progn.level(0))) and bool(filters.all_finite(progn.level(1)))

    def _steps_for(self, period, n_steps: Optional[int]) -> int:
        if period is not None and n_steps is not None:
            raise ConfigurationError("Give either a period or a number of steps, not both")
        if n_steps is not None:
            return int(n_steps)
        if period is None:
            return self.model.params.n_steps
        return int(round(seconds(period) / self.scheme.dt))

    def run(
        self,
        period: Union[None, timedelta, float] = None,
        *,
        n_steps: Optional[int] = None,
        on_step: Optional[Callable[["Simulation"], None]] = None,
    ) -> RunResult:
        """Integrate for ``period`` (default: ``params.ndays``) or ``n_steps``.

        ``on_step(simulation)`` is called after every completed step and may
        call `stop`. Instability ends the run with `RunStatus.INSTABILITY`;
        a simulation that has gone unstable refuses to run again.
        """
        steps = self._steps_for(period, n_steps)
        clock = self.progn.clock
        if self.feedback.nars_detected:
            _LOGGER.error("Simulation became unstable at t=%.0fs and cannot continue", clock.time)
            return RunResult(RunStatus.INSTABILITY, 0, clock.time)

        self._stop_requested = False
        _LOGGER.info("Running %s model for %d steps from t=%.0fs", self.model.kind, steps, clock.time)

        status = RunStatus.COMPLETED
        taken = 0
        report_every = max(1, steps // 10)
        for _ in range(steps):
            if self._stop_requested:
                status = RunStatus.STOPPED
                break
            finite = self.step()
            taken += 1
            if not finite:
                self.feedback.nars_detected = True
                status = RunStatus.INSTABILITY
                _LOGGER.error(
                    "NaN or Inf detected in the prognostic variables after step %d (t=%.0fs); run aborted",
                    clock.n_steps, clock.time,
                )
                break
            if on_step is not None:
                on_step(self)
            if taken % report_every == 0:
                _LOGGER.debug("Step %d/%d, t=%.2f days", taken, steps, clock.time / 86400.0)

        if status is RunStatus.COMPLETED:
            _LOGGER.info("Run completed: %d steps, t=%.2f days", taken, clock.time / 86400.0)
        elif status is RunStatus.STOPPED:
            _LOGGER.info("Run stopped after %d steps, t=%.2f days", taken, clock.time / 86400.0)
        return RunResult(status, taken, clock.time)

    def grid_variables(self, lf: int = 1) -> GridVariables:
        """Grid-point fields (including u, v) of leapfrog level ``lf``."""
        st = self.model.transform
        state = self.progn.level(lf)
        u, v = st.winds_grid(state.vor, state.div)
        return GridVariables(
            vor_grid=st.inverse(state.vor),
            div_grid=st.inverse(state.div),
            temp_grid=st.inverse(state.temp),
            humid_grid=st.inverse(state.humid),
            pres_grid=st.inverse(state.pres),
            u_grid=u,
            v_grid=v,
        )

    def to_numpy(self, lf: int = 1) -> dict:
        """Host copies of the grid-point fields of level ``lf``, keyed by field name."""
        fields = self.grid_variables(lf)
        return {name: np.asarray(x) for name, x in zip(GridVariables._fields, fields)}
