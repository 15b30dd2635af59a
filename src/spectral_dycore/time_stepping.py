"""
Semi-implicit leapfrog time integration.

A time step is split into jitted phases with the forcing/drag hooks in
between (they may keep Python-side state, e.g. a random key):

    dynamics   tendencies of the ``dyn`` level, linear terms from ``lin``
    hooks      forcing and drag modules add to the tendencies in place
    finalize   semi-implicit correction, horizontal diffusion, truncation
    update     leapfrog update and Robert-Williams filter

The leapfrog scheme needs two stored levels. The very first step has no old
level and is taken as

    1. Euler half step:    x(dt/2) = x(0) + dt/2 * T(x(0))
    2. initial leapfrog:   x(dt)   = x(0) + dt   * T(x(dt/2))

without filtering; every later step is ``new = old + 2 dt T(curr)``
followed by the Robert-Williams filter.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import jax
import jax.numpy as jnp

from . import filters
from .filters import HorizontalDiffusion
from .parameters import Parameters
from .variables import SpectralState


class Stage(enum.Enum):
    EULER = "euler"
    FIRST_LEAPFROG = "first_leapfrog"
    LEAPFROG = "leapfrog"


@dataclass(frozen=True)
class Leapfrog:
    """Leapfrog settings: time step, Robert and Williams filter coefficients."""

    dt: float
    robert_filter: float = 0.05
    williams_filter: float = 0.53

    @classmethod
    def from_parameters(cls, params: Parameters) -> "Leapfrog":
        return cls(
            dt=float(params.dt),
            robert_filter=float(params.robert_filter),
            williams_filter=float(params.williams_filter),
        )

    def dt_eff(self, stage: Stage) -> float:
        """Time span the tendencies are integrated over in ``stage``."""
        if stage is Stage.EULER:
            return 0.5 * self.dt
        if stage is Stage.FIRST_LEAPFROG:
            return self.dt
        return 2.0 * self.dt

    @staticmethod
    def stages(first_step: bool) -> Tuple[Stage, ...]:
        if first_step:
            return (Stage.EULER, Stage.FIRST_LEAPFROG)
        return (Stage.LEAPFROG,)

    @staticmethod
    def levels(stage: Stage) -> Tuple[int, int]:
        """(dyn, old): the stored level tendencies are evaluated at and the one stepped from."""
        if stage is Stage.EULER:
            return 0, 0
        return 1, 0


def build_finalize(
    apply_implicit: Optional[Callable],
    diffusion: HorizontalDiffusion,
    truncation: Callable[[jnp.ndarray], jnp.ndarray],
):
    """Jitted ``finalize(tend, old, implicit_coeffs, dt_eff) -> tend``.

    ``apply_implicit`` is None for explicit stepping (alpha = 0) and for the
    barotropic model. The implicit coefficients arrive as an argument, one
    set per effective step, so a single compilation serves all stages.
    """

    @jax.jit
    def finalize(tend: SpectralState, old: SpectralState, coeffs, dt_eff) -> SpectralState:
        if apply_implicit is not None:
            tend = apply_implicit(coeffs, tend)
        tend = filters.apply_diffusion(diffusion, tend, old, dt_eff)
        return tend.map(truncation)

    return finalize


@jax.jit
def euler_update(old: SpectralState, tend: SpectralState, dt_eff) -> SpectralState:
    """``old + dt_eff * tend`` without filtering."""
    return SpectralState(*(x + dt_eff * t for x, t in zip(old, tend)))


def build_leapfrog_update(scheme: Leapfrog):
    """Jitted ``update(old, curr, tend, dt_eff) -> (level 0, level 1)``."""
    robert = scheme.robert_filter
    williams = scheme.williams_filter

    @jax.jit
    def update(old: SpectralState, curr: SpectralState, tend: SpectralState, dt_eff):
        new = SpectralState(*(x + dt_eff * t for x, t in zip(old, tend)))
        return filters.filter_states(old, curr, new, robert, williams)

    return update
