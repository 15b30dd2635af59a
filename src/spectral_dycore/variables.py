"""Prognostic and diagnostic variable containers.

Spectral fields carry a leading level axis, ``(nlev, mmax+1, lmax+2)``,
except surface pressure which is a single ``(mmax+1, lmax+2)`` field. Every
model variant carries all five prognostic variables; the ones a model does
not integrate stay zero.

Leapfrog keeps two stored time levels: ``lf = 0`` is the old (filtered) level
and ``lf = 1`` the current one. The "new" level only exists transiently
inside the time step.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple, Optional, Tuple

import jax.numpy as jnp

from .spectral_transform import SpectralTransform

VARIABLE_NAMES = ("vor", "div", "temp", "humid", "pres")


class SpectralState(NamedTuple):
    """One time level of the prognostic spectral fields."""

    vor: jnp.ndarray
    div: jnp.ndarray
    temp: jnp.ndarray
    humid: jnp.ndarray
    pres: jnp.ndarray

    @classmethod
    def zeros(cls, transform: SpectralTransform, nlev: int) -> "SpectralState":
        z3 = transform.zeros_spectral(nlev)
        return cls(vor=z3, div=z3, temp=z3, humid=z3, pres=transform.zeros_spectral())

    def map(self, fun) -> "SpectralState":
        return SpectralState(*(fun(x) for x in self))


@dataclass
class Clock:
    """Model time in seconds since the start of the run and steps taken."""

    time: float = 0.0
    n_steps: int = 0

    def tick(self, dt: float) -> None:
        self.time += float(dt)
        self.n_steps += 1


class PrognosticVariables:
    """Leapfrog time levels of the spectral state plus the model clock.

    Read access mirrors the per-variable, per-level indexing used by
    forcing and drag modules: ``progn.vor[lf]``, ``progn.pres[lf]``.
    Only the time integrator writes (`set_level`).
    """

    def __init__(self, levels: Tuple[SpectralState, SpectralState], clock: Optional[Clock] = None):
        self._levels = list(levels)
        self.clock = Clock() if clock is None else clock

    @classmethod
    def zeros(cls, transform: SpectralTransform, nlev: int) -> "PrognosticVariables":
        state = SpectralState.zeros(transform, nlev)
        return cls((state, state))

    @property
    def n_levels(self) -> int:
        return len(self._levels)

    @property
    def nlev(self) -> int:
        return int(self._levels[0].vor.shape[0])

    def level(self, lf: int) -> SpectralState:
        return self._levels[lf]

    def set_level(self, lf: int, state: SpectralState) -> None:
        self._levels[lf] = state

    def _variable(self, name: str) -> Tuple[jnp.ndarray, ...]:
        return tuple(getattr(state, name) for state in self._levels)

    @property
    def vor(self):
        return self._variable("vor")

    @property
    def div(self):
        return self._variable("div")

    @property
    def temp(self):
        return self._variable("temp")

    @property
    def humid(self):
        return self._variable("humid")

    @property
    def pres(self):
        return self._variable("pres")


@dataclass
class Tendencies:
    """Spectral tendencies of one time step; hooks add to these in place."""

    vor_tend: jnp.ndarray
    div_tend: jnp.ndarray
    temp_tend: jnp.ndarray
    humid_tend: jnp.ndarray
    pres_tend: jnp.ndarray

    @classmethod
    def from_state(cls, state: SpectralState) -> "Tendencies":
        return cls(*state)

    def as_state(self) -> SpectralState:
        return SpectralState(self.vor_tend, self.div_tend, self.temp_tend, self.humid_tend, self.pres_tend)


class GridVariables(NamedTuple):
    """Grid-point fields of the level the tendencies were evaluated at."""

    vor_grid: jnp.ndarray
    div_grid: jnp.ndarray
    temp_grid: jnp.ndarray
    humid_grid: jnp.ndarray
    pres_grid: jnp.ndarray
    u_grid: jnp.ndarray
    v_grid: jnp.ndarray


@dataclass
class DiagnosticVariables:
    """Working fields overwritten every step."""

    tendencies: Tendencies
    grid: GridVariables
    nlev: int = field(default=1)

    @classmethod
    def zeros(cls, transform: SpectralTransform, nlev: int) -> "DiagnosticVariables":
        zg = transform.zeros_grid(nlev)
        return cls(
            tendencies=Tendencies.from_state(SpectralState.zeros(transform, nlev)),
            grid=GridVariables(zg, zg, zg, zg, transform.zeros_grid(), zg, zg),
            nlev=int(nlev),
        )

    @property
    def surface(self) -> int:
        """Index of the lowest model level."""
        return self.nlev - 1
