"""
Drag modules.

Same contract as the forcing modules (see `forcing`), called after all of
them: ``module.drag(diagn, progn, model, lf)`` rebinds tendency arrays in
``diagn.tendencies``, conventionally as a relaxation

    tend -= rate * (state - reference)
"""
from __future__ import annotations

import abc
from datetime import timedelta

import numpy as np

import jax.numpy as jnp

from .forcing import TimeScale, seconds


class AbstractDrag(abc.ABC):
    """Base class of all drag modules."""

    def initialize(self, model) -> "AbstractDrag":
        return self

    @abc.abstractmethod
    def drag(self, diagn, progn, model, lf: int) -> None:
        """Add this module's contribution to ``diagn.tendencies``."""


class NoDrag(AbstractDrag):
    def drag(self, diagn, progn, model, lf: int) -> None:
        return None


class JetDrag(AbstractDrag):
    """Relaxes surface-layer vorticity towards that of a Gaussian zonal jet.

        u_ref = u0 exp(-(lat - latitude)^2 / (2 width^2))
        d(zeta)/dt += -(zeta - curl(u_ref)) / time_scale
    """

    def __init__(self, time_scale: TimeScale = timedelta(days=6), u0: float = 20.0,
                 latitude: float = 30.0, width: float = 6.0):
        self.time_scale = time_scale
        self.u0 = float(u0)
        self.latitude = float(latitude)
        self.width = float(width)
        self.vor_ref = None

    def initialize(self, model) -> "JetDrag":
        st = model.transform
        latd = np.asarray(st.grid.latd)[:, None]
        u = self.u0 * np.exp(-((latd - self.latitude) ** 2) / (2.0 * self.width**2))
        u = jnp.asarray(u * np.ones(st.grid.shape), dtype=st.P.dtype)
        self.vor_ref = st.curl_grid(u, jnp.zeros_like(u))
        return self

    def drag(self, diagn, progn, model, lf: int) -> None:
        rate = 1.0 / seconds(self.time_scale)
        k = diagn.surface
        tend = diagn.tendencies
        vor = progn.vor[lf][k]
        tend.vor_tend = tend.vor_tend.at[k].add(-rate * (vor - self.vor_ref))


class RayleighDrag(AbstractDrag):
    """Linear drag on surface-layer vorticity and divergence, rate 1/time_scale."""

    def __init__(self, time_scale: TimeScale = timedelta(days=1)):
        self.time_scale = time_scale

    def drag(self, diagn, progn, model, lf: int) -> None:
        rate = 1.0 / seconds(self.time_scale)
        k = diagn.surface
        tend = diagn.tendencies
        tend.vor_tend = tend.vor_tend.at[k].add(-rate * progn.vor[lf][k])
        tend.div_tend = tend.div_tend.at[k].add(-rate * progn.div[lf][k])
