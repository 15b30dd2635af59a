"""spectral_dycore

Spectral dynamical core of a global atmosphere model in JAX: spherical
harmonic transforms on a full Gaussian grid, barotropic, shallow water and
primitive equation models, a semi-implicit leapfrog integrator with the
Robert-Williams filter, and pluggable forcing and drag modules.

Precision
---------
JAX defaults to float32. For double precision set

    SPECTRAL_DYCORE_ENABLE_X64=1

*before* importing `spectral_dycore`.
"""

from __future__ import annotations

import importlib as _importlib
import os as _os

from ._version import __version__

# Configure JAX precision at import time (before creating arrays / compiling).
# Any user-provided JAX configuration is respected unless the environment
# variable is set, which then acts as an explicit override.
from jax import config as _config

_env_x64 = _os.getenv("SPECTRAL_DYCORE_ENABLE_X64")
if _env_x64 is not None:
    _config.update("jax_enable_x64", _env_x64.strip().lower() in {"1", "true", "yes", "y", "on"})

from . import spectral
from . import legendre
from . import grids
from . import spectral_transform
from . import geometry
from . import boundaries
from . import variables
from . import implicit
from . import filters
from . import tendencies
from . import time_stepping
from . import forcing
from . import drag
from . import initial_conditions
from . import model
from . import main_function

from .boundaries import Boundaries
from .drag import AbstractDrag, JetDrag, NoDrag, RayleighDrag
from .errors import ConfigurationError, InstabilityError
from .forcing import (
    AbstractForcing,
    InterfaceRelaxation,
    NoForcing,
    StochasticStirring,
    TemperatureRelaxation,
)
from .grids import FullGaussianGrid
from .initial_conditions import RandomVorticity, RossbyHaurwitzWave, SolidBodyRotation, StartFromRest
from .model import (
    BarotropicModel,
    Feedback,
    PrimitiveEquationModel,
    RunResult,
    RunStatus,
    ShallowWaterModel,
    Simulation,
    initialize,
)
from .parameters import Parameters
from .spectral_transform import SpectralTransform

__all__ = [
    "spectral",
    "legendre",
    "grids",
    "spectral_transform",
    "geometry",
    "boundaries",
    "variables",
    "implicit",
    "filters",
    "tendencies",
    "time_stepping",
    "forcing",
    "drag",
    "initial_conditions",
    "model",
    "main_function",
    "plotting",
    "AbstractDrag",
    "AbstractForcing",
    "BarotropicModel",
    "Boundaries",
    "ConfigurationError",
    "Feedback",
    "FullGaussianGrid",
    "InstabilityError",
    "InterfaceRelaxation",
    "JetDrag",
    "NoDrag",
    "NoForcing",
    "Parameters",
    "PrimitiveEquationModel",
    "RandomVorticity",
    "RayleighDrag",
    "RossbyHaurwitzWave",
    "RunResult",
    "RunStatus",
    "ShallowWaterModel",
    "Simulation",
    "SolidBodyRotation",
    "SpectralTransform",
    "StartFromRest",
    "StochasticStirring",
    "TemperatureRelaxation",
    "initialize",
]


def __getattr__(name: str):
    """Lazy imports for heavy optional modules.

    `spectral_dycore.plotting` pulls in matplotlib/imageio, which is expensive
    and unnecessary for pure simulation workloads. Import on demand.
    """

    if name == "plotting":
        _plotting = _importlib.import_module(f"{__name__}.plotting")

        # Cache on the module so subsequent accesses are cheap.
        globals()["plotting"] = _plotting
        return _plotting
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
