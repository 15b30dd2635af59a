"""main_function.py

Command-line driver.

`main(...)` builds a model from a few common knobs, runs it and returns the
`Simulation` together with its `RunResult`; `cli_main` wraps it for the
``spectral-dycore`` console script and exits with status 1 when the run
aborted on NaN/Inf.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta
from typing import Optional, Tuple

from .drag import JetDrag, NoDrag, RayleighDrag
from .forcing import InterfaceRelaxation, NoForcing, StochasticStirring, TemperatureRelaxation
from .initial_conditions import RandomVorticity, RossbyHaurwitzWave, SolidBodyRotation, StartFromRest
from .model import (
    BarotropicModel,
    PrimitiveEquationModel,
    RunResult,
    RunStatus,
    ShallowWaterModel,
    Simulation,
    initialize,
)
from .parameters import Parameters

_LOGGER = logging.getLogger(__name__)

MODELS = {
    "barotropic": BarotropicModel,
    "shallow_water": ShallowWaterModel,
    "primitive": PrimitiveEquationModel,
}

INITIAL_CONDITIONS = {
    "rest": StartFromRest,
    "solid-body": SolidBodyRotation,
    "rossby-haurwitz": RossbyHaurwitzWave,
    "random": RandomVorticity,
}


def _forcing_for(name: str, model_kind: str, seed: int = 0):
    if name == "none":
        return NoForcing()
    if name == "stirring":
        return StochasticStirring(seed=seed)
    if name == "relaxation":
        if model_kind == "shallow_water":
            return InterfaceRelaxation()
        if model_kind == "primitive":
            return TemperatureRelaxation()
        raise ValueError("Relaxation forcing needs the shallow water or primitive model")
    raise ValueError(f"Unknown forcing {name!r}")


def _drag_for(name: str):
    if name == "none":
        return NoDrag()
    if name == "jet":
        return JetDrag()
    if name == "rayleigh":
        return RayleighDrag()
    raise ValueError(f"Unknown drag {name!r}")


def main(
    model: str = "shallow_water",
    trunc: int = 31,
    nlev: int = 8,
    days: float = 10.0,
    alpha: float = 0.5,
    dt: Optional[float] = None,
    nstepsday: int = 36,
    diffusion: bool = True,
    forcing: str = "none",
    drag: str = "none",
    initial: Optional[str] = None,
    seed: int = 0,
    plotflag: bool = False,
    custompath: Optional[str] = None,
) -> Tuple[Simulation, RunResult]:
    """Build, initialize and run one model.

    ``initial`` None keeps the model's default initial conditions.
    """
    if model not in MODELS:
        raise ValueError(f"Unknown model {model!r}; choose from {sorted(MODELS)}")

    params = Parameters(
        trunc=int(trunc),
        nlev=int(nlev),
        ndays=float(days),
        alpha=float(alpha),
        dt=None if dt is None else float(dt),
        nstepsday=int(nstepsday),
        horizontal_diffusion=bool(diffusion),
    )

    ic = None
    if initial is not None:
        if initial not in INITIAL_CONDITIONS:
            raise ValueError(f"Unknown initial conditions {initial!r}; choose from {sorted(INITIAL_CONDITIONS)}")
        ic = RandomVorticity(seed=seed) if initial == "random" else INITIAL_CONDITIONS[initial]()

    model_cls = MODELS[model]
    forcings = [_forcing_for(forcing, model_cls.kind, int(seed))]

    m = model_cls(params, forcings=forcings, drags=[_drag_for(drag)], initial_conditions=ic)
    simulation = initialize(m)
    result = simulation.run(timedelta(days=float(days)))

    if plotflag:
        import matplotlib.pyplot as plt

        from . import plotting  # optional matplotlib dependency

        fields = simulation.to_numpy()
        fig = plotting.zonal_mean_plot(
            fields["u_grid"], m.transform.grid.latd, simulation.clock.time,
            units="days", customxlabel="mean u, m/s",
            savemyfig=True, filename=f"{model}_zonal_mean_u.png", custompath=custompath,
        )
        plt.close(fig)
    return simulation, result


def _parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Spectral dynamical core (JAX).")

    p.add_argument("--model", type=str, default="shallow_water", choices=sorted(MODELS))
    p.add_argument("--trunc", type=int, default=31, help="Triangular truncation.")
    p.add_argument("--nlev", type=int, default=8, help="Vertical levels (primitive model only).")
    p.add_argument("--days", type=float, default=10.0, help="Length of the run in days.")
    p.add_argument("--alpha", type=float, default=0.5, help="Semi-implicit coefficient: 0, 0.5 or 1.")
    p.add_argument("--dt", type=float, default=None, help="Time step in seconds (default 86400/nstepsday).")
    p.add_argument("--nstepsday", type=int, default=36)

    p.add_argument("--diff", action="store_true")
    p.add_argument("--no-diff", dest="diff", action="store_false")
    p.set_defaults(diff=True)

    p.add_argument("--forcing", type=str, default="none", choices=["none", "stirring", "relaxation"])
    p.add_argument("--drag", type=str, default="none", choices=["none", "jet", "rayleigh"])
    p.add_argument("--initial", type=str, default=None, choices=sorted(INITIAL_CONDITIONS))
    p.add_argument("--seed", type=int, default=0)

    p.add_argument("--plot", action="store_true")
    p.add_argument("--custompath", type=str, default=None)
    p.add_argument("--verbose", action="store_true")

    return p.parse_args(argv)


def cli_main(argv=None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    _simulation, result = main(
        model=str(args.model),
        trunc=int(args.trunc),
        nlev=int(args.nlev),
        days=float(args.days),
        alpha=float(args.alpha),
        dt=args.dt,
        nstepsday=int(args.nstepsday),
        diffusion=bool(args.diff),
        forcing=str(args.forcing),
        drag=str(args.drag),
        initial=args.initial,
        seed=int(args.seed),
        plotflag=bool(args.plot),
        custompath=args.custompath,
    )

    if result.status is RunStatus.INSTABILITY:
        _LOGGER.error("Run aborted: numerical instability after %d steps", result.n_steps)
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
