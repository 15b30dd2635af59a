from __future__ import annotations

import logging

import pytest


def test_main_runs_a_short_barotropic_simulation() -> None:
    from spectral_dycore.main_function import main
    from spectral_dycore.model import RunStatus

    simulation, result = main(model="barotropic", trunc=10, days=0.25)
    assert result.status is RunStatus.COMPLETED
    assert result.n_steps == 9
    assert simulation.model.nlev == 1


def test_main_with_forcing_drag_and_plot(tmp_path) -> None:
    pytest.importorskip("matplotlib")
    import matplotlib.pyplot as plt

    from spectral_dycore.main_function import main

    open_before = set(plt.get_fignums())

    simulation, result = main(
        model="shallow_water", trunc=10, days=0.25, forcing="relaxation", drag="rayleigh",
        initial="solid-body", plotflag=True, custompath=str(tmp_path),
    )
    assert result.ok
    assert (tmp_path / "shallow_water_zonal_mean_u.png").exists()
    assert set(plt.get_fignums()) == open_before


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(model="spectral"),
        dict(model="barotropic", forcing="relaxation"),
        dict(model="barotropic", drag="friction"),
        dict(model="barotropic", initial="storm"),
    ],
)
def test_main_rejects_unknown_choices(kwargs) -> None:
    from spectral_dycore.main_function import main

    with pytest.raises(ValueError):
        main(trunc=10, days=0.0, **kwargs)


def test_cli_main(caplog) -> None:
    from spectral_dycore.main_function import cli_main

    with caplog.at_level(logging.INFO, logger="spectral_dycore"):
        cli_main(["--model", "barotropic", "--trunc", "10", "--days", "0.25", "--no-diff"])
    assert "Run completed" in caplog.text


def test_cli_exits_nonzero_on_instability(monkeypatch) -> None:
    from spectral_dycore import main_function
    from spectral_dycore.model import RunResult, RunStatus

    def unstable(**kwargs):
        return None, RunResult(RunStatus.INSTABILITY, 3, 7200.0)

    monkeypatch.setattr(main_function, "main", unstable)
    with pytest.raises(SystemExit) as excinfo:
        main_function.cli_main(["--model", "barotropic", "--trunc", "10"])
    assert excinfo.value.code == 1
