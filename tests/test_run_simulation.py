# tests/test_run_simulation.py

import numpy as np

from simulation import run_simulation


def test_offline_run_without_plot(tmp_path, monkeypatch, restore_loggers):
    monkeypatch.chdir(tmp_path)

    sim = run_simulation.main(["--no-plot", "--duration", "1"])

    assert sim.ticks == 50
    assert len(sim.log_angle) == 50
    assert (tmp_path / "logs" / "simulation.log").exists()


def test_preset_and_saved_figure(tmp_path, monkeypatch, restore_loggers):
    monkeypatch.chdir(tmp_path)
    out = tmp_path / "sim.png"

    sim = run_simulation.main(["--no-plot", "--duration", "0.5", "--preset", "overdamped", "--save", str(out)])

    assert (sim.controller.kp, sim.controller.ki, sim.controller.kd) == (0.5, 0.05, 0.8)
    assert out.exists()


def test_autotune_option_runs(tmp_path, monkeypatch, restore_loggers):
    monkeypatch.chdir(tmp_path)

    sim = run_simulation.main(["--no-plot", "--duration", "0.5", "--autotune"])

    assert np.isfinite([sim.controller.kp, sim.controller.ki, sim.controller.kd]).all()
    assert sim.ticks == 25


def test_plant_process_tracks_commanded_torque():
    process = run_simulation.plant_process(run_simulation.DEFAULT_CONFIG_PATH, 0.02)
    first = process(0.0)
    # strong negative torque pulls the plant back past upright
    for _ in range(50):
        last = process(-20.0)
    assert last < first
