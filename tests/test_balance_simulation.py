# tests/test_balance_simulation.py

import numpy as np
import pytest

from simulation.balance_simulation import BalanceSimulation, SimConfig
from simulation.perturbations import DisturbanceSchedule


@pytest.fixture
def make_sim(make_physics, make_controller):
    def _builder(initial_angle=0.05, perturb=None, **sim_kwargs):
        return BalanceSimulation(
            make_physics(initial_angle=initial_angle),
            make_controller(kp=2.0, ki=0.1, kd=0.5),
            SimConfig(**sim_kwargs),
            perturb,
        )

    return _builder


def test_loop_recovers_from_initial_tilt(make_sim):
    sim = make_sim(initial_angle=0.05)
    for _ in range(500):
        sim.tick(0.02)

    err = np.abs(np.array(sim.log_error))
    assert len(err) == 500
    assert err[-50:].mean() < err[:50].mean()


def test_identical_runs_are_deterministic(make_sim):
    runs = []
    for _ in range(2):
        perturb = DisturbanceSchedule(impulses=[(1.0, 5.0)], random_kicks=[(0.05, 3.0, 7.0)], seed=9)
        sim = make_sim(perturb=perturb)
        sim.run(3.0)
        runs.append((sim.log_angle, sim.log_output, sim.log_disturbance))

    assert runs[0] == runs[1]


def test_missing_collaborators_fail_fast(make_physics, make_controller):
    with pytest.raises(ValueError):
        BalanceSimulation(None, make_controller())
    with pytest.raises(ValueError):
        BalanceSimulation(make_physics(), None)


def test_invalid_timestep_config_fails_fast(make_physics, make_controller):
    with pytest.raises(ValueError):
        BalanceSimulation(make_physics(), make_controller(), SimConfig(dt=0.0))


def test_large_dt_is_capped(make_sim):
    sim = make_sim(max_dt=0.02)
    sim.tick(0.5)
    assert np.isclose(sim.t, 0.02)
    assert np.isclose(sim.controller.output_history[-1].dt, 0.02)


@pytest.mark.parametrize("dt", [0.0, -0.1, float("nan")])
def test_degenerate_tick_does_not_advance_time_or_physics(make_sim, dt):
    sim = make_sim()
    before = sim.get_state()

    sim.tick(dt)

    after = sim.get_state()
    assert sim.t == 0.0
    assert sim.ticks == 1
    assert after.angle == before.angle
    assert after.angular_velocity == before.angular_velocity


def test_scheduled_impulse_fires_once(make_sim):
    sim = make_sim(perturb=DisturbanceSchedule(impulses=[(0.0, 5.0)]))
    for _ in range(20):
        sim.tick(0.02)

    dist = np.array(sim.log_disturbance)
    assert np.isclose(dist[0], 5.0 * 0.95)
    # decaying from the first tick on, never re-injected
    assert np.all(dist[1:] < dist[:-1])


def test_reset_clears_logs_and_state(make_sim):
    sim = make_sim(perturb=DisturbanceSchedule(impulses=[(0.1, 5.0)]))
    sim.run(1.0)
    sim.reset()

    assert sim.t == 0.0
    assert sim.ticks == 0
    assert sim.last_result is None
    assert sim.log_t == [] and sim.log_angle == [] and sim.log_output == []
    assert sim.controller.integral == 0.0
    assert sim.get_state().angle == 0.05

    # schedule is re-armed
    sim.run(0.2)
    assert max(sim.log_disturbance) > 4.0


def test_set_setpoint_reaches_controller(make_sim):
    sim = make_sim()
    sim.set_setpoint(3.0)
    result = sim.tick(0.02)

    assert sim.controller.setpoint == 3.0
    assert np.isclose(result.error, 3.0 - np.degrees(0.05))


def test_load_preset_and_set_gains(make_sim):
    sim = make_sim()
    sim.load_preset("underdamped")
    assert (sim.controller.kp, sim.controller.ki, sim.controller.kd) == (3.0, 0.2, 0.1)

    sim.set_gains(1.0, 0.0, 0.0)
    assert (sim.controller.kp, sim.controller.ki, sim.controller.kd) == (1.0, 0.0, 0.0)


def test_manual_disturbance_goes_to_physics(make_sim):
    sim = make_sim()
    sim.apply_disturbance(-3.0)
    assert sim.physics.disturbance_force == -3.0


@pytest.mark.parametrize("steps_per_log, expected", [(1, 50), (5, 10)])
def test_run_logs_at_decimated_rate(make_sim, steps_per_log, expected):
    sim = make_sim(steps_per_log=steps_per_log)
    sim.run(1.0)

    assert sim.ticks == 50
    for log in (sim.log_t, sim.log_angle, sim.log_error, sim.log_output,
                sim.log_p, sim.log_i, sim.log_d, sim.log_disturbance, sim.log_position):
        assert len(log) == expected


def test_performance_metrics_come_from_controller(make_sim):
    sim = make_sim()
    sim.run(1.0)
    assert sim.get_performance_metrics() == sim.controller.get_performance_metrics()
