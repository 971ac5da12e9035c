# tests/test_pid_controller.py

import math
import random

import numpy as np
import pytest

from pid_control.controller import PIDController, PIDLimits


# ------------------------------------------------------------
# Output bounds and slew rate
# ------------------------------------------------------------
@pytest.mark.parametrize("max_rate", [5.0, 20.0, 1000.0])
@pytest.mark.parametrize("dt", [0.005, 0.02, 0.1])
def test_output_bounded_and_slew_limited(make_controller, max_rate, dt):
    pid = make_controller(kp=8.0, ki=2.0, kd=1.5, max_rate=max_rate)
    rng = random.Random(1234)
    lim = pid.limits
    previous = pid.last_output

    for _ in range(400):
        measurement = rng.uniform(-60.0, 60.0)
        result = pid.calculate(0.0, measurement, dt)
        assert lim.output_min <= result.output <= lim.output_max
        assert abs(result.output - previous) <= max_rate * dt + 1e-9
        previous = result.output


def test_output_saturates_at_limits(make_controller):
    pid = make_controller(kp=100.0, ki=0.0, kd=0.0, max_rate=1e9, output_min=-10.0, output_max=10.0)
    assert pid.calculate(0.0, -5.0, 0.02).output == 10.0
    assert pid.calculate(0.0, 5.0, 0.02).output == -10.0


def test_components_sum_to_output_when_unsaturated(make_controller):
    pid = make_controller(kp=1.0, ki=0.5, kd=0.2, max_rate=1e9)
    for measurement in (1.0, 0.8, 0.5, 0.1):
        result = pid.calculate(0.0, measurement, 0.02)
        assert np.isclose(result.output, result.proportional + result.integral + result.derivative)
        assert np.isclose(result.error, -measurement)


def test_derivative_is_low_pass_filtered(make_controller):
    pid = make_controller(kp=0.0, ki=0.0, kd=1.0, alpha=0.15, max_rate=1e9)

    first = pid.calculate(1.0, 0.0, 0.1)
    assert np.isclose(first.derivative, 0.15 * (1.0 / 0.1))

    # error unchanged: raw rate is zero, filtered value decays by (1 - alpha)
    second = pid.calculate(1.0, 0.0, 0.1)
    assert np.isclose(second.derivative, 0.85 * first.derivative)


# ------------------------------------------------------------
# Anti-windup
# ------------------------------------------------------------
@pytest.mark.parametrize("setpoint, bound_attr", [(100.0, "integral_max"), (-100.0, "integral_min")])
def test_integral_reaches_and_holds_bound(make_controller, setpoint, bound_attr):
    pid = make_controller(kp=0.0, ki=10.0, kd=0.0)
    bound = getattr(pid.limits, bound_attr)

    reached_at = None
    for n in range(300):
        pid.calculate(setpoint, 0.0, 0.02)
        if reached_at is None and pid.integral == bound:
            reached_at = n
        if reached_at is not None:
            assert pid.integral == bound

    assert reached_at is not None
    assert reached_at < 100


def test_integral_never_leaves_band(make_controller):
    pid = make_controller(ki=5.0, integral_min=-3.0, integral_max=3.0)
    rng = random.Random(7)
    for _ in range(1000):
        pid.calculate(0.0, rng.uniform(-500.0, 500.0), rng.uniform(0.001, 0.2))
        assert -3.0 <= pid.integral <= 3.0


def test_set_gains_keeps_accumulators(make_controller):
    pid = make_controller()
    for m in (3.0, 2.0, 1.0):
        pid.calculate(0.0, m, 0.02)
    before = (pid.integral, pid.previous_error, pid.filtered_derivative, pid.last_output)

    pid.set_gains(50.0, 20.0, 0.0)

    assert (pid.kp, pid.ki, pid.kd) == (50.0, 20.0, 0.0)
    assert (pid.integral, pid.previous_error, pid.filtered_derivative, pid.last_output) == before


def test_gain_jump_does_not_break_integral_band(make_controller):
    pid = make_controller(ki=0.1)
    for _ in range(300):
        pid.calculate(10.0, 0.0, 0.02)
    pid.set_gains(2.0, 1000.0, 0.5)
    result = pid.calculate(10.0, 0.0, 0.02)

    assert pid.integral == pid.limits.integral_max
    assert pid.limits.output_min <= result.output <= pid.limits.output_max


# ------------------------------------------------------------
# Timestep handling
# ------------------------------------------------------------
@pytest.mark.parametrize("dt", [0.0, -0.5, float("nan"), float("inf")])
def test_degenerate_dt_uses_minimum(make_controller, dt):
    pid = make_controller()
    result = pid.calculate(0.0, 1.0, dt)

    assert pid.output_history[-1].dt == pid.limits.min_dt
    assert math.isfinite(result.output)


def test_missing_dt_is_measured_from_clock(make_controller, fake_clock):
    pid = make_controller()
    fake_clock.advance(0.05)
    pid.calculate(0.0, 1.0)
    assert np.isclose(pid.output_history[-1].dt, 0.05)

    # no time elapsed since the previous call
    pid.calculate(0.0, 1.0)
    assert pid.output_history[-1].dt == pid.limits.min_dt


def test_elapsed_accumulates_supplied_dt(make_controller):
    pid = make_controller()
    for _ in range(10):
        pid.calculate(0.0, 0.0, 0.02)
    assert np.isclose(pid.elapsed, 0.2)
    assert np.isclose(pid.output_history[-1].t, 0.2)


# ------------------------------------------------------------
# Histories, reset, setpoint, presets
# ------------------------------------------------------------
def test_histories_are_bounded(make_controller):
    pid = make_controller(history_len=10)
    for i in range(25):
        pid.calculate(0.0, float(i), 0.02)

    assert len(pid.error_history) == 10
    assert len(pid.output_history) == 10
    assert pid.error_history[0] == -15.0
    assert pid.output_history[-1].measurement == 24.0


def test_reset_clears_state_and_is_idempotent(make_controller):
    pid = make_controller()
    for m in (5.0, -3.0, 2.0):
        pid.calculate(1.0, m, 0.02)

    pid.reset()
    once = pid.snapshot()
    pid.reset()
    twice = pid.snapshot()

    assert once == twice
    assert once.integral == 0.0
    assert once.previous_error == 0.0
    assert once.filtered_derivative == 0.0
    assert once.last_output == 0.0
    assert once.error_history == ()
    assert once.output_history == ()


def test_update_uses_stored_setpoint(make_controller):
    pid = make_controller()
    pid.set_setpoint(4.0)
    assert pid.update(1.0, 0.02).error == 3.0


def test_calculate_records_setpoint(make_controller):
    pid = make_controller()
    pid.calculate(2.5, 0.0, 0.02)
    assert pid.setpoint == 2.5


def test_load_preset_sets_gains(make_controller):
    pid = make_controller()
    pid.load_preset("overdamped")
    assert (pid.kp, pid.ki, pid.kd) == (0.5, 0.05, 0.8)


def test_unknown_preset_raises(make_controller):
    pid = make_controller()
    with pytest.raises(ValueError):
        pid.load_preset("chaotic")


@pytest.mark.parametrize(
    "limits",
    [
        PIDLimits(integral_min=1.0, integral_max=-1.0),
        PIDLimits(output_min=10.0, output_max=-10.0),
        PIDLimits(alpha=0.0),
        PIDLimits(alpha=1.0),
        PIDLimits(alpha=1.5),
        PIDLimits(max_rate=0.0),
        PIDLimits(history_len=0),
        PIDLimits(min_dt=0.0),
    ],
)
def test_invalid_limits_fail_fast(limits):
    with pytest.raises(ValueError):
        PIDController(limits=limits)


def test_performance_metrics_snapshot(make_controller):
    pid = make_controller()
    for _ in range(60):
        pid.calculate(0.0, 0.05, 0.02)

    metrics = pid.get_performance_metrics()
    assert metrics.stability == "Very Stable"
    assert np.isclose(metrics.rms_error, 0.05)
    assert np.isclose(metrics.current_error, -0.05)
    assert np.isclose(metrics.avg_error, 0.05)
    assert metrics.output == pid.last_output
    assert metrics.integral == pid.integral
    assert metrics.derivative == pid.filtered_derivative
    assert set(metrics.as_dict()) == {
        "stability", "rmsError", "currentError", "avgError", "output", "integral", "derivative",
    }


def test_fresh_controller_reports_initializing(make_controller):
    metrics = make_controller().get_performance_metrics()
    assert metrics.stability == "Initializing"
    assert metrics.rms_error == 0.0
    assert metrics.current_error == 0.0
