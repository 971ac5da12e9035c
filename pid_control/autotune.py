"""
Relaxed-oscillation auto-tuning for PIDController.

The experiment drives the live control law for a bounded number of steps at
a fixed nominal timestep, watches the output for sign changes to estimate the
oscillation period and amplitude, then derives new gains with a damped
Ziegler-Nichols rule:

    Ku  = 4 * kp / (pi * A)
    kp' = 0.6 * Ku
    ki' = 1.2 * Ku / Pu
    kd' = 0.075 * Ku * Pu

The controller's accumulators, last output and histories are restored after
the experiment, so live control continues exactly where it left off whether
tuning succeeds or fails.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Union

import numpy as np

if TYPE_CHECKING:
    from pid_control.controller import PIDController

autotune_log = logging.getLogger("autotune")

ProcessVariable = Union[float, Callable[[float], float]]

MIN_CROSSINGS = 4
MIN_HALF_PERIOD_S = 0.1   # crossings closer than this are treated as noise


@dataclass(frozen=True)
class AutoTuneResult:
    success: bool
    cycles: int
    period: float
    amplitude: float
    kp: float
    ki: float
    kd: float


def _sign(x: float) -> int:
    return 1 if x > 0 else -1 if x < 0 else 0


def auto_tune(
    controller: "PIDController",
    setpoint: float,
    process_variable: ProcessVariable,
    cycles: int = 5,
    max_steps: int = 1000,
    dt: float = 0.02,
) -> AutoTuneResult:
    """
    Runs the tuning experiment against `controller`.

    Args:
        controller (PIDController): Controller whose law is exercised and
            whose gains are replaced on success.
        setpoint (float): Fixed setpoint for the experiment.
        process_variable (float | Callable[[float], float]): Either a
            constant measurement (open loop) or a callable receiving the last
            commanded output and returning the next measurement.
        cycles (int): Oscillation cycles to observe (two crossings each).
        max_steps (int): Upper bound on simulated steps.
        dt (float): Nominal timestep of the experiment in seconds.

    Returns:
        AutoTuneResult: success flag, observed cycles, estimated period and
            amplitude, and the gains in effect afterwards.
    """
    if callable(process_variable):
        measure = process_variable
    else:
        constant = float(process_variable)
        measure = lambda _u: constant  # noqa: E731

    kp0 = controller.kp
    snap = controller.snapshot()
    autotune_log.info(
        "Auto-tune started (setpoint=%.3f, cycles=%d, max_steps=%d, dt=%.3f).",
        setpoint, cycles, max_steps, dt,
    )

    crossing_times: List[float] = []
    amplitudes: List[float] = []
    last_sign = 0
    last_crossing = 0
    half_peak = 0.0
    output = 0.0

    try:
        for i in range(max_steps):
            output = controller.calculate(setpoint, measure(output), dt).output
            half_peak = max(half_peak, abs(output))

            sign = _sign(output)
            if sign != 0 and last_sign != 0 and sign != last_sign:
                if (i - last_crossing) * dt > MIN_HALF_PERIOD_S:
                    crossing_times.append(i * dt)
                    amplitudes.append(half_peak)
                last_crossing = i
                half_peak = abs(output)
            if sign != 0:
                last_sign = sign

            if len(crossing_times) >= cycles * 2:
                break
    finally:
        controller.restore(snap)

    n = len(crossing_times)
    if n < MIN_CROSSINGS:
        autotune_log.warning(
            "Auto-tune failed: only %d zero-crossings detected (need %d). Gains unchanged.",
            n, MIN_CROSSINGS,
        )
        return AutoTuneResult(
            success=False,
            cycles=n // 2,
            period=0.0,
            amplitude=float(np.mean(amplitudes)) if amplitudes else 0.0,
            kp=controller.kp,
            ki=controller.ki,
            kd=controller.kd,
        )

    # First crossing has no complete half cycle before it.
    period = 2.0 * float(np.mean(np.diff(crossing_times)))
    amplitude = float(np.mean(amplitudes[1:]))
    if amplitude <= 0 or period <= 0 or not math.isfinite(amplitude):
        autotune_log.warning("Auto-tune failed: degenerate amplitude=%.4f period=%.4f", amplitude, period)
        return AutoTuneResult(False, n // 2, period, amplitude, controller.kp, controller.ki, controller.kd)

    ku = 4.0 * kp0 / (math.pi * amplitude)
    pu = period
    controller.set_gains(0.6 * ku, 1.2 * ku / pu, 0.075 * ku * pu)

    autotune_log.info(
        "Auto-tune succeeded: Ku=%.4f Pu=%.3f s A=%.4f -> Kp=%.4f Ki=%.4f Kd=%.4f",
        ku, pu, amplitude, controller.kp, controller.ki, controller.kd,
    )
    return AutoTuneResult(
        success=True,
        cycles=n // 2,
        period=period,
        amplitude=amplitude,
        kp=controller.kp,
        ki=controller.ki,
        kd=controller.kd,
    )
