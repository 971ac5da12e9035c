"""
Discrete-time PID controller for the balance simulator.

This module implements the control law that turns a setpoint and a measured
value into a bounded torque command. On top of the classic P + I + D sum it
applies:

    • Anti-windup: the integral accumulator itself is clamped to a band.
    • Derivative filtering: first-order low-pass on the raw error rate.
    • Slew-rate limiting: the output may move at most max_rate * dt per call.
    • Output clamping: final saturation to [output_min, output_max].

The controller keeps bounded error/output histories for analytics only. It
does not read the physics model; the simulation driver hands it the
measurement every tick.
"""

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional

from pid_control import analytics

controller_log = logging.getLogger("controller")

# Named gain sets (kp, ki, kd) for the balancing use case.
DEFAULT_PRESETS: Dict[str, Dict[str, float]] = {
    "stable": {"kp": 2.0, "ki": 0.1, "kd": 0.3},
    "oscillating": {"kp": 5.0, "ki": 0.01, "kd": 0.05},
    "overdamped": {"kp": 0.5, "ki": 0.05, "kd": 0.8},
    "underdamped": {"kp": 3.0, "ki": 0.2, "kd": 0.1},
}


# ------------------------------------------------------------
# Dataclasses
# ------------------------------------------------------------

@dataclass
class PIDLimits:
    integral_min: float = -50.0
    integral_max: float = 50.0
    output_min: float = -100.0
    output_max: float = 100.0
    alpha: float = 0.15            # derivative filter coefficient, (0, 1)
    max_rate: float = 1000.0       # output units per second
    history_len: int = 1000
    min_dt: float = 0.001          # substituted for degenerate dt


@dataclass(frozen=True)
class PIDResult:
    output: float
    error: float
    proportional: float
    integral: float
    derivative: float

    @property
    def components(self) -> Dict[str, float]:
        return {"p": self.proportional, "i": self.integral, "d": self.derivative}


@dataclass(frozen=True)
class OutputSample:
    output: float
    proportional: float
    integral: float
    derivative: float
    measurement: float
    dt: float
    t: float


@dataclass(frozen=True)
class PerformanceMetrics:
    stability: str
    rms_error: float
    current_error: float
    avg_error: float
    output: float
    integral: float
    derivative: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "stability": self.stability,
            "rmsError": self.rms_error,
            "currentError": self.current_error,
            "avgError": self.avg_error,
            "output": self.output,
            "integral": self.integral,
            "derivative": self.derivative,
        }


@dataclass(frozen=True)
class ControllerSnapshot:
    setpoint: float
    integral: float
    previous_error: float
    filtered_derivative: float
    last_output: float
    elapsed: float
    last_time: float
    error_history: tuple
    output_history: tuple


# ------------------------------------------------------------
# Controller
# ------------------------------------------------------------

class PIDController:
    """
    PID controller with anti-windup, filtered derivative and slew limiting.

    Attributes:
        kp (float): Proportional gain.
        ki (float): Integral gain.
        kd (float): Derivative gain.
        limits (PIDLimits): Saturation bands and filter settings.
        setpoint (float): Target measurement value.
        integral (float): Accumulated error * dt, always inside the
            [integral_min, integral_max] band.
        last_output (float): Previous commanded output, always inside
            [output_min, output_max].
        error_history (Deque[float]): Bounded error history (analytics only).
        output_history (Deque[OutputSample]): Bounded output history.
    """

    def __init__(
        self,
        kp: float = 2.0,
        ki: float = 0.1,
        kd: float = 0.5,
        limits: Optional[PIDLimits] = None,
        clock: Callable[[], float] = time.perf_counter,
        presets: Optional[Dict[str, Dict[str, float]]] = None,
    ):
        """
        Initializes the controller in its reset state.

        Args:
            kp, ki, kd (float): Initial gains.
            limits (PIDLimits): Saturation and filter configuration.
            clock (Callable[[], float]): Time source used only when
                calculate() is called without an explicit dt.
            presets (Dict[str, Dict[str, float]]): Named gain sets for
                load_preset(); defaults to DEFAULT_PRESETS.

        Raises:
            ValueError: If the limits are inconsistent.
        """
        lim = limits or PIDLimits()
        if lim.integral_min > lim.integral_max:
            raise ValueError(
                f"integral_min ({lim.integral_min}) exceeds integral_max ({lim.integral_max})"
            )
        if lim.output_min > lim.output_max:
            raise ValueError(
                f"output_min ({lim.output_min}) exceeds output_max ({lim.output_max})"
            )
        if not 0.0 < lim.alpha < 1.0:
            raise ValueError(f"alpha must lie in (0, 1), got {lim.alpha}")
        if lim.max_rate <= 0:
            raise ValueError(f"max_rate must be positive, got {lim.max_rate}")
        if lim.history_len < 1:
            raise ValueError(f"history_len must be at least 1, got {lim.history_len}")
        if lim.min_dt <= 0:
            raise ValueError(f"min_dt must be positive, got {lim.min_dt}")

        self.kp = float(kp)
        self.ki = float(ki)
        self.kd = float(kd)
        self.limits = lim
        self.presets = dict(presets) if presets is not None else dict(DEFAULT_PRESETS)
        self.setpoint = 0.0
        self._clock = clock

        self.error_history: Deque[float] = deque(maxlen=lim.history_len)
        self.output_history: Deque[OutputSample] = deque(maxlen=lim.history_len)
        self.reset()

        controller_log.info(
            "PID Controller initialized (Kp=%.3f, Ki=%.3f, Kd=%.3f, out=[%.1f, %.1f], "
            "integral=[%.1f, %.1f], alpha=%.2f, max_rate=%.1f/s).",
            self.kp, self.ki, self.kd, lim.output_min, lim.output_max,
            lim.integral_min, lim.integral_max, lim.alpha, lim.max_rate,
        )

    # ------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------
    def set_gains(self, kp: float, ki: float, kd: float) -> None:
        """Replaces all three gains at once. Accumulators are left untouched."""
        self.kp, self.ki, self.kd = float(kp), float(ki), float(kd)
        controller_log.info("PID gains updated: Kp=%.3f, Ki=%.3f, Kd=%.3f", self.kp, self.ki, self.kd)

    def set_setpoint(self, value: float) -> None:
        self.setpoint = float(value)

    def load_preset(self, name: str) -> None:
        preset = self.presets.get(name)
        if preset is None:
            raise ValueError(f"Unknown preset: {name}")
        controller_log.info("Loading preset '%s'.", name)
        self.set_gains(preset["kp"], preset["ki"], preset["kd"])

    def reset(self) -> None:
        self.integral = 0.0
        self.previous_error = 0.0
        self.filtered_derivative = 0.0
        self.last_output = 0.0
        self.elapsed = 0.0
        self._last_time = self._clock()
        self.error_history.clear()
        self.output_history.clear()
        controller_log.debug("PID state reset.")

    # ------------------------------------------------------------
    # Control law
    # ------------------------------------------------------------
    def _resolve_dt(self, dt: Optional[float], now: float) -> float:
        if dt is None:
            dt = now - self._last_time
        if not math.isfinite(dt) or dt <= 0:
            controller_log.debug("Degenerate dt=%r replaced by %.4f s", dt, self.limits.min_dt)
            return self.limits.min_dt
        return dt

    def calculate(self, setpoint: float, measured_value: float, dt: Optional[float] = None) -> PIDResult:
        """
        Executes one controller update.

        Args:
            setpoint (float): Target value for this update.
            measured_value (float): Current measurement (degrees in the
                balancing loop).
            dt (float): Timestep in seconds. When omitted, the time since the
                previous call is read from the injected clock. Non-positive or
                non-finite values are replaced by limits.min_dt.

        Returns:
            PIDResult: The bounded output with its P/I/D breakdown and error.
        """
        lim = self.limits
        now = self._clock()
        dt = self._resolve_dt(dt, now)

        self.setpoint = setpoint
        error = setpoint - measured_value

        # 1) Proportional
        p_term = self.kp * error

        # 2) Integral, clamped on the accumulator
        self.integral = max(lim.integral_min, min(lim.integral_max, self.integral + error * dt))
        i_term = self.ki * self.integral

        # 3) Filtered derivative
        raw_derivative = (error - self.previous_error) / dt
        self.filtered_derivative = (
            lim.alpha * raw_derivative + (1.0 - lim.alpha) * self.filtered_derivative
        )
        d_term = self.kd * self.filtered_derivative

        # 4) Slew-rate limit, then saturate
        output = p_term + i_term + d_term
        max_change = lim.max_rate * dt
        output = max(self.last_output - max_change, min(self.last_output + max_change, output))
        output = max(lim.output_min, min(lim.output_max, output))

        self.previous_error = error
        self.last_output = output
        self.elapsed += dt
        self._last_time = now

        self.error_history.append(error)
        self.output_history.append(
            OutputSample(output, p_term, i_term, d_term, measured_value, dt, self.elapsed)
        )

        controller_log.debug(
            "e=%.4f P=%.4f I=%.4f D=%.4f -> u=%.4f (dt=%.4f)",
            error, p_term, i_term, d_term, output, dt,
        )
        return PIDResult(output, error, p_term, i_term, d_term)

    def update(self, measured_value: float, dt: Optional[float] = None) -> PIDResult:
        """calculate() against the stored setpoint."""
        return self.calculate(self.setpoint, measured_value, dt)

    # ------------------------------------------------------------
    # Snapshot / restore (used by auto-tune experiments)
    # ------------------------------------------------------------
    def snapshot(self) -> ControllerSnapshot:
        return ControllerSnapshot(
            setpoint=self.setpoint,
            integral=self.integral,
            previous_error=self.previous_error,
            filtered_derivative=self.filtered_derivative,
            last_output=self.last_output,
            elapsed=self.elapsed,
            last_time=self._last_time,
            error_history=tuple(self.error_history),
            output_history=tuple(self.output_history),
        )

    def restore(self, snap: ControllerSnapshot) -> None:
        self.setpoint = snap.setpoint
        self.integral = snap.integral
        self.previous_error = snap.previous_error
        self.filtered_derivative = snap.filtered_derivative
        self.last_output = snap.last_output
        self.elapsed = snap.elapsed
        self._last_time = snap.last_time
        self.error_history.clear()
        self.error_history.extend(snap.error_history)
        self.output_history.clear()
        self.output_history.extend(snap.output_history)

    # ------------------------------------------------------------
    # Analytics (read-only)
    # ------------------------------------------------------------
    def stability_status(self) -> str:
        return analytics.stability_status(self.error_history)

    def rms_error(self, window: int = 50) -> float:
        return analytics.rms_error(self.error_history, window)

    def error_trend(self, window: int = 20) -> float:
        return analytics.error_trend(self.error_history, window)

    def settling_time(self, band: float = 2.0) -> float:
        return analytics.settling_time(
            self.error_history, [s.dt for s in self.output_history], band
        )

    def overshoot(self) -> float:
        return analytics.overshoot(self.error_history)

    def get_performance_metrics(self) -> PerformanceMetrics:
        return PerformanceMetrics(
            stability=self.stability_status(),
            rms_error=self.rms_error(),
            current_error=self.error_history[-1] if self.error_history else 0.0,
            avg_error=analytics.mean_abs_error(self.error_history),
            output=self.last_output,
            integral=self.integral,
            derivative=self.filtered_derivative,
        )

    def auto_tune(self, setpoint: float, process_variable, cycles: int = 5, **kwargs):
        """Runs a relaxed-oscillation tuning experiment; see pid_control.autotune."""
        from pid_control.autotune import auto_tune

        return auto_tune(self, setpoint, process_variable, cycles=cycles, **kwargs)
