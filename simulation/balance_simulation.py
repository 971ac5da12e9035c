# balance_simulation.py
"""
balance_simulation.py
=====================

Simulation driver that wires a PhysicsModel to a PIDController.

The driver owns both collaborators (they are injected at construction, never
looked up globally) and advances them with the per-tick contract:

    measurement = physics.get_state().angle_degrees
    result      = controller.calculate(setpoint, measurement, dt)
    physics.apply_torque(result.output)
    physics.step(dt)

Any impulse due from the DisturbanceSchedule is injected before the tick.
The timestep is supplied by the caller (fixed in offline runs, measured
wall-clock time in main.py) and capped to cfg.max_dt so that a stalled
caller cannot make the integrator jump.

Logging:
    The driver records time, angle, error, controller output and its P/I/D
    breakdown, disturbance and lateral position at a decimated rate
    (steps_per_log).

Typical usage::

    physics, controller, cfg, duration, perturb = load_simulation_config()

    sim = BalanceSimulation(physics, controller, cfg, perturb)
    sim.run(duration)

    # logs available in sim.log_angle, sim.log_output, etc.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from pid_control.controller import PIDController, PIDResult, PerformanceMetrics
from simulation.pendulum_model import PhysicsModel, StateSnapshot
from simulation.perturbations import DisturbanceSchedule
from utils.logger import set_loop_index

sim_log = logging.getLogger("simulation")


# ------------------------------------------------------------
# Dataclasses
# ------------------------------------------------------------

@dataclass
class SimConfig:
    dt: float = 0.02
    max_dt: float = 0.02
    steps_per_log: int = 1
    setpoint: float = 0.0


# ------------------------------------------------------------
# Simulator
# ------------------------------------------------------------

@dataclass
class BalanceSimulation:
    physics: PhysicsModel
    controller: PIDController
    cfg: SimConfig = field(default_factory=SimConfig)
    perturb: Optional[DisturbanceSchedule] = None

    t: float = 0.0
    ticks: int = 0
    last_result: Optional[PIDResult] = None

    log_t: List[float] = field(default_factory=list)
    log_angle: List[float] = field(default_factory=list)
    log_error: List[float] = field(default_factory=list)
    log_output: List[float] = field(default_factory=list)
    log_p: List[float] = field(default_factory=list)
    log_i: List[float] = field(default_factory=list)
    log_d: List[float] = field(default_factory=list)
    log_disturbance: List[float] = field(default_factory=list)
    log_position: List[float] = field(default_factory=list)
    _log_decim: int = 0

    def __post_init__(self):
        if self.physics is None:
            raise ValueError("BalanceSimulation requires a PhysicsModel")
        if self.controller is None:
            raise ValueError("BalanceSimulation requires a PIDController")
        if self.cfg.max_dt <= 0 or self.cfg.dt <= 0:
            raise ValueError(f"dt and max_dt must be positive (dt={self.cfg.dt}, max_dt={self.cfg.max_dt})")
        if self.perturb is None:
            self.perturb = DisturbanceSchedule()
        self.controller.set_setpoint(self.cfg.setpoint)
        sim_log.info(
            "BalanceSimulation ready (dt=%.4f s, max_dt=%.4f s, setpoint=%.3f).",
            self.cfg.dt, self.cfg.max_dt, self.cfg.setpoint,
        )

    # ------------------------------------------------------------
    # Write surface
    # ------------------------------------------------------------
    def set_gains(self, kp: float, ki: float, kd: float) -> None:
        self.controller.set_gains(kp, ki, kd)

    def set_setpoint(self, value: float) -> None:
        self.cfg.setpoint = float(value)
        self.controller.set_setpoint(value)

    def apply_disturbance(self, magnitude: float = 5.0) -> None:
        self.physics.apply_disturbance(magnitude)

    def load_preset(self, name: str) -> None:
        self.controller.load_preset(name)

    def reset(self) -> None:
        self.physics.reset()
        self.controller.reset()
        self.controller.set_setpoint(self.cfg.setpoint)
        self.perturb.reset()

        self.t = 0.0
        self.ticks = 0
        self.last_result = None
        for log in (
            self.log_t, self.log_angle, self.log_error, self.log_output,
            self.log_p, self.log_i, self.log_d, self.log_disturbance, self.log_position,
        ):
            log.clear()
        self._log_decim = 0
        sim_log.info("Simulation reset to initial state.")

    # ------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------
    def get_state(self) -> StateSnapshot:
        return self.physics.get_state()

    def get_performance_metrics(self) -> PerformanceMetrics:
        return self.controller.get_performance_metrics()

    # ------------------------------------------------------------
    def _cap_dt(self, dt: float) -> float:
        if not math.isfinite(dt) or dt <= 0:
            return dt
        return min(dt, self.cfg.max_dt)

    # ------------------------------------------------------------
    def tick(self, dt: Optional[float] = None) -> PIDResult:
        dt = self._cap_dt(self.cfg.dt if dt is None else dt)
        set_loop_index(self.ticks)

        # Disturbances scheduled for this instant
        impulse = self.perturb.poll(self.t)
        if impulse is not None:
            self.physics.apply_disturbance(impulse)

        # Per-tick contract
        measurement = self.physics.get_state().angle_degrees
        result = self.controller.calculate(self.cfg.setpoint, measurement, dt)
        self.physics.apply_torque(result.output)
        self.physics.step(dt)

        if math.isfinite(dt) and dt > 0:
            self.t += dt
        self.ticks += 1
        self.last_result = result

        # Logging (decimated)
        self._log_decim += 1
        if self._log_decim >= self.cfg.steps_per_log:
            self.log_t.append(self.t)
            self.log_angle.append(self.physics.angle_degrees)
            self.log_error.append(result.error)
            self.log_output.append(result.output)
            self.log_p.append(result.proportional)
            self.log_i.append(result.integral)
            self.log_d.append(result.derivative)
            self.log_disturbance.append(self.physics.disturbance_force)
            self.log_position.append(self.physics.get_state().position)
            self._log_decim = 0

        return result

    # ------------------------------------------------------------
    def run(self, seconds: float) -> None:
        steps = int(seconds / self.cfg.dt)
        sim_log.info("Running %d ticks (%.2f s at dt=%.4f s).", steps, seconds, self.cfg.dt)
        for _ in range(steps):
            self.tick(self.cfg.dt)
        metrics = self.get_performance_metrics()
        sim_log.info(
            "Run finished at t=%.2f s: stability=%s rms=%.4f avg=%.4f",
            self.t, metrics.stability, metrics.rms_error, metrics.avg_error,
        )
