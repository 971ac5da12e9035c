# pendulum_model.py
"""
pendulum_model.py
=================

Nonlinear inverted-pendulum physics model for the PID balance simulator.

The model integrates a single-degree-of-freedom pendulum (the robot body
leaning over its wheel axle) with the commanded control torque and any
active disturbance impulse:

    • Gravity:          (g / l) * sin(theta)
    • Viscous damping:  -(b / (m * l^2)) * omega
    • Control torque:   tau / (m * l^2)
    • Disturbance:      F_d / (m * l^2)

State is advanced with semi-implicit Euler:
    omega ← omega + alpha * dt
    theta ← theta + omega * dt

The lean angle drives a first-order lateral speed model (the robot rolls in
the direction it leans), and a short timestamped trail of render positions is
kept for visualization collaborators.

Typical usage::

    physics = PhysicsModel(mass=1.0, length=0.5)
    physics.apply_torque(cmd)
    physics.step(0.02)
    snapshot = physics.get_state()

The model never clamps torque (that is the controller's job) and never
raises at runtime: a degenerate timestep is ignored.
"""

import logging
import math
import numbers
import random
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

physics_log = logging.getLogger("physics")

RESET_MODES = ("fixed", "random")


# ------------------------------------------------------------
# Dataclasses
# ------------------------------------------------------------

@dataclass
class PhysicsConfig:
    disturbance_decay: float = 0.95
    speed_gain: float = 5.0          # K_speed, lateral speed per unit sin(theta)
    speed_smoothing: float = 2.0     # K_smooth, 1/s
    ground_friction: float = 0.98    # applied every tick
    angle_limit: float = math.pi / 2

    # Initial condition policy
    reset_mode: str = "fixed"
    initial_angle: float = 0.0
    tilt_band: float = 0.1
    seed: Optional[int] = None

    # Render trail
    trail_enabled: bool = True
    trail_max_points: int = 100
    trail_timeout_s: float = 3.0
    trail_spread: float = 50.0


@dataclass
class PendulumState:
    angle: float = 0.0
    angular_velocity: float = 0.0
    angular_acceleration: float = 0.0
    position: float = 0.0
    velocity: float = 0.0
    torque: float = 0.0
    disturbance_force: float = 0.0


@dataclass(frozen=True)
class StateSnapshot:
    angle: float
    angle_degrees: float
    angular_velocity: float
    angular_acceleration: float
    torque: float
    position: float
    velocity: float

    def as_dict(self) -> Dict[str, float]:
        return {
            "angle": self.angle,
            "angleDegrees": self.angle_degrees,
            "angularVelocity": self.angular_velocity,
            "angularAcceleration": self.angular_acceleration,
            "torque": self.torque,
            "position": self.position,
            "velocity": self.velocity,
        }


@dataclass(frozen=True)
class TrailPoint:
    x: float
    t: float


# ------------------------------------------------------------
# Physics model
# ------------------------------------------------------------

class PhysicsModel:
    """
    Inverted pendulum integrator.

    Attributes:
        mass (float): Pendulum mass in kg.
        length (float): Distance from the axle to the centre of mass in m.
        gravity (float): Gravitational acceleration in m/s^2.
        friction (float): Viscous damping coefficient b.
        cfg (PhysicsConfig): Lateral, disturbance, reset and trail settings.
    """

    def __init__(
        self,
        mass: float = 1.0,
        length: float = 0.5,
        gravity: float = 9.81,
        friction: float = 0.1,
        config: Optional[PhysicsConfig] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Builds the model and places it in its initial condition.

        Args:
            mass (float): Pendulum mass, must be positive.
            length (float): Pendulum length, must be positive.
            gravity (float): Gravitational acceleration.
            friction (float): Viscous damping coefficient.
            config (PhysicsConfig): Optional tuning of the secondary dynamics.
            clock (Callable[[], float]): Time source for trail timestamps.

        Raises:
            ValueError: If a physical parameter or config value is unusable.
        """
        cfg = config or PhysicsConfig()
        for name, value in (("mass", mass), ("length", length)):
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be a positive finite number, got {value!r}")
        if not 0.0 < cfg.disturbance_decay < 1.0:
            raise ValueError(f"disturbance_decay must lie in (0, 1), got {cfg.disturbance_decay}")
        if not 0.0 < cfg.ground_friction < 1.0:
            raise ValueError(f"ground_friction must lie in (0, 1), got {cfg.ground_friction}")
        if not 0.0 < cfg.angle_limit <= math.pi / 2:
            raise ValueError(f"angle_limit must lie in (0, pi/2], got {cfg.angle_limit}")
        if cfg.reset_mode not in RESET_MODES:
            raise ValueError(f"Unknown reset mode: {cfg.reset_mode}")

        self.mass = float(mass)
        self.length = float(length)
        self.gravity = float(gravity)
        self.friction = float(friction)
        self.cfg = cfg
        self._clock = clock
        self._rng = random.Random(cfg.seed)

        self._state = PendulumState()
        self._trail: Deque[TrailPoint] = deque(maxlen=max(1, int(cfg.trail_max_points)))
        self.reset()

        physics_log.info(
            "PhysicsModel initialized (m=%.3f kg, l=%.3f m, g=%.3f, b=%.3f, reset_mode=%s).",
            self.mass, self.length, self.gravity, self.friction, cfg.reset_mode,
        )

    # ------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------
    @property
    def angle(self) -> float:
        return self._state.angle

    @property
    def angle_degrees(self) -> float:
        return math.degrees(self._state.angle)

    @property
    def disturbance_force(self) -> float:
        return self._state.disturbance_force

    @property
    def trail(self) -> tuple:
        return tuple(self._trail)

    def get_state(self) -> StateSnapshot:
        s = self._state
        return StateSnapshot(
            angle=s.angle,
            angle_degrees=math.degrees(s.angle),
            angular_velocity=s.angular_velocity,
            angular_acceleration=s.angular_acceleration,
            torque=s.torque,
            position=s.position,
            velocity=s.velocity,
        )

    # ------------------------------------------------------------
    # Write surface
    # ------------------------------------------------------------
    def apply_torque(self, value: float) -> None:
        self._state.torque = value

    def apply_disturbance(self, magnitude: float = 5.0) -> None:
        """Overwrites the disturbance impulse; it decays from the next step on."""
        self._state.disturbance_force = magnitude
        physics_log.info("Disturbance applied: %+.3f", magnitude)

    def reset(self) -> None:
        if self.cfg.reset_mode == "random":
            band = abs(self.cfg.tilt_band)
            angle0 = self._rng.uniform(-band, band)
        else:
            angle0 = self.cfg.initial_angle

        self._state = PendulumState(angle=self._clamp_angle(angle0))
        self._trail.clear()
        physics_log.debug("Physics reset (angle0=%.5f rad).", self._state.angle)

    # ------------------------------------------------------------
    def _clamp_angle(self, angle: float) -> float:
        lim = self.cfg.angle_limit
        return max(-lim, min(lim, angle))

    # ------------------------------------------------------------
    def _angular_acceleration(self) -> float:
        s = self._state
        inertia = self.mass * self.length * self.length

        gravity_term = (self.gravity / self.length) * math.sin(s.angle)
        damping_term = (self.friction / inertia) * s.angular_velocity
        control_term = s.torque / inertia
        disturbance_term = s.disturbance_force / inertia

        return gravity_term - damping_term + control_term + disturbance_term

    # ------------------------------------------------------------
    def step(self, dt: float) -> None:
        if isinstance(dt, bool) or not isinstance(dt, numbers.Real) or not math.isfinite(dt) or dt <= 0:
            physics_log.warning("Ignoring physics step with invalid dt=%r", dt)
            return

        s = self._state

        # Dynamics
        s.angular_acceleration = self._angular_acceleration()
        s.angular_velocity += s.angular_acceleration * dt
        s.angle = self._clamp_angle(s.angle + s.angular_velocity * dt)

        # Lateral motion follows the lean
        target_speed = math.sin(s.angle) * self.cfg.speed_gain
        s.velocity += (target_speed - s.velocity) * self.cfg.speed_smoothing * dt
        s.velocity *= self.cfg.ground_friction
        s.position += s.velocity * dt

        s.disturbance_force *= self.cfg.disturbance_decay

        if self.cfg.trail_enabled:
            self._record_trail()

        physics_log.debug(
            "theta=%.5f omega=%.5f alpha=%.4f tau=%.4f F_d=%.4f",
            s.angle, s.angular_velocity, s.angular_acceleration, s.torque, s.disturbance_force,
        )

    # ------------------------------------------------------------
    def _record_trail(self) -> None:
        now = self._clock()
        self._trail.append(TrailPoint(x=math.sin(self._state.angle) * self.cfg.trail_spread, t=now))
        timeout = self.cfg.trail_timeout_s
        while self._trail and now - self._trail[0].t >= timeout:
            self._trail.popleft()
