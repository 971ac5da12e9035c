# simulation/central_config.py
"""
==================
Unified configuration loader for the PID balance simulator.

This module provides a single, centralized interface for loading all
configuration inputs needed to run the inverted-pendulum simulation. It
parses the TOML configuration file and constructs every collaborator, so the
rest of the project never deals with file formats or section layout.

Responsibilities
----------------
• Load simulation parameters from:
      config/sim_config.toml

• Construct the following dataclasses:
      - PhysicsConfig   (lateral dynamics, disturbance decay, reset policy, trail)
      - PIDLimits       (integral/output bands, filter, slew rate, history)
      - SimConfig       (timestep, dt cap, logging decimation, setpoint)

• Build the collaborators:
      - PhysicsModel    (plant parameters m, l, g, b)
      - PIDController   (gains, limits, presets)
      - DisturbanceSchedule (timed impulses, random kicks)

• Provide simulation duration (seconds)

Returned Values
---------------
load_simulation_config() returns a 5-tuple:

    physics     : PhysicsModel
    controller  : PIDController
    sim_cfg     : SimConfig
    duration    : float
    perturb     : DisturbanceSchedule

Missing sections or keys fall back to the dataclass defaults. Unknown reset
modes are rejected by PhysicsModel with ValueError.

Typical Usage
-------------
    from simulation.central_config import load_simulation_config
    from simulation.balance_simulation import BalanceSimulation

    physics, controller, sim_cfg, duration, perturb = load_simulation_config()

    sim = BalanceSimulation(physics, controller, sim_cfg, perturb)
    sim.run(duration)
"""
import os
import time
import tomllib
from typing import Callable, Optional

from pid_control.controller import DEFAULT_PRESETS, PIDController, PIDLimits
from simulation.balance_simulation import SimConfig
from simulation.pendulum_model import PhysicsConfig, PhysicsModel
from simulation.perturbations import DisturbanceSchedule

REPO_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))
DEFAULT_CONFIG_PATH = os.path.join(REPO_ROOT, "config", "sim_config.toml")


# ------------------------------------------------------------
# Load TOML
# ------------------------------------------------------------
def load_toml(path: str = DEFAULT_CONFIG_PATH) -> dict:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _optional_int(value) -> Optional[int]:
    return None if value is None else int(value)


# ------------------------------------------------------------
# Section builders
# ------------------------------------------------------------
def build_physics(cfg: dict, clock: Callable[[], float] = time.perf_counter) -> PhysicsModel:
    plant = cfg.get("plant", {})
    phys = cfg.get("physics", {})
    icfg = cfg.get("initial_conditions", {})
    trail = cfg.get("trail", {})
    defaults = PhysicsConfig()

    physics_cfg = PhysicsConfig(
        disturbance_decay=float(phys.get("disturbance_decay", defaults.disturbance_decay)),
        speed_gain=float(phys.get("speed_gain", defaults.speed_gain)),
        speed_smoothing=float(phys.get("speed_smoothing", defaults.speed_smoothing)),
        ground_friction=float(phys.get("ground_friction", defaults.ground_friction)),
        angle_limit=float(phys.get("ANGLE_LIMIT_RAD", defaults.angle_limit)),
        reset_mode=str(icfg.get("RESET_MODE", defaults.reset_mode)).lower(),
        initial_angle=float(icfg.get("THETA_INITIAL_RAD", defaults.initial_angle)),
        tilt_band=float(icfg.get("TILT_BAND_RAD", defaults.tilt_band)),
        seed=_optional_int(icfg.get("SEED")),
        trail_enabled=bool(trail.get("enable", defaults.trail_enabled)),
        trail_max_points=int(trail.get("MAX_POINTS", defaults.trail_max_points)),
        trail_timeout_s=float(trail.get("TIMEOUT_S", defaults.trail_timeout_s)),
    )

    return PhysicsModel(
        mass=float(plant.get("m", 1.0)),
        length=float(plant.get("l", 0.5)),
        gravity=float(plant.get("g", 9.81)),
        friction=float(plant.get("b", 0.1)),
        config=physics_cfg,
        clock=clock,
    )


def build_controller(cfg: dict, clock: Callable[[], float] = time.perf_counter) -> PIDController:
    ctrl = cfg.get("controller", {})
    defaults = PIDLimits()

    limits = PIDLimits(
        integral_min=float(ctrl.get("INTEGRAL_MIN", defaults.integral_min)),
        integral_max=float(ctrl.get("INTEGRAL_MAX", defaults.integral_max)),
        output_min=float(ctrl.get("OUTPUT_MIN", defaults.output_min)),
        output_max=float(ctrl.get("OUTPUT_MAX", defaults.output_max)),
        alpha=float(ctrl.get("DERIV_ALPHA", defaults.alpha)),
        max_rate=float(ctrl.get("MAX_RATE", defaults.max_rate)),
        history_len=int(ctrl.get("HISTORY_LEN", defaults.history_len)),
        min_dt=float(ctrl.get("MIN_DT_S", defaults.min_dt)),
    )

    presets = dict(DEFAULT_PRESETS)
    for name, gains in cfg.get("presets", {}).items():
        presets[name] = {
            "kp": float(gains["kp"]),
            "ki": float(gains["ki"]),
            "kd": float(gains["kd"]),
        }

    return PIDController(
        kp=float(ctrl.get("Kp", 2.0)),
        ki=float(ctrl.get("Ki", 0.1)),
        kd=float(ctrl.get("Kd", 0.5)),
        limits=limits,
        clock=clock,
        presets=presets,
    )


def build_disturbances(cfg: dict) -> DisturbanceSchedule:
    kick = cfg.get("random_kick", {})
    perturb = DisturbanceSchedule(seed=_optional_int(kick.get("SEED")))

    # --- Timed impulses ---
    if "impulse" in cfg and cfg["impulse"].get("enable", False):
        for ev in cfg["impulse"].get("events", []):
            perturb.add_impulse(float(ev["t0"]), float(ev["magnitude"]))

    # --- Random kicks ---
    if kick.get("enable", False):
        perturb.add_random_kick(
            probability=float(kick["probability"]),
            min_magnitude=float(kick.get("min_magnitude", 3.0)),
            max_magnitude=float(kick.get("max_magnitude", 7.0)),
        )

    return perturb


# ------------------------------------------------------------
# Main loader
# ------------------------------------------------------------
def load_simulation_config(
    sim_cfg_path: str = DEFAULT_CONFIG_PATH,
    clock: Callable[[], float] = time.perf_counter,
):
    """
    Builds and returns the full simulation configuration:

        physics     : PhysicsModel
        controller  : PIDController
        sim_cfg     : SimConfig
        duration    : float
        perturb     : DisturbanceSchedule
    """
    cfg = load_toml(sim_cfg_path)

    scfg = cfg.get("simulation", {})
    defaults = SimConfig()
    sim_cfg = SimConfig(
        dt=float(scfg.get("dt", defaults.dt)),
        max_dt=float(scfg.get("MAX_DT_S", defaults.max_dt)),
        steps_per_log=int(scfg.get("steps_per_log", defaults.steps_per_log)),
        setpoint=float(scfg.get("SETPOINT_DEG", defaults.setpoint)),
    )
    duration = float(scfg.get("DURATION_S", 10.0))

    physics = build_physics(cfg, clock)
    controller = build_controller(cfg, clock)
    perturb = build_disturbances(cfg)

    return physics, controller, sim_cfg, duration, perturb
