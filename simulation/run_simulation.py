"""Offline fixed-timestep simulation runner.

Loads config/sim_config.toml, optionally applies a gain preset or runs the
auto-tune experiment against a copy of the plant, simulates for the
configured duration and plots the result.
"""
from __future__ import annotations

import argparse
import logging

from pid_control.controller import PIDController
from simulation.balance_simulation import BalanceSimulation
from simulation.central_config import DEFAULT_CONFIG_PATH, build_physics, load_simulation_config, load_toml
from simulation.plot_sim_results import plot_sim_results
from utils.logger import setup_logging

main_log = logging.getLogger("main")


def plant_process(cfg_path: str, dt: float):
    """
    Closed-loop process for auto-tuning: a fresh plant built from the same
    config, driven by the experiment's torque commands.
    """
    plant = build_physics(load_toml(cfg_path))

    def process(last_output: float) -> float:
        plant.apply_torque(last_output)
        plant.step(dt)
        return plant.angle_degrees

    return process


def run_autotune(controller: PIDController, cfg_path: str, setpoint: float, dt: float) -> None:
    result = controller.auto_tune(setpoint, plant_process(cfg_path, dt), dt=dt)
    if result.success:
        main_log.info(
            "Auto-tune: %d cycles, Pu=%.3f s, A=%.3f -> Kp=%.3f Ki=%.3f Kd=%.3f",
            result.cycles, result.period, result.amplitude, result.kp, result.ki, result.kd,
        )
    else:
        main_log.warning("Auto-tune found no sustained oscillation; keeping current gains.")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the inverted-pendulum PID simulation offline")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH,
                        help="path to sim_config.toml")
    parser.add_argument("--preset", default=None,
                        help="gain preset to load (stable, oscillating, overdamped, underdamped)")
    parser.add_argument("--duration", type=float, default=None,
                        help="override simulation duration in seconds")
    parser.add_argument("--autotune", action="store_true",
                        help="run the relaxed-oscillation auto-tune before simulating")
    parser.add_argument("--save", default=None,
                        help="save the figure to this path")
    parser.add_argument("--no-plot", action="store_true",
                        help="skip the interactive plot window")
    args = parser.parse_args(argv)

    setup_logging()
    physics, controller, sim_cfg, duration, perturb = load_simulation_config(args.config)
    main_log.info("Configuration file '%s' loaded.", args.config)

    sim = BalanceSimulation(physics, controller, sim_cfg, perturb)
    if args.preset:
        sim.load_preset(args.preset)
    if args.autotune:
        run_autotune(controller, args.config, sim_cfg.setpoint, sim_cfg.dt)

    sim.run(args.duration if args.duration is not None else duration)

    if args.save or not args.no_plot:
        plot_sim_results(sim, save_path=args.save, show=not args.no_plot)
    return sim


if __name__ == "__main__":
    main()
