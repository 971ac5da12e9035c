"""
Main entry point for the real-time PID balance simulator.

This script wires the pendulum physics model, the PID controller and the
disturbance schedule from config/sim_config.toml, then runs the control loop
against the wall clock at a fixed frequency. Each iteration measures the
elapsed time since the previous tick and hands it to the simulation, which
caps it, so a stalled process cannot make the integrator jump. The
controller's stability status is logged periodically.
"""

import time
import logging
import os
import signal
import threading

from utils.logger import setup_logging
from utils.profiler import CodeProfiler
from simulation.balance_simulation import BalanceSimulation
from simulation.central_config import DEFAULT_CONFIG_PATH, load_simulation_config, load_toml

# -----------------------------------------------------------------------------
# Cross-platform shutdown handling:
# - SIGINT works on Windows and Linux (Ctrl-C).
# - SIGTERM is installed only on non-Windows.
# -----------------------------------------------------------------------------
shutdown = threading.Event()


def _on_signal(_sig, _frm):
    shutdown.set()


def install_signal_handlers():
    signal.signal(signal.SIGINT, _on_signal)
    try:
        signal.signal(signal.SIGBREAK, _on_signal)  # Windows console Break
    except (AttributeError, OSError):
        pass
    if os.name != "nt":
        signal.signal(signal.SIGTERM, _on_signal)


def main_control_loop(cfg_path: str = DEFAULT_CONFIG_PATH):
    """
    Main loop: measure elapsed time -> simulation tick -> periodic status.
    """
    setup_logging()
    main_log = logging.getLogger("main")
    main_log.info("Application starting...")

    physics, controller, sim_cfg, _duration, perturb = load_simulation_config(cfg_path)
    rt_cfg = load_toml(cfg_path).get("realtime", {})
    main_log.info("Configuration file '%s' loaded.", cfg_path)

    loop_hz = float(rt_cfg.get("LOOP_FREQ_HZ", 60.0))
    loop_period = 1.0 / loop_hz
    status_period = float(rt_cfg.get("STATUS_PERIOD_S", 1.0))
    run_for = float(rt_cfg.get("DURATION_S", 0.0))

    sim = BalanceSimulation(physics, controller, sim_cfg, perturb)
    main_log.info("Starting control loop at %.1f Hz (%.1f ms period)...", loop_hz, loop_period * 1000.0)

    start_time = time.perf_counter()
    last_tick = start_time
    next_status = start_time + status_period

    try:
        while not shutdown.is_set():
            loop_start_time = time.perf_counter()
            dt = loop_start_time - last_tick
            last_tick = loop_start_time

            with CodeProfiler("Control Tick", budget_ms=loop_period * 1000.0):
                sim.tick(dt)

            if loop_start_time >= next_status:
                state = sim.get_state()
                metrics = sim.get_performance_metrics()
                main_log.info(
                    "t=%.2f s angle=%+.2f deg out=%+.2f stability=%s rms=%.3f",
                    sim.t, state.angle_degrees, metrics.output, metrics.stability, metrics.rms_error,
                )
                next_status += status_period

            if run_for > 0 and loop_start_time - start_time >= run_for:
                break

            # Sleep only the remainder of the tick, in small chunks
            processing_time = time.perf_counter() - loop_start_time
            sleep_time = loop_period - processing_time
            if sleep_time > 0:
                end = time.perf_counter() + sleep_time
                while not shutdown.is_set() and time.perf_counter() < end:
                    time.sleep(0.002)

    except KeyboardInterrupt:
        main_log.info("Keyboard interrupt received. Shutting down.")
    except Exception as e:
        main_log.critical(
            "An unhandled exception occurred in the main loop: %s", e, exc_info=True
        )
    finally:
        metrics = sim.get_performance_metrics()
        main_log.info(
            "Final metrics after %d ticks: stability=%s rms=%.4f avg=%.4f settling=%.2f s",
            sim.ticks, metrics.stability, metrics.rms_error, metrics.avg_error,
            controller.settling_time(),
        )
        main_log.info("Application finished.")


if __name__ == "__main__":
    install_signal_handlers()
    main_control_loop()
