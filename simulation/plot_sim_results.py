# plot_sim_results.py
"""
plot_sim_results.py
====================

Analysis & Plotting utilities for the PID balance simulator.

This module visualizes the logs produced by BalanceSimulation. The primary
function `plot_sim_results()` accepts a completed simulation and draws:

    • Top panel:    pendulum angle (deg) and controller error vs time,
                    disturbance impulse on a right-hand axis
    • Bottom panel: controller output with its P / I / D breakdown

Log-based response metrics complement the controller's own rolling
analytics (which only see the bounded history):

    - peak deviation
    - settling time (first time after which |angle| stays inside a band)
    - logarithmic-decrement damping ratio estimate

Typical usage::

    sim.run(20.0)
    plot_sim_results(sim, save_path="plots/sim.png", show=False)

This module contains no physics or control code and is safe to modify
independently (styling, labels, colors, scaling, etc.).
"""
from __future__ import annotations

import os
from typing import Callable, Dict, List, Optional

import matplotlib.pyplot as plt
import numpy as np

from simulation.balance_simulation import BalanceSimulation


# ============================================================
# PERFORMANCE METRICS
# ============================================================

def compute_peak_deviation(angle: np.ndarray, setpoint: float = 0.0) -> float:
    angle = np.asarray(angle, dtype=float)
    if angle.size == 0:
        return 0.0
    return float(np.max(np.abs(angle - setpoint)))


def compute_settling_time(t: np.ndarray, angle: np.ndarray, band: float = 2.0, setpoint: float = 0.0) -> float:
    """First time after which |angle - setpoint| stays within `band`; t[-1] if it never settles."""
    t = np.asarray(t, dtype=float)
    dev = np.abs(np.asarray(angle, dtype=float) - setpoint)
    if dev.size == 0:
        return 0.0

    outside = np.nonzero(dev > band)[0]
    if outside.size == 0:
        return float(t[0])
    last = int(outside[-1])
    if last + 1 >= len(t):
        return float(t[-1])
    return float(t[last + 1])


def estimate_damping_ratio(angle: np.ndarray) -> float:
    """Logarithmic decrement over the first two peaks of |angle|; 1.0 if not oscillating."""
    x = np.abs(np.asarray(angle, dtype=float))
    peaks = []
    for i in range(1, len(x) - 1):
        if x[i] > x[i - 1] and x[i] >= x[i + 1]:
            peaks.append(x[i])

    if len(peaks) < 2:
        return 1.0

    x1, x2 = peaks[0], peaks[1]
    if x1 <= 0 or x2 <= 0:
        return 1.0
    if x2 >= x1:
        return 0.0

    # consecutive |angle| peaks are half a period apart
    delta = 2.0 * np.log(x1 / x2)
    return float(delta / np.sqrt((2 * np.pi) ** 2 + delta ** 2))


def summarize(sim: BalanceSimulation, band: float = 2.0) -> Dict[str, float]:
    t = np.array(sim.log_t)
    angle = np.array(sim.log_angle)
    setpoint = sim.cfg.setpoint
    metrics = sim.get_performance_metrics()
    return {
        "peak_deviation": compute_peak_deviation(angle, setpoint),
        "settling_time": compute_settling_time(t, angle, band, setpoint),
        "damping_ratio": estimate_damping_ratio(angle - setpoint),
        "rms_error": metrics.rms_error,
        "avg_error": metrics.avg_error,
        "stability": metrics.stability,
    }


# ============================================================
# DISTURBANCE OVERLAY + ANNOTATION
# ============================================================

def overlay_disturbances(ax, ax_ext, sim: BalanceSimulation):
    t = np.array(sim.log_t)
    dist = np.array(sim.log_disturbance)

    if dist.size == 0 or np.all(dist == 0):
        return

    ax_ext.plot(t, dist, 'r-.', linewidth=1.4, label="disturbance")

    # Injection = jump in magnitude
    for i in range(1, len(dist)):
        if abs(dist[i]) > abs(dist[i - 1]) + 1e-9:
            ax.axvline(t[i], color='red', linestyle='--', alpha=0.5)


def annotate_disturbances(ax, sim: BalanceSimulation):
    pert = sim.perturb
    lines = []

    for t0, mag in pert.impulses:
        lines.append(f"Impulse: {mag:+.2f} @ {t0:.2f}s")

    for prob, lo, hi in pert.random_kicks:
        lines.append(f"Kicks: |{lo:.1f}..{hi:.1f}|, p={prob:.3f}")

    if not lines:
        return

    ax.text(
        0.02, 0.98, "\n".join(lines),
        transform=ax.transAxes,
        fontsize=9,
        verticalalignment='top',
        bbox=dict(boxstyle="round,pad=0.4", facecolor="lightyellow", alpha=0.8),
    )


# ============================================================
# MAIN PLOTTING FUNCTION
# ============================================================

def plot_sim_results(
    sim: BalanceSimulation,
    title: str = "PID Balance Simulation",
    save_path: Optional[str] = None,
    show: bool = True,
):
    t = np.array(sim.log_t)

    fig, (ax, ax_u) = plt.subplots(2, 1, figsize=(11, 7), sharex=True)

    # Top: angle and error
    ax.plot(t, sim.log_angle, label="angle (deg)")
    ax.plot(t, sim.log_error, alpha=0.7, label="error (deg)")
    ax.axhline(sim.cfg.setpoint, color='black', linewidth=0.8, linestyle=':', label="setpoint")
    ax.set_ylabel("Angle / Error (deg)")
    ax.set_title(title)

    ax_ext = ax.twinx()
    ax_ext.set_ylabel("Disturbance", color='red')
    ax_ext.tick_params(axis='y', labelcolor='red')

    overlay_disturbances(ax, ax_ext, sim)
    annotate_disturbances(ax, sim)

    lines = ax.get_lines() + ax_ext.get_lines()
    ax.legend(lines, [ln.get_label() for ln in lines], loc="upper right")

    # Bottom: output breakdown
    ax_u.plot(t, sim.log_output, color='black', label="output")
    ax_u.plot(t, sim.log_p, '--', label="P")
    ax_u.plot(t, sim.log_i, '--', label="I")
    ax_u.plot(t, sim.log_d, '--', label="D")
    ax_u.set_xlabel("Time (s)")
    ax_u.set_ylabel("Torque command")
    ax_u.legend(loc="upper right")

    fig.tight_layout()
    if save_path:
        os.makedirs(os.path.dirname(save_path) or ".", exist_ok=True)
        fig.savefig(save_path)
    if show:
        plt.show()

    # Performance metrics
    m = summarize(sim)
    print("\n=== PERFORMANCE METRICS ===")
    print(f"Stability:      {m['stability']}")
    print(f"Peak deviation: {m['peak_deviation']:.4f} deg")
    print(f"Settling time:  {m['settling_time']:.3f} s")
    print(f"ζ estimate:     {m['damping_ratio']:.3f}")
    print(f"RMS error:      {m['rms_error']:.4f} deg")
    print("====================================\n")

    return fig


# ============================================================
# MONTE CARLO TESTING
# ============================================================

def monte_carlo_test(
    sim_factory: Callable[[], BalanceSimulation],
    N: int = 40,
    duration: float = 10.0,
    seed: Optional[int] = None,
) -> Dict[str, List[float]]:
    """
    Runs N simulations, each with one randomized impulse, and collects
    response metrics. sim_factory must return a fresh simulation per call.
    """
    rng = np.random.default_rng(seed)
    results: Dict[str, List[float]] = {"zeta": [], "peak": [], "settling": [], "rms": []}

    for _ in range(N):
        sim = sim_factory()
        sim.perturb.add_impulse(
            float(rng.uniform(0.2, 0.5)) * duration,
            float(rng.uniform(3.0, 7.0) * rng.choice([-1.0, 1.0])),
        )
        sim.run(duration)

        t = np.array(sim.log_t)
        angle = np.array(sim.log_angle)

        results["zeta"].append(estimate_damping_ratio(angle))
        results["peak"].append(compute_peak_deviation(angle))
        results["settling"].append(compute_settling_time(t, angle))
        results["rms"].append(sim.get_performance_metrics().rms_error)

    print(f"\n===== MONTE CARLO RESULTS (N={N}) =====")
    print(f"ζ mean         = {np.mean(results['zeta']):.3f}")
    print(f"ζ std          = {np.std(results['zeta']):.3f}")
    print(f"Peak mean      = {np.mean(results['peak']):.4f} deg")
    print(f"Settling mean  = {np.mean(results['settling']):.3f} s")
    print(f"RMS mean       = {np.mean(results['rms']):.4f} deg")
    print("==========================================")

    return results
