"""
Performance analytics over the PID controller's rolling histories.

Every function here is a pure, read-only view of the error/output history
kept by PIDController. Nothing computed in this module is ever fed back into
the control law; it exists for status displays, tuning experiments and tests.
"""
from __future__ import annotations

from typing import Iterable, Sequence, Tuple

import numpy as np

INITIALIZING = "Initializing"
VERY_STABLE = "Very Stable"
STABLE = "Stable"
SETTLING = "Settling"
OSCILLATING = "Oscillating"
UNSTABLE = "Unstable"

# Ordered from best to worst; INITIALIZING precedes all of them.
STABILITY_LEVELS: Tuple[str, ...] = (
    INITIALIZING, VERY_STABLE, STABLE, SETTLING, OSCILLATING, UNSTABLE,
)

# Ascending mean-|error| upper bounds for VERY_STABLE .. OSCILLATING.
STABILITY_THRESHOLDS: Tuple[float, ...] = (0.1, 0.3, 1.0, 3.0)


def _tail(errors: Sequence[float], window: int) -> np.ndarray:
    return np.asarray(list(errors)[-window:], dtype=float)


def stability_status(
    errors: Sequence[float],
    window: int = 10,
    thresholds: Tuple[float, ...] = STABILITY_THRESHOLDS,
) -> str:
    """
    Classifies the recent mean absolute error.

    Args:
        errors (Sequence[float]): Error history, oldest first.
        window (int): Number of most recent samples to average.
        thresholds (Tuple[float, ...]): Four ascending bounds separating
            Very Stable / Stable / Settling / Oscillating / Unstable.

    Returns:
        str: One of STABILITY_LEVELS. "Initializing" while fewer than
            `window` samples exist.
    """
    if window <= 0 or len(errors) < window:
        return INITIALIZING

    avg = float(np.mean(np.abs(_tail(errors, window))))
    for level, bound in zip(STABILITY_LEVELS[1:], thresholds):
        if avg < bound:
            return level
    return UNSTABLE


def rms_error(errors: Sequence[float], window: int = 50) -> float:
    if window <= 0 or len(errors) < window:
        return 0.0
    recent = _tail(errors, window)
    return float(np.sqrt(np.mean(recent * recent)))


def error_trend(errors: Sequence[float], window: int = 20) -> float:
    """
    Least-squares slope of error against sample index over the last `window`
    samples. Returns 0.0 when there is not enough history or the regression
    is degenerate (window of one).
    """
    if window <= 0 or len(errors) < window:
        return 0.0

    y = _tail(errors, window)
    x = np.arange(len(y), dtype=float)
    n = float(len(y))

    denom = n * np.sum(x * x) - np.sum(x) ** 2
    if denom == 0 or not np.isfinite(denom):
        return 0.0
    return float((n * np.sum(x * y) - np.sum(x) * np.sum(y)) / denom)


def settling_time(errors: Sequence[float], dts: Sequence[float], band: float = 2.0) -> float:
    """
    Controller time elapsed since |error| last exceeded `band`.

    The history is scanned backward from the most recent sample; the result is
    the sum of the timesteps of the samples recorded after the last
    out-of-band sample. Returns 0.0 when no sample ever left the band.

    Args:
        errors (Sequence[float]): Error history, oldest first.
        dts (Sequence[float]): Timestep of each error sample (same length).
        band (float): Tolerance band in measurement units.
    """
    err = np.abs(np.asarray(list(errors), dtype=float))
    steps = np.asarray(list(dts), dtype=float)
    if err.size == 0:
        return 0.0

    outside = np.nonzero(err > band)[0]
    if outside.size == 0:
        return 0.0
    last = int(outside[-1])
    return float(np.sum(steps[last + 1:]))


def overshoot(errors: Iterable[float]) -> float:
    """Largest absolute deviation of the measurement from the setpoint."""
    err = np.abs(np.asarray(list(errors), dtype=float))
    return float(err.max()) if err.size else 0.0


def mean_abs_error(errors: Sequence[float]) -> float:
    if len(errors) == 0:
        return 0.0
    return float(np.mean(np.abs(np.asarray(list(errors), dtype=float))))
