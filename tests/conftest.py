import logging

import matplotlib

matplotlib.use("Agg")

import pytest

from pid_control.controller import PIDController, PIDLimits
from simulation.pendulum_model import PhysicsConfig, PhysicsModel
from utils.logger import LOGGER_NAMES


class FakeClock:
    """Manually advanced time source injected in place of time.perf_counter."""

    def __init__(self, t: float = 0.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_physics(fake_clock):
    """
    Build a PhysicsModel on the fake clock.
    Usage:
        physics = make_physics(initial_angle=0.05, trail_max_points=5)
    """
    def _builder(mass=1.0, length=0.5, gravity=9.81, friction=0.1, **cfg_kwargs):
        return PhysicsModel(
            mass, length, gravity, friction,
            config=PhysicsConfig(**cfg_kwargs),
            clock=fake_clock,
        )

    return _builder


@pytest.fixture
def make_controller(fake_clock):
    """
    Build a PIDController on the fake clock.
    Usage:
        pid = make_controller(kp=2.0, ki=0.1, kd=0.5, max_rate=50.0)
    """
    def _builder(kp=2.0, ki=0.1, kd=0.5, **limit_kwargs):
        return PIDController(kp, ki, kd, limits=PIDLimits(**limit_kwargs), clock=fake_clock)

    return _builder


@pytest.fixture
def restore_loggers():
    """Undo setup_logging() side effects so later tests see default logging."""
    yield
    for name in LOGGER_NAMES:
        log = logging.getLogger(name)
        for h in list(log.handlers):
            log.removeHandler(h)
            h.close()
        log.propagate = True
        log.setLevel(logging.NOTSET)
