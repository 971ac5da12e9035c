"""
perturbations.py
================

Defines the DisturbanceSchedule used to inject external impulses into the
pendulum during a simulation run. Two sources are supported:

    • Timed impulses: a magnitude injected once when sim time reaches t0
    • Random kicks:   with a per-tick probability, an impulse whose magnitude
                      is drawn uniformly from [min, max] with a random sign

The schedule does not touch the physics itself. The simulation driver polls
it once per tick and forwards any returned magnitude to
PhysicsModel.apply_disturbance(), which overwrites the decaying impulse.
Random draws come from a seeded random.Random, so runs are reproducible.
"""

import random
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple


@dataclass
class DisturbanceSchedule:
    # (t0, magnitude)
    impulses: List[Tuple[float, float]] = field(default_factory=list)

    # (probability, min_magnitude, max_magnitude)
    random_kicks: List[Tuple[float, float, float]] = field(default_factory=list)

    seed: Optional[int] = None

    def __post_init__(self):
        self._fired: Set[int] = set()
        self._rng = random.Random(self.seed)

    # ------------------------------------------------------------------
    # Impulses
    # ------------------------------------------------------------------
    def add_impulse(self, t0: float, magnitude: float):
        self.impulses.append((t0, magnitude))

    # ------------------------------------------------------------------
    # Random kicks
    # ------------------------------------------------------------------
    def add_random_kick(self, probability: float, min_magnitude: float = 3.0, max_magnitude: float = 7.0):
        self.random_kicks.append((probability, min_magnitude, max_magnitude))

    # ------------------------------------------------------------------
    def reset(self):
        self._fired.clear()
        self._rng = random.Random(self.seed)

    # ------------------------------------------------------------------
    # Impulse due at time t (None when nothing fires)
    # ------------------------------------------------------------------
    def poll(self, t: float) -> Optional[float]:
        magnitude = None

        for idx, (t0, mag) in enumerate(self.impulses):
            if idx not in self._fired and t >= t0:
                self._fired.add(idx)
                magnitude = mag if magnitude is None else magnitude + mag

        for prob, lo, hi in self.random_kicks:
            if self._rng.random() < prob:
                kick = self._rng.uniform(lo, hi) * self._rng.choice((-1.0, 1.0))
                magnitude = kick if magnitude is None else magnitude + kick

        return magnitude
