from __future__ import annotations

import math
import random
from typing import Optional


class DeterministicRng:
    """Seedable entropy source shared by wander, spawn jitter and appearance variance.

    ``seed=None`` draws fresh entropy once and then behaves like any seeded stream, so
    ``reset`` still replays the same sequence.
    """

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            seed = random.SystemRandom().randrange(1 << 63)
        self._seed = seed
        self._random = random.Random(seed)

    @property
    def seed(self) -> int:
        return self._seed

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_float(self) -> float:
        return self._random.random()

    def next_centered(self) -> float:
        return self._random.random() - 0.5

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_angle(self) -> float:
        return self._random.uniform(0.0, 2.0 * math.pi)

    def next_in_disk(self, radius: float) -> tuple[float, float]:
        r = radius * math.sqrt(self._random.random())
        angle = self.next_angle()
        return r * math.cos(angle), r * math.sin(angle)
