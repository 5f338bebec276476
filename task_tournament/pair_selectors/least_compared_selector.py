"""
Least-compared pair selector implementation.

Selects tasks randomly but favours those with the fewest recorded
comparisons, so newly added tasks catch up before well-known ones get
compared again. Unlike a strict bucket fill, every task keeps a non-zero
chance of being picked.
"""

from collections.abc import Sequence

import numpy as np
from typing_extensions import override

from ..interfaces import PairSelector
from ..logging_config import get_logger
from ..models import Task

# Module-level logger
logger = get_logger("least_compared_selector")


class LeastComparedPairSelector(PairSelector):
    """Selector that prioritizes tasks with fewer comparisons."""

    def __init__(self, power: float = 2.0, min_weight: float = 1e-9):
        """Initialize least-compared selector.

        Args:
            power: How sharply weight falls with comparison count
                   (0 = uniform, larger = stronger preference for rare tasks)
            min_weight: Floor for a task's weight relative to the least
                        compared task, must be > 0
        """
        if power < 0:
            raise ValueError(f"power must be non-negative, got {power}")
        if min_weight <= 0:
            raise ValueError(f"min_weight must be positive, got {min_weight}")
        self.power = power
        self.min_weight = min_weight

    def weights(self, candidates: Sequence[Task]) -> np.ndarray:
        """Selection probability for each candidate."""
        counts = np.array([task.comparisons for task in candidates], dtype=float)
        # Relative to the least compared task: the largest weight is exactly 1
        raw = np.power((1.0 + counts.min()) / (1.0 + counts), self.power)
        raw = np.maximum(raw, self.min_weight)
        return raw / raw.sum()

    @override
    def select_pair(self, candidates: Sequence[Task], rng: np.random.Generator) -> tuple[Task, Task] | None:
        """Return a pair weighted towards rarely compared tasks."""
        if len(candidates) < 2:
            logger.warning("Insufficient tasks for comparison")
            return None

        first, second = rng.choice(len(candidates), size=2, replace=False, p=self.weights(candidates))
        pair = (candidates[int(first)], candidates[int(second)])
        logger.debug(
            f"Selected least-compared pair: {pair[0].task_id} ({pair[0].comparisons}), "
            f"{pair[1].task_id} ({pair[1].comparisons})"
        )
        return pair
