"""
Random pair selector implementation.

Simple stateless selector; the baseline policy.
"""

from collections.abc import Sequence

import numpy as np
from typing_extensions import override

from ..interfaces import PairSelector
from ..logging_config import get_logger
from ..models import Task


class RandomPairSelector(PairSelector):
    """Uniform pair selector, drawing without replacement."""

    def __init__(self):
        self.logger = get_logger("random_selector")

    @override
    def select_pair(self, candidates: Sequence[Task], rng: np.random.Generator) -> tuple[Task, Task] | None:
        """Return two distinct tasks chosen uniformly at random."""
        if len(candidates) < 2:
            self.logger.warning("Insufficient tasks for comparison")
            return None

        first, second = rng.choice(len(candidates), size=2, replace=False)
        pair = (candidates[int(first)], candidates[int(second)])
        self.logger.debug(f"Selected random pair: {pair[0].task_id}, {pair[1].task_id}")
        return pair
