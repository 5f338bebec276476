"""
Close-score pair selector implementation.

Comparisons between tasks with similar scores carry the most information,
since their outcome is least predictable. The first task is drawn uniformly;
the partner is drawn with weight exp(-|score gap| / temperature).
"""

from collections.abc import Sequence

import numpy as np
from typing_extensions import override

from ..interfaces import PairSelector
from ..logging_config import get_logger
from ..models import Task


class CloseScorePairSelector(PairSelector):
    """
    Score-proximity selector.

    Every candidate keeps a probability of at least ``min_weight`` relative
    weight so distant tasks are never starved entirely.
    """

    def __init__(self, temperature: float = 100.0, min_weight: float = 1e-3):
        """
        Initialize close-score selector.

        Args:
            temperature: Score gap scale (smaller = pickier about closeness)
            min_weight: Floor for partner weights, must be > 0
        """
        if temperature <= 0:
            raise ValueError(f"temperature must be positive, got {temperature}")
        if min_weight <= 0:
            raise ValueError(f"min_weight must be positive, got {min_weight}")
        self.temperature = temperature
        self.min_weight = min_weight
        self.logger = get_logger("close_score_selector")

    def partner_weights(self, anchor: Task, candidates: Sequence[Task]) -> np.ndarray:
        """Selection probability for each candidate as the anchor's partner."""
        scores = np.array([task.score for task in candidates], dtype=float)
        raw = np.exp(-np.abs(scores - anchor.score) / self.temperature)
        raw = np.maximum(raw, self.min_weight)
        return raw / raw.sum()

    @override
    def select_pair(self, candidates: Sequence[Task], rng: np.random.Generator) -> tuple[Task, Task] | None:
        """Return a pair biased towards close scores."""
        if len(candidates) < 2:
            self.logger.warning("Insufficient tasks for comparison")
            return None

        anchor_index = int(rng.integers(len(candidates)))
        anchor = candidates[anchor_index]
        others = [task for i, task in enumerate(candidates) if i != anchor_index]

        partner = others[int(rng.choice(len(others), p=self.partner_weights(anchor, others)))]
        self.logger.debug(
            f"Selected close-score pair: {anchor.task_id} ({anchor.score:.1f}), "
            f"{partner.task_id} ({partner.score:.1f})"
        )
        return anchor, partner
