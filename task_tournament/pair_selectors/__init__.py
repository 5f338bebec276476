"""
Pair selector implementations.

Provides implementations of the PairSelector interface for choosing which two
tasks to compare next.

Available implementations:
- RandomPairSelector: Uniform choice without replacement (default)
- LeastComparedPairSelector: Favours tasks with few recorded comparisons
- CloseScorePairSelector: Favours pairs whose scores are close
"""

from .random_selector import RandomPairSelector
from .least_compared_selector import LeastComparedPairSelector
from .close_score_selector import CloseScorePairSelector

__all__ = ["RandomPairSelector", "LeastComparedPairSelector", "CloseScorePairSelector"]
