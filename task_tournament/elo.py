"""
Elo rating arithmetic.

Pure functions; the engine feeds them one score snapshot per update.
"""

from .models import Outcome

DEFAULT_K_FACTOR = 32.0
# Keeps 10 ** exponent well inside float range for absurd score gaps
MAX_EXPONENT = 300.0


def expected_score(own: float, opponent: float) -> float:
    """Probability that ``own`` beats ``opponent``."""
    exponent = (opponent - own) / 400.0
    exponent = max(-MAX_EXPONENT, min(MAX_EXPONENT, exponent))
    return 1.0 / (1.0 + 10.0 ** exponent)


def actual_score(outcome: Outcome, task_id: str) -> float:
    """Score a task earned from an outcome: 1 win, 0 loss, 0.5 tie."""
    if task_id not in outcome.pair:
        raise ValueError(f"task {task_id} is not part of the outcome")
    if outcome.tie:
        return 0.5
    return 1.0 if outcome.winner_id == task_id else 0.0


def rate_pair(
    first: float, second: float, first_actual: float, k_factor: float = DEFAULT_K_FACTOR
) -> tuple[float, float]:
    """
    Compute new ratings for both sides from the same snapshot.

    Args:
        first: Current rating of the first task
        second: Current rating of the second task
        first_actual: Actual score of the first task (second gets 1 - first_actual)
        k_factor: Maximum rating change per comparison

    Returns:
        (new_first, new_second); their sum equals first + second
    """
    first_expected = expected_score(first, second)
    second_expected = 1.0 - first_expected
    second_actual = 1.0 - first_actual
    return (
        first + k_factor * (first_actual - first_expected),
        second + k_factor * (second_actual - second_expected),
    )
