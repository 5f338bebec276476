"""
Core dataclasses for the task tournament system.

Defines Task, Comparison, Outcome, Voter and Vote models with validation.
"""

import math
import time
import uuid
from dataclasses import dataclass, field

from .exceptions import ValidationError

DEFAULT_SCORE = 1200.0
UNLIMITED_VOTES = -1


def new_task_id() -> str:
    """Generate a fresh task id."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Task:
    """A task whose priority is decided by pairwise votes.

    ``version`` is bumped on every score write and on close; ``comparisons``
    counts recorded outcomes only.
    """

    summary: str
    task_id: str = field(default_factory=new_task_id)
    link: str | None = None
    score: float = DEFAULT_SCORE
    closed: bool = False
    comparisons: int = 0
    version: int = 0

    def __post_init__(self) -> None:
        """Validate task data."""
        if not self.task_id:
            raise ValidationError("task_id cannot be empty")
        if not self.summary:
            raise ValidationError("summary cannot be empty")
        if not math.isfinite(self.score):
            raise ValidationError(f"score must be finite, got {self.score}")
        if self.comparisons < 0 or self.version < 0:
            raise ValidationError("comparisons and version cannot be negative")

    @property
    def is_open(self) -> bool:
        return not self.closed

    def __str__(self) -> str:
        prefix = "(closed) " if self.closed else ""
        suffix = f" | {self.link}" if self.link else ""
        return f"{prefix}{self.task_id}: {self.summary}{suffix}"


@dataclass(frozen=True)
class Comparison:
    """Two distinct open tasks issued to a caller for judging."""

    first: Task
    second: Task

    def __post_init__(self) -> None:
        if self.first.task_id == self.second.task_id:
            raise ValidationError("comparison needs two distinct tasks")

    @property
    def pair(self) -> frozenset[str]:
        return frozenset((self.first.task_id, self.second.task_id))


@dataclass(frozen=True)
class Outcome:
    """Result reported for a comparison.

    On a tie the order of ``winner_id`` and ``loser_id`` carries no meaning.
    """

    winner_id: str
    loser_id: str
    tie: bool = False

    def __post_init__(self) -> None:
        if self.winner_id == self.loser_id:
            raise ValidationError("outcome needs two distinct tasks")

    @classmethod
    def win(cls, winner_id: str, loser_id: str) -> "Outcome":
        return cls(winner_id=winner_id, loser_id=loser_id)

    @classmethod
    def draw(cls, first_id: str, second_id: str) -> "Outcome":
        return cls(winner_id=first_id, loser_id=second_id, tie=True)

    @property
    def pair(self) -> frozenset[str]:
        return frozenset((self.winner_id, self.loser_id))


@dataclass(frozen=True)
class Voter:
    """Someone allowed to vote; a negative limit means unlimited."""

    voter_id: str
    weekly_vote_limit: int = UNLIMITED_VOTES

    def __post_init__(self) -> None:
        if not self.voter_id:
            raise ValidationError("voter_id cannot be empty")

    @property
    def is_limited(self) -> bool:
        return self.weekly_vote_limit >= 0


@dataclass(frozen=True)
class Vote:
    """Audit record of one applied outcome."""

    voter_id: str | None
    first_id: str
    second_id: str
    winner_id: str | None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.winner_id is not None and self.winner_id not in (self.first_id, self.second_id):
            raise ValidationError(f"winner {self.winner_id} is not part of the vote")

    @classmethod
    def from_outcome(cls, outcome: Outcome, voter_id: str | None, timestamp: float) -> "Vote":
        return cls(
            voter_id=voter_id,
            first_id=outcome.winner_id,
            second_id=outcome.loser_id,
            winner_id=None if outcome.tie else outcome.winner_id,
            timestamp=timestamp,
        )
