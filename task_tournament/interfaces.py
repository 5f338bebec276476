"""
Abstract base classes defining the interfaces for the task tournament system.

All interfaces are synchronous; implementations must be safe to call from
several threads at once.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

import numpy as np

from .models import Task, Vote, Voter

# task_id -> (new_score, expected_version)
ScoreUpdates = Mapping[str, tuple[float, int]]


class TaskStorage(ABC):
    """Interface for the durable store of tasks and their scores."""

    @abstractmethod
    def list_open_tasks(self) -> list[Task]:
        """Return all tasks that are not closed."""
        pass

    @abstractmethod
    def list_tasks(self) -> list[Task]:
        """Return all tasks, open and closed."""
        pass

    @abstractmethod
    def get_task(self, task_id: str) -> Task:
        """Get a specific task by id, raising TaskNotFound if absent."""
        pass

    @abstractmethod
    def apply_scores(self, updates: ScoreUpdates, vote: Vote | None = None) -> None:
        """
        Atomically apply new scores to exactly two tasks.

        Either both updates (and the vote, if given) land or nothing does.

        Args:
            updates: task_id -> (new_score, expected_version)
            vote: Optional audit record stored in the same step

        Raises:
            VersionConflict: if any expected version is not current
            TaskNotFound: if a task has vanished
        """
        pass

    @abstractmethod
    def add_task(self, task: Task) -> Task:
        """Insert a new task and return it as stored."""
        pass

    @abstractmethod
    def close_task(self, task_id: str) -> Task:
        """Close a task, bumping its version, and return it."""
        pass

    @abstractmethod
    def upsert_voter(self, voter: Voter) -> None:
        """Create or replace a voter."""
        pass

    @abstractmethod
    def get_voter(self, voter_id: str) -> Voter:
        """Get a voter by id, raising VoterNotFound if absent."""
        pass

    @abstractmethod
    def count_votes_since(self, voter_id: str, since: float) -> int:
        """Count votes cast by a voter at or after a unix timestamp."""
        pass

    @abstractmethod
    def list_votes(self) -> list[Vote]:
        """Return the vote audit log in insertion order."""
        pass


class PairSelector(ABC):
    """Interface for choosing which two tasks to compare next."""

    @abstractmethod
    def select_pair(self, candidates: Sequence[Task], rng: np.random.Generator) -> tuple[Task, Task] | None:
        """
        Select two distinct tasks to compare.

        Args:
            candidates: Open tasks to choose from
            rng: Random generator owned by the caller

        Returns:
            Two distinct tasks, or None if fewer than two candidates exist
        """
        pass
