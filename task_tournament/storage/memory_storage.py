"""
In-memory storage implementation.

Reference implementation of the TaskStorage contract; nothing survives the
process. A single per-store lock serializes every operation.
"""

import threading
from dataclasses import replace

from typing_extensions import override

from ..exceptions import TaskNotFound, ValidationError, VersionConflict, VoterNotFound
from ..interfaces import ScoreUpdates, TaskStorage
from ..logging_config import get_logger
from ..models import Task, Vote, Voter

# Module-level logger
logger = get_logger("memory_storage")


def check_update_shape(updates: ScoreUpdates) -> None:
    """Reject anything but exactly two distinct task updates."""
    if len(updates) != 2:
        raise ValidationError(f"apply_scores needs exactly 2 updates, got {len(updates)}")


class InMemoryStorage(TaskStorage):
    """Dict-backed storage guarded by a mutex."""

    def __init__(self):
        self._tasks: dict[str, Task] = {}
        self._voters: dict[str, Voter] = {}
        self._votes: list[Vote] = []
        self._lock = threading.Lock()

    @override
    def list_open_tasks(self) -> list[Task]:
        with self._lock:
            return [t for t in self._tasks.values() if t.is_open]

    @override
    def list_tasks(self) -> list[Task]:
        with self._lock:
            return list(self._tasks.values())

    @override
    def get_task(self, task_id: str) -> Task:
        with self._lock:
            try:
                return self._tasks[task_id]
            except KeyError:
                raise TaskNotFound(f"task {task_id} not found") from None

    @override
    def apply_scores(self, updates: ScoreUpdates, vote: Vote | None = None) -> None:
        check_update_shape(updates)
        with self._lock:
            # Validate everything before touching anything
            for task_id, (_, expected_version) in updates.items():
                task = self._tasks.get(task_id)
                if task is None:
                    raise TaskNotFound(f"task {task_id} not found")
                if task.version != expected_version:
                    raise VersionConflict(
                        f"task {task_id} is at version {task.version}, expected {expected_version}"
                    )

            for task_id, (new_score, _) in updates.items():
                task = self._tasks[task_id]
                self._tasks[task_id] = replace(
                    task,
                    score=new_score,
                    version=task.version + 1,
                    comparisons=task.comparisons + 1,
                )
            if vote is not None:
                self._votes.append(vote)

    @override
    def add_task(self, task: Task) -> Task:
        with self._lock:
            if task.task_id in self._tasks:
                raise ValidationError(f"task {task.task_id} already exists")
            self._tasks[task.task_id] = task
        logger.debug(f"Added task {task.task_id}")
        return task

    @override
    def close_task(self, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFound(f"task {task_id} not found")
            closed = replace(task, closed=True, version=task.version + 1)
            self._tasks[task_id] = closed
        logger.debug(f"Closed task {task_id}")
        return closed

    @override
    def upsert_voter(self, voter: Voter) -> None:
        with self._lock:
            self._voters[voter.voter_id] = voter

    @override
    def get_voter(self, voter_id: str) -> Voter:
        with self._lock:
            try:
                return self._voters[voter_id]
            except KeyError:
                raise VoterNotFound(f"voter {voter_id} not found") from None

    @override
    def count_votes_since(self, voter_id: str, since: float) -> int:
        with self._lock:
            return sum(1 for v in self._votes if v.voter_id == voter_id and v.timestamp >= since)

    @override
    def list_votes(self) -> list[Vote]:
        with self._lock:
            return list(self._votes)
