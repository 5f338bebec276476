"""
JSON/JSONL storage implementation.

Persists tasks, voters and votes to a JSON state file that is replaced
atomically on every write, and mirrors applied votes to an append-only JSONL
audit log.
"""

import json
import os
import tempfile
import threading
import typing
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

from typing_extensions import override

from ..exceptions import (
    StorageUnavailable,
    TaskNotFound,
    ValidationError,
    VersionConflict,
    VoterNotFound,
)
from ..interfaces import ScoreUpdates, TaskStorage
from ..logging_config import get_logger
from ..models import Task, Vote, Voter
from .memory_storage import check_update_shape

# Module-level logger
logger = get_logger("jsonl_storage")


class _State(typing.TypedDict):
    tasks: dict[str, Task]
    voters: dict[str, Voter]
    votes: list[Vote]


class JSONLStorage(TaskStorage):
    """
    JSON file-based storage implementation.

    The state file is the source of truth; the audit log is written after the
    state commits. A per-store lock is the single writer, so only one
    JSONLStorage instance should point at a given state file.

    Every write rewrites the whole state file, vote history included, so a
    write costs O(tasks + votes). Meant for small teams and local use; use
    SQLiteStorage once the vote history grows into the tens of thousands.
    """

    state_path: Path
    audit_path: Path

    def __init__(self, state_path: Path, audit_path: Path | None = None):
        """
        Initialize JSONL storage.

        Args:
            state_path: Path to JSON file holding tasks, voters and votes
            audit_path: Path to JSONL vote log (defaults to votes.jsonl beside state_path)
        """
        self.state_path = Path(state_path)
        if audit_path is None:
            self.audit_path = self.state_path.parent / "votes.jsonl"
        else:
            self.audit_path = Path(audit_path)

        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.audit_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        logger.info(f"JSONL storage initialized: state={self.state_path}, audit={self.audit_path}")

    def _load(self) -> _State:
        """Read the state file; a missing file is an empty store."""
        if not self.state_path.exists():
            return {"tasks": {}, "voters": {}, "votes": []}
        try:
            with open(self.state_path, "r", encoding="utf-8") as f:
                data = typing.cast(dict[str, Any], json.load(f))  # pyright: ignore[reportExplicitAny]
            tasks = {d["task_id"]: Task(**d) for d in data.get("tasks", [])}
            voters = {d["voter_id"]: Voter(**d) for d in data.get("voters", [])}
            votes = [Vote(**d) for d in data.get("votes", [])]
        except OSError as e:
            raise StorageUnavailable(f"cannot read {self.state_path}: {e}") from e
        except (json.JSONDecodeError, KeyError, TypeError, ValidationError) as e:
            logger.error(f"Corrupt state file {self.state_path}: {e}")
            raise StorageUnavailable(f"corrupt state file {self.state_path}: {e}") from e
        return {"tasks": tasks, "voters": voters, "votes": votes}

    def _save(self, state: _State) -> None:
        """Write the state file via temp file + rename so readers never see half a write."""
        data = {
            "tasks": [asdict(t) for t in state["tasks"].values()],
            "voters": [asdict(v) for v in state["voters"].values()],
            "votes": [asdict(v) for v in state["votes"]],
        }
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.state_path.parent, prefix=".state-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.state_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageUnavailable(f"cannot write {self.state_path}: {e}") from e

    def _append_audit(self, vote: Vote) -> None:
        try:
            with open(self.audit_path, "a", encoding="utf-8") as f:
                json.dump(asdict(vote), f, ensure_ascii=False)
                f.write("\n")
        except OSError as e:
            # State already committed; the audit log is a mirror only
            logger.error(f"Failed to append vote to {self.audit_path}: {e}")

    @override
    def list_open_tasks(self) -> list[Task]:
        with self._lock:
            return [t for t in self._load()["tasks"].values() if t.is_open]

    @override
    def list_tasks(self) -> list[Task]:
        with self._lock:
            return list(self._load()["tasks"].values())

    @override
    def get_task(self, task_id: str) -> Task:
        with self._lock:
            task = self._load()["tasks"].get(task_id)
        if task is None:
            raise TaskNotFound(f"task {task_id} not found")
        return task

    @override
    def apply_scores(self, updates: ScoreUpdates, vote: Vote | None = None) -> None:
        check_update_shape(updates)
        with self._lock:
            state = self._load()
            tasks = state["tasks"]
            for task_id, (_, expected_version) in updates.items():
                task = tasks.get(task_id)
                if task is None:
                    raise TaskNotFound(f"task {task_id} not found")
                if task.version != expected_version:
                    raise VersionConflict(
                        f"task {task_id} is at version {task.version}, expected {expected_version}"
                    )

            for task_id, (new_score, _) in updates.items():
                task = tasks[task_id]
                tasks[task_id] = replace(
                    task,
                    score=new_score,
                    version=task.version + 1,
                    comparisons=task.comparisons + 1,
                )
            if vote is not None:
                state["votes"].append(vote)
            self._save(state)

            if vote is not None:
                self._append_audit(vote)
        logger.debug(f"Applied scores for {sorted(updates)}")

    @override
    def add_task(self, task: Task) -> Task:
        with self._lock:
            state = self._load()
            if task.task_id in state["tasks"]:
                raise ValidationError(f"task {task.task_id} already exists")
            state["tasks"][task.task_id] = task
            self._save(state)
        logger.debug(f"Added task {task.task_id}")
        return task

    @override
    def close_task(self, task_id: str) -> Task:
        with self._lock:
            state = self._load()
            task = state["tasks"].get(task_id)
            if task is None:
                raise TaskNotFound(f"task {task_id} not found")
            closed = replace(task, closed=True, version=task.version + 1)
            state["tasks"][task_id] = closed
            self._save(state)
        logger.debug(f"Closed task {task_id}")
        return closed

    @override
    def upsert_voter(self, voter: Voter) -> None:
        with self._lock:
            state = self._load()
            state["voters"][voter.voter_id] = voter
            self._save(state)

    @override
    def get_voter(self, voter_id: str) -> Voter:
        with self._lock:
            voter = self._load()["voters"].get(voter_id)
        if voter is None:
            raise VoterNotFound(f"voter {voter_id} not found")
        return voter

    @override
    def count_votes_since(self, voter_id: str, since: float) -> int:
        with self._lock:
            votes = self._load()["votes"]
        return sum(1 for v in votes if v.voter_id == voter_id and v.timestamp >= since)

    @override
    def list_votes(self) -> list[Vote]:
        with self._lock:
            return list(self._load()["votes"])

    def read_audit_log(self) -> list[Vote]:
        """Load the mirrored vote log, skipping corrupt lines."""
        if not self.audit_path.exists():
            return []

        votes: list[Vote] = []
        with open(self.audit_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    votes.append(Vote(**json.loads(line)))
                except (json.JSONDecodeError, TypeError, ValidationError) as e:
                    logger.warning(f"Skipping invalid JSON line in {self.audit_path}: {e}")
                    continue
        return votes
