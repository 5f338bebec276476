"""
SQLite storage implementation.

Durable TaskStorage backed by the standard library sqlite3 module. Score
updates run inside BEGIN IMMEDIATE so the version check and both writes
commit together, also across processes sharing the database file.
"""

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

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
logger = get_logger("sqlite_storage")

SCHEMA = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id TEXT PRIMARY KEY,
    summary TEXT NOT NULL,
    link TEXT,
    score REAL NOT NULL,
    closed INTEGER NOT NULL DEFAULT 0,
    comparisons INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS voters (
    voter_id TEXT PRIMARY KEY,
    weekly_vote_limit INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS votes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    voter_id TEXT,
    timestamp REAL NOT NULL,
    first_id TEXT NOT NULL,
    second_id TEXT NOT NULL,
    winner_id TEXT
);
CREATE INDEX IF NOT EXISTS votes_by_voter_and_time ON votes(voter_id, timestamp);
"""

TASK_COLUMNS = "task_id, summary, link, score, closed, comparisons, version"


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        task_id=row["task_id"],
        summary=row["summary"],
        link=row["link"],
        score=float(row["score"]),
        closed=bool(row["closed"]),
        comparisons=int(row["comparisons"]),
        version=int(row["version"]),
    )


def _row_to_vote(row: sqlite3.Row) -> Vote:
    return Vote(
        voter_id=row["voter_id"],
        first_id=row["first_id"],
        second_id=row["second_id"],
        winner_id=row["winner_id"],
        timestamp=float(row["timestamp"]),
    )


class SQLiteStorage(TaskStorage):
    """SQLite-backed storage; one connection serialized by a per-store lock."""

    def __init__(self, db_path: Path | str, timeout: float = 5.0):
        """
        Initialize SQLite storage, creating the schema if needed.

        Args:
            db_path: Path to the database file (":memory:" for a throwaway store)
            timeout: Seconds to wait on a locked database before giving up
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None, timeout=timeout)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageUnavailable(f"cannot open {self.db_path}: {e}") from e
        logger.info(f"SQLite storage initialized: {self.db_path}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _locked(self) -> Iterator[sqlite3.Connection]:
        """Hold the store lock and map sqlite3 failures to StorageUnavailable."""
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as e:
                logger.error(f"SQLite error on {self.db_path}: {e}")
                raise StorageUnavailable(f"sqlite error: {e}") from e

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT; any failure, COMMIT included, rolls back."""
        with self._locked() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    @override
    def list_open_tasks(self) -> list[Task]:
        with self._locked() as conn:
            rows = conn.execute(f"SELECT {TASK_COLUMNS} FROM tasks WHERE closed = 0").fetchall()
        return [_row_to_task(row) for row in rows]

    @override
    def list_tasks(self) -> list[Task]:
        with self._locked() as conn:
            rows = conn.execute(f"SELECT {TASK_COLUMNS} FROM tasks").fetchall()
        return [_row_to_task(row) for row in rows]

    @override
    def get_task(self, task_id: str) -> Task:
        with self._locked() as conn:
            row = conn.execute(f"SELECT {TASK_COLUMNS} FROM tasks WHERE task_id = ?", (task_id,)).fetchone()
        if row is None:
            raise TaskNotFound(f"task {task_id} not found")
        return _row_to_task(row)

    @override
    def apply_scores(self, updates: ScoreUpdates, vote: Vote | None = None) -> None:
        check_update_shape(updates)
        with self._transaction() as conn:
            for task_id, (new_score, expected_version) in updates.items():
                row = conn.execute("SELECT version FROM tasks WHERE task_id = ?", (task_id,)).fetchone()
                if row is None:
                    raise TaskNotFound(f"task {task_id} not found")
                if row["version"] != expected_version:
                    raise VersionConflict(
                        f"task {task_id} is at version {row['version']}, expected {expected_version}"
                    )
                conn.execute(
                    """UPDATE tasks
                       SET score = ?, version = version + 1, comparisons = comparisons + 1
                       WHERE task_id = ?""",
                    (new_score, task_id),
                )
            if vote is not None:
                conn.execute(
                    """INSERT INTO votes (voter_id, timestamp, first_id, second_id, winner_id)
                       VALUES (?, ?, ?, ?, ?)""",
                    (vote.voter_id, vote.timestamp, vote.first_id, vote.second_id, vote.winner_id),
                )
        logger.debug(f"Applied scores for {sorted(updates)}")

    @override
    def add_task(self, task: Task) -> Task:
        with self._transaction() as conn:
            exists = conn.execute("SELECT 1 FROM tasks WHERE task_id = ?", (task.task_id,)).fetchone()
            if exists is not None:
                raise ValidationError(f"task {task.task_id} already exists")
            conn.execute(
                f"INSERT INTO tasks ({TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    task.task_id,
                    task.summary,
                    task.link,
                    task.score,
                    int(task.closed),
                    task.comparisons,
                    task.version,
                ),
            )
        logger.debug(f"Added task {task.task_id}")
        return task

    @override
    def close_task(self, task_id: str) -> Task:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE tasks SET closed = 1, version = version + 1 WHERE task_id = ?", (task_id,)
            )
            if cursor.rowcount == 0:
                raise TaskNotFound(f"task {task_id} not found")
            row = conn.execute(f"SELECT {TASK_COLUMNS} FROM tasks WHERE task_id = ?", (task_id,)).fetchone()
        logger.debug(f"Closed task {task_id}")
        return _row_to_task(row)

    @override
    def upsert_voter(self, voter: Voter) -> None:
        with self._locked() as conn:
            conn.execute(
                """INSERT INTO voters (voter_id, weekly_vote_limit) VALUES (?, ?)
                   ON CONFLICT(voter_id) DO UPDATE SET weekly_vote_limit = excluded.weekly_vote_limit""",
                (voter.voter_id, voter.weekly_vote_limit),
            )

    @override
    def get_voter(self, voter_id: str) -> Voter:
        with self._locked() as conn:
            row = conn.execute(
                "SELECT voter_id, weekly_vote_limit FROM voters WHERE voter_id = ?", (voter_id,)
            ).fetchone()
        if row is None:
            raise VoterNotFound(f"voter {voter_id} not found")
        return Voter(voter_id=row["voter_id"], weekly_vote_limit=int(row["weekly_vote_limit"]))

    @override
    def count_votes_since(self, voter_id: str, since: float) -> int:
        with self._locked() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM votes WHERE voter_id = ? AND timestamp >= ?", (voter_id, since)
            ).fetchone()
        return int(row["n"])

    @override
    def list_votes(self) -> list[Vote]:
        with self._locked() as conn:
            rows = conn.execute(
                "SELECT voter_id, timestamp, first_id, second_id, winner_id FROM votes ORDER BY id"
            ).fetchall()
        return [_row_to_vote(row) for row in rows]
