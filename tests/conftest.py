"""
Shared fixtures: every storage backend behind the same contract.
"""

from collections.abc import Iterator
from pathlib import Path

import pytest

from task_tournament.interfaces import TaskStorage
from task_tournament.models import Task
from task_tournament.storage import InMemoryStorage, JSONLStorage, SQLiteStorage


def make_storage(kind: str, directory: Path) -> TaskStorage:
    if kind == "memory":
        return InMemoryStorage()
    if kind == "jsonl":
        return JSONLStorage(directory / "state.json")
    if kind == "sqlite":
        return SQLiteStorage(directory / "tasks.sqlite3")
    raise ValueError(kind)


@pytest.fixture(params=["memory", "jsonl", "sqlite"])
def storage(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[TaskStorage]:
    store = make_storage(request.param, tmp_path)
    yield store
    if isinstance(store, SQLiteStorage):
        store.close()


def add_tasks(storage: TaskStorage, *specs: tuple[str, float]) -> list[Task]:
    """Add tasks given as (task_id, score) pairs."""
    return [
        storage.add_task(Task(task_id=task_id, summary=f"task {task_id}", score=score))
        for task_id, score in specs
    ]
