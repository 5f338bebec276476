"""
CLI entry point for task tournament.

Prints the current ranking held in a durable store. Read-only: tasks and
votes are managed by whatever application embeds the engine.
"""

import argparse
import sys
from argparse import Namespace
from collections.abc import Sequence
from pathlib import Path
from typing import TypedDict

from prettytable import PrettyTable

from .engine import EngineConfig, RankingEngine
from .exceptions import ConfigurationError, StorageError
from .interfaces import TaskStorage
from .logging_config import get_logger, setup_logging
from .models import Task
from .storage import JSONLStorage, SQLiteStorage


class CLIArgs(TypedDict):
    """Typed representation of parsed CLI arguments."""
    store: str
    backend: str
    open_only: bool
    top: int | None
    debug: bool
    log_level: str
    log_file: str | None


def parse_args(argv: Sequence[str] | None = None) -> Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Task Tournament - show the current pairwise priority ranking"
    )

    _ = parser.add_argument(
        "--store",
        required=True,
        help="Path to the SQLite database or JSON state file"
    )
    _ = parser.add_argument(
        "--backend",
        choices=["sqlite", "jsonl"],
        default="sqlite",
        help="Storage backend (default: sqlite)"
    )
    _ = parser.add_argument(
        "--open-only",
        action="store_true",
        help="Leave closed tasks out of the ranking"
    )
    _ = parser.add_argument(
        "--top",
        type=int,
        help="Show only the first N tasks"
    )
    _ = parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    _ = parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Set logging level (default: WARNING)"
    )
    _ = parser.add_argument(
        "--log-file",
        help="Also write logs to this rotating file"
    )

    return parser.parse_args(argv)


def args_to_typed(ns: Namespace) -> CLIArgs:
    """Convert argparse Namespace to typed CLIArgs."""
    return CLIArgs(
        store=ns.store,
        backend=ns.backend,
        open_only=ns.open_only,
        top=ns.top,
        debug=ns.debug,
        log_level=ns.log_level,
        log_file=ns.log_file,
    )


def validate_config(args: CLIArgs) -> None:
    """Validate configuration parameters."""
    if args["top"] is not None and args["top"] <= 0:
        raise ConfigurationError(f"--top must be positive, got {args['top']}")
    if not Path(args["store"]).exists():
        raise ConfigurationError(f"store does not exist: {args['store']}")


def open_storage(args: CLIArgs) -> TaskStorage:
    """Create the storage backend named on the command line."""
    if args["backend"] == "sqlite":
        return SQLiteStorage(Path(args["store"]))
    if args["backend"] == "jsonl":
        return JSONLStorage(Path(args["store"]))
    raise ConfigurationError(f"Unknown backend: {args['backend']}")


def render_ranking(ranking: Sequence[Task]) -> str:
    """Format a ranking as a table."""
    table = PrettyTable()
    table.field_names = ["Rank", "Task ID", "Summary", "Score", "Comparisons", "Status"]
    table.align["Rank"] = "r"
    table.align["Summary"] = "l"
    table.align["Score"] = "r"
    table.align["Comparisons"] = "r"

    for i, task in enumerate(ranking, 1):
        table.add_row([
            i,
            task.task_id,
            task.summary,
            f"{task.score:.1f}",
            task.comparisons,
            "closed" if task.closed else "open",
        ])
    return table.get_string()


def main(argv: Sequence[str] | None = None) -> int:
    """Main CLI entry point."""
    args = args_to_typed(parse_args(argv))
    setup_logging(level=args["log_level"], debug=args["debug"], log_file=args["log_file"])
    logger = get_logger("main")

    storage: TaskStorage | None = None
    try:
        validate_config(args)
        storage = open_storage(args)
        engine = RankingEngine(
            storage,
            config=EngineConfig(include_closed_in_ranking=not args["open_only"]),
        )
        ranking = engine.current_ranking()
    except (ConfigurationError, StorageError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if isinstance(storage, SQLiteStorage):
            storage.close()

    if args["top"] is not None:
        ranking = ranking[: args["top"]]

    if not ranking:
        print("No tasks found.")
        return 0

    print(render_ranking(ranking))
    return 0


if __name__ == "__main__":
    sys.exit(main())
