"""
Ranking engine for the task tournament.

Picks pairs to compare, turns outcomes into Elo updates applied with
optimistic concurrency, and projects a ranking out of storage.
"""

import math
import threading
import time
from collections.abc import Callable, Collection
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from loguru import Logger

from .elo import DEFAULT_K_FACTOR, actual_score, rate_pair
from .exceptions import (
    ConcurrentUpdateConflict,
    ConfigurationError,
    InsufficientTasks,
    OutcomeMismatch,
    StaleComparison,
    TaskNotFound,
    VersionConflict,
    VoteLimitExceeded,
)
from .interfaces import PairSelector, TaskStorage
from .logging_config import get_logger
from .models import Comparison, Outcome, Task, Vote
from .pair_selectors import RandomPairSelector

VOTE_LIMIT_WINDOW = 7 * 24 * 60 * 60  # seconds in a week


@dataclass
class EngineConfig:
    """Configuration for the ranking engine."""

    k_factor: float = DEFAULT_K_FACTOR
    max_retries: int = 8  # extra attempts after the first version conflict
    include_closed_in_ranking: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if not (math.isfinite(self.k_factor) and self.k_factor > 0):
            raise ConfigurationError(f"k_factor must be a positive number, got {self.k_factor}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be non-negative, got {self.max_retries}")


class RankingEngine:
    """
    Stateless ranking engine over a TaskStorage.

    The only shared mutable state is the random generator, which is guarded
    by a lock so one engine can serve concurrent callers.
    """

    def __init__(
        self,
        storage: TaskStorage,
        config: EngineConfig | None = None,
        selector: PairSelector | None = None,
        rng: np.random.Generator | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the engine.

        Args:
            storage: Backend holding tasks and scores
            config: Engine configuration (defaults to EngineConfig())
            selector: Pair selection policy (defaults to uniform random)
            rng: Random generator; pass np.random.default_rng(seed) for reproducibility
            clock: Returns the current unix time, used for vote limits and audit
        """
        self.storage: TaskStorage = storage
        self.config: EngineConfig = config or EngineConfig()
        self.selector: PairSelector = selector or RandomPairSelector()
        self.rng: np.random.Generator = rng if rng is not None else np.random.default_rng()
        self.clock = clock
        self._rng_lock: threading.Lock = threading.Lock()
        self.logger: Logger = get_logger("engine")

    def next_comparison(self, exclude: Collection[str] = ()) -> Comparison:
        """
        Pick two distinct open tasks to compare.

        Args:
            exclude: Task ids to leave out, e.g. ones already in flight

        Raises:
            InsufficientTasks: if fewer than two candidates remain
        """
        excluded = set(exclude)
        candidates = [t for t in self.storage.list_open_tasks() if t.task_id not in excluded]
        if len(candidates) < 2:
            raise InsufficientTasks(
                f"need at least 2 open tasks to compare, found {len(candidates)}"
            )

        # Stable candidate order keeps selection reproducible for a given seed
        candidates.sort(key=lambda t: t.task_id)
        with self._rng_lock:
            pair = self.selector.select_pair(candidates, self.rng)
        if pair is None:
            raise InsufficientTasks("selector could not produce a pair")

        comparison = Comparison(first=pair[0], second=pair[1])
        self.logger.debug(f"Issued comparison: {comparison.first.task_id} vs {comparison.second.task_id}")
        return comparison

    def record_outcome(
        self, comparison: Comparison, outcome: Outcome, voter_id: str | None = None
    ) -> tuple[Task, Task]:
        """
        Apply an outcome to the scores of the compared tasks.

        Both new scores come from the same read of the two tasks and are
        written with a single conditional update; on a version conflict the
        whole read-compute-write cycle is retried.

        Args:
            comparison: Comparison previously returned by next_comparison
            outcome: Result naming the same pair
            voter_id: Optional voter to check against their weekly limit and
                      record in the vote log

        Returns:
            The two updated tasks, winner-side first as named by the outcome

        Raises:
            OutcomeMismatch: if the outcome names a different pair
            StaleComparison: if a task vanished or closed since selection
            VoterNotFound / VoteLimitExceeded: for an unknown or exhausted voter
            ConcurrentUpdateConflict: if retries are exhausted
        """
        if outcome.pair != comparison.pair:
            raise OutcomeMismatch(
                f"outcome pair {sorted(outcome.pair)} does not match comparison {sorted(comparison.pair)}"
            )

        now = self.clock()
        if voter_id is not None:
            self._check_vote_limit(voter_id, now)
        vote = Vote.from_outcome(outcome, voter_id, now)

        first_id, second_id = outcome.winner_id, outcome.loser_id
        first_actual = actual_score(outcome, first_id)

        for attempt in range(self.config.max_retries + 1):
            first = self._load_open_task(first_id)
            second = self._load_open_task(second_id)

            new_first, new_second = rate_pair(first.score, second.score, first_actual, self.config.k_factor)
            if not (math.isfinite(new_first) and math.isfinite(new_second)):
                raise ValueError(f"non-finite score update for {first_id}, {second_id}")

            try:
                self.storage.apply_scores(
                    {
                        first_id: (new_first, first.version),
                        second_id: (new_second, second.version),
                    },
                    vote=vote,
                )
            except VersionConflict as e:
                self.logger.warning(
                    f"Version conflict on {first_id} vs {second_id} (attempt {attempt + 1}): {e}"
                )
                continue
            except TaskNotFound as e:
                raise StaleComparison(f"task vanished during update: {e}") from e

            self.logger.info(f"Score update: {first_id} vs {second_id} ({'tie' if outcome.tie else 'win'})")
            self.logger.info(f"  {first_id}: {first.score:.2f}->{new_first:.2f}")
            self.logger.info(f"  {second_id}: {second.score:.2f}->{new_second:.2f}")
            return (
                self._after_update(first, new_first),
                self._after_update(second, new_second),
            )

        raise ConcurrentUpdateConflict(
            f"gave up on {first_id} vs {second_id} after {self.config.max_retries + 1} attempts"
        )

    def current_ranking(self) -> list[Task]:
        """
        Return tasks by descending score, ties broken by task id.

        Closed tasks are included unless include_closed_in_ranking is off.
        """
        tasks = self.storage.list_tasks()
        if not self.config.include_closed_in_ranking:
            tasks = [t for t in tasks if t.is_open]
        return sorted(tasks, key=lambda t: (-t.score, t.task_id))

    def _load_open_task(self, task_id: str) -> Task:
        """Fetch a task, failing if it is gone or closed."""
        try:
            task = self.storage.get_task(task_id)
        except TaskNotFound as e:
            raise StaleComparison(f"task {task_id} no longer exists") from e
        if task.closed:
            raise StaleComparison(f"task {task_id} was closed")
        return task

    def _check_vote_limit(self, voter_id: str, now: float) -> None:
        voter = self.storage.get_voter(voter_id)
        if not voter.is_limited:
            return
        recent = self.storage.count_votes_since(voter_id, now - VOTE_LIMIT_WINDOW)
        if recent >= voter.weekly_vote_limit:
            raise VoteLimitExceeded(
                f"voter {voter_id} has reached the maximum of {voter.weekly_vote_limit} votes per week"
            )

    @staticmethod
    def _after_update(task: Task, new_score: float) -> Task:
        return replace(
            task,
            score=new_score,
            version=task.version + 1,
            comparisons=task.comparisons + 1,
        )
