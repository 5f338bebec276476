"""
Tests for RankingEngine.

Run against every storage backend through the shared contract.
"""

import numpy as np
import pytest

from task_tournament.engine import EngineConfig, RankingEngine, VOTE_LIMIT_WINDOW
from task_tournament.exceptions import (
    ConcurrentUpdateConflict,
    ConfigurationError,
    InsufficientTasks,
    OutcomeMismatch,
    StaleComparison,
    VersionConflict,
    VoteLimitExceeded,
    VoterNotFound,
)
from task_tournament.interfaces import ScoreUpdates, TaskStorage
from task_tournament.models import Comparison, Outcome, Task, Vote, Voter
from task_tournament.storage import InMemoryStorage

from .conftest import add_tasks


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class ConflictingStorage(InMemoryStorage):
    """In-memory store whose first N score writes lose a version race."""

    def __init__(self, conflicts: int):
        super().__init__()
        self.conflicts = conflicts
        self.attempts = 0

    def apply_scores(self, updates: ScoreUpdates, vote: Vote | None = None) -> None:
        self.attempts += 1
        if self.attempts <= self.conflicts:
            raise VersionConflict("simulated concurrent writer")
        super().apply_scores(updates, vote)


class TestNextComparison:
    """Pair selection through the engine."""

    def test_no_tasks(self, storage: TaskStorage) -> None:
        """An empty store cannot produce a comparison."""
        engine = RankingEngine(storage)

        with pytest.raises(InsufficientTasks):
            engine.next_comparison()

    def test_single_open_task(self, storage: TaskStorage) -> None:
        """Exactly one open task is not enough."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        storage.close_task("b")
        engine = RankingEngine(storage)

        with pytest.raises(InsufficientTasks):
            engine.next_comparison()

    def test_two_tasks_are_both_returned(self, storage: TaskStorage) -> None:
        """With two open tasks the comparison holds both, distinct."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        engine = RankingEngine(storage, rng=np.random.default_rng(1))

        comparison = engine.next_comparison()

        assert comparison.pair == {"a", "b"}
        assert comparison.first.task_id != comparison.second.task_id

    def test_closed_tasks_never_selected(self, storage: TaskStorage) -> None:
        """Closed tasks are excluded from selection."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0), ("c", 1200.0))
        storage.close_task("c")
        engine = RankingEngine(storage, rng=np.random.default_rng(3))

        for _ in range(20):
            assert "c" not in engine.next_comparison().pair

    def test_exclude_in_flight_tasks(self, storage: TaskStorage) -> None:
        """Excluded ids are never offered; too many exclusions fail."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0), ("c", 1200.0), ("d", 1200.0))
        engine = RankingEngine(storage, rng=np.random.default_rng(5))

        for _ in range(20):
            assert engine.next_comparison(exclude={"a", "b"}).pair == {"c", "d"}
        with pytest.raises(InsufficientTasks):
            engine.next_comparison(exclude={"a", "b", "c"})

    def test_seeded_selection_is_reproducible(self, storage: TaskStorage) -> None:
        """Same seed, same sequence of pairs."""
        add_tasks(storage, *[(f"t{i}", 1200.0) for i in range(8)])
        engine1 = RankingEngine(storage, rng=np.random.default_rng(42))
        engine2 = RankingEngine(storage, rng=np.random.default_rng(42))

        pairs1 = [engine1.next_comparison().pair for _ in range(15)]
        pairs2 = [engine2.next_comparison().pair for _ in range(15)]

        assert pairs1 == pairs2

    def test_every_task_gets_selected(self, storage: TaskStorage) -> None:
        """Over repeated calls every open task shows up."""
        ids = [f"t{i}" for i in range(6)]
        add_tasks(storage, *[(task_id, 1200.0) for task_id in ids])
        engine = RankingEngine(storage, rng=np.random.default_rng(7))

        seen: set[str] = set()
        for _ in range(100):
            seen |= engine.next_comparison().pair

        assert seen == set(ids)


class TestRecordOutcome:
    """Score updates through the engine."""

    def test_win_between_equal_tasks(self, storage: TaskStorage) -> None:
        """1200 vs 1200, A wins: 1216 / 1184."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        engine = RankingEngine(storage)
        comparison = engine.next_comparison()

        winner, loser = engine.record_outcome(comparison, Outcome.win("a", "b"))

        assert winner.score == pytest.approx(1216.0)
        assert loser.score == pytest.approx(1184.0)
        assert storage.get_task("a").score == pytest.approx(1216.0)
        assert storage.get_task("b").score == pytest.approx(1184.0)

    def test_upset(self, storage: TaskStorage) -> None:
        """1400 loses to 1000: about 1370.9 / 1029.1."""
        add_tasks(storage, ("a", 1400.0), ("b", 1000.0))
        engine = RankingEngine(storage)
        comparison = engine.next_comparison()

        engine.record_outcome(comparison, Outcome.win("b", "a"))

        assert storage.get_task("a").score == pytest.approx(1370.909, abs=1e-3)
        assert storage.get_task("b").score == pytest.approx(1029.091, abs=1e-3)

    def test_tie_order_does_not_matter(self, storage: TaskStorage) -> None:
        """A draw gives the same result whichever way round it is reported."""
        add_tasks(storage, ("a", 1300.0), ("b", 1100.0), ("c", 1300.0), ("d", 1100.0))
        engine = RankingEngine(storage)
        tasks = {t.task_id: t for t in storage.list_tasks()}

        engine.record_outcome(Comparison(tasks["a"], tasks["b"]), Outcome.draw("a", "b"))
        engine.record_outcome(Comparison(tasks["c"], tasks["d"]), Outcome.draw("d", "c"))

        assert storage.get_task("a").score == pytest.approx(storage.get_task("c").score)
        assert storage.get_task("b").score == pytest.approx(storage.get_task("d").score)

    def test_round_trip_bumps_version_and_count(self, storage: TaskStorage) -> None:
        """get_task after an outcome reflects the new score and version."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        engine = RankingEngine(storage)
        comparison = engine.next_comparison()

        winner, loser = engine.record_outcome(comparison, Outcome.win("b", "a"))

        for updated in (winner, loser):
            stored = storage.get_task(updated.task_id)
            assert stored == updated
            assert stored.version == 1
            assert stored.comparisons == 1

    def test_outcome_must_match_pair(self, storage: TaskStorage) -> None:
        """An outcome about a different pair is rejected without writing."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0), ("c", 1200.0))
        engine = RankingEngine(storage)
        tasks = {t.task_id: t for t in storage.list_tasks()}
        comparison = Comparison(tasks["a"], tasks["b"])

        with pytest.raises(OutcomeMismatch):
            engine.record_outcome(comparison, Outcome.win("a", "c"))

        assert all(t.version == 0 for t in storage.list_tasks())

    def test_task_closed_since_selection(self, storage: TaskStorage) -> None:
        """Closing a task makes the outstanding comparison stale."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        engine = RankingEngine(storage)
        comparison = engine.next_comparison()
        storage.close_task("a")

        with pytest.raises(StaleComparison):
            engine.record_outcome(comparison, Outcome.win("a", "b"))

        assert storage.get_task("b").score == 1200.0

    def test_task_that_never_existed(self, storage: TaskStorage) -> None:
        """A comparison naming an unknown task is stale."""
        (a,) = add_tasks(storage, ("a", 1200.0))
        ghost = Task(task_id="ghost", summary="not stored")
        engine = RankingEngine(storage)

        with pytest.raises(StaleComparison):
            engine.record_outcome(Comparison(a, ghost), Outcome.win("ghost", "a"))

    def test_vote_is_logged(self, storage: TaskStorage) -> None:
        """Each applied outcome lands in the vote log."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        clock = FakeClock()
        engine = RankingEngine(storage, clock=clock)
        comparison = engine.next_comparison()

        engine.record_outcome(comparison, Outcome.draw("a", "b"))

        (vote,) = storage.list_votes()
        assert vote.winner_id is None
        assert {vote.first_id, vote.second_id} == {"a", "b"}
        assert vote.timestamp == clock.now

    def test_unknown_voter(self, storage: TaskStorage) -> None:
        """Votes from unregistered voters are refused."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        engine = RankingEngine(storage)

        with pytest.raises(VoterNotFound):
            engine.record_outcome(engine.next_comparison(), Outcome.win("a", "b"), voter_id="nobody")

    def test_weekly_vote_limit(self, storage: TaskStorage) -> None:
        """A limited voter is stopped at the limit until a week has passed."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        storage.upsert_voter(Voter("alice", weekly_vote_limit=2))
        clock = FakeClock()
        engine = RankingEngine(storage, clock=clock)

        engine.record_outcome(engine.next_comparison(), Outcome.win("a", "b"), voter_id="alice")
        engine.record_outcome(engine.next_comparison(), Outcome.win("a", "b"), voter_id="alice")
        with pytest.raises(VoteLimitExceeded):
            engine.record_outcome(engine.next_comparison(), Outcome.win("a", "b"), voter_id="alice")

        clock.now += VOTE_LIMIT_WINDOW + 1
        engine.record_outcome(engine.next_comparison(), Outcome.win("a", "b"), voter_id="alice")
        assert storage.count_votes_since("alice", 0.0) == 3

    def test_unlimited_voter(self, storage: TaskStorage) -> None:
        """A negative limit never blocks."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        storage.upsert_voter(Voter("bob"))
        engine = RankingEngine(storage)

        for _ in range(5):
            engine.record_outcome(engine.next_comparison(), Outcome.win("b", "a"), voter_id="bob")

        assert storage.get_task("b").comparisons == 5


class TestRetries:
    """Bounded retry on version conflicts."""

    def test_retries_then_succeeds(self) -> None:
        """A few conflicts are absorbed by re-reading."""
        storage = ConflictingStorage(conflicts=3)
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        engine = RankingEngine(storage, config=EngineConfig(max_retries=3))

        engine.record_outcome(engine.next_comparison(), Outcome.win("a", "b"))

        assert storage.attempts == 4
        assert storage.get_task("a").score == pytest.approx(1216.0)

    def test_gives_up_after_max_retries(self) -> None:
        """Persistent conflicts surface as ConcurrentUpdateConflict."""
        storage = ConflictingStorage(conflicts=100)
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0))
        engine = RankingEngine(storage, config=EngineConfig(max_retries=2))

        with pytest.raises(ConcurrentUpdateConflict):
            engine.record_outcome(engine.next_comparison(), Outcome.win("a", "b"))

        assert storage.attempts == 3
        assert storage.get_task("a").score == 1200.0


class TestCurrentRanking:
    """Read-only ranking projection."""

    def test_sorted_by_score_then_id(self, storage: TaskStorage) -> None:
        """Descending score; equal scores ordered by task id."""
        add_tasks(storage, ("c", 1200.0), ("a", 1200.0), ("z", 1500.0), ("b", 900.0))
        engine = RankingEngine(storage)

        ranking = engine.current_ranking()

        assert [t.task_id for t in ranking] == ["z", "a", "c", "b"]

    def test_stable_without_writes(self, storage: TaskStorage) -> None:
        """Repeated calls with no writes in between agree."""
        add_tasks(storage, *[(f"t{i}", 1200.0 + (i % 3)) for i in range(10)])
        engine = RankingEngine(storage)

        assert engine.current_ranking() == engine.current_ranking()

    def test_closed_tasks_included_by_default(self, storage: TaskStorage) -> None:
        """Closed tasks keep their place in the ranking unless configured out."""
        add_tasks(storage, ("a", 1300.0), ("b", 1200.0))
        storage.close_task("a")

        default = RankingEngine(storage).current_ranking()
        open_only = RankingEngine(storage, config=EngineConfig(include_closed_in_ranking=False)).current_ranking()

        assert [t.task_id for t in default] == ["a", "b"]
        assert default[0].closed
        assert [t.task_id for t in open_only] == ["b"]

    def test_ranking_follows_votes(self, storage: TaskStorage) -> None:
        """A task that keeps winning rises to the top."""
        add_tasks(storage, ("a", 1200.0), ("b", 1200.0), ("c", 1200.0))
        engine = RankingEngine(storage)

        for _ in range(10):
            for winner, loser in [("a", "b"), ("c", "a"), ("c", "b")]:
                comparison = Comparison(storage.get_task(winner), storage.get_task(loser))
                engine.record_outcome(comparison, Outcome.win(winner, loser))

        assert [t.task_id for t in engine.current_ranking()] == ["c", "a", "b"]
        assert sum(t.score for t in storage.list_tasks()) == pytest.approx(3600.0)


class TestEngineConfig:
    """Configuration validation."""

    @pytest.mark.parametrize("kwargs", [{"k_factor": 0}, {"k_factor": -1}, {"k_factor": float("nan")}, {"max_retries": -1}])
    def test_rejects_bad_values(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ConfigurationError):
            EngineConfig(**kwargs)

    def test_defaults(self) -> None:
        config = EngineConfig()
        assert config.k_factor == 32.0
        assert config.max_retries == 8
        assert config.include_closed_in_ranking is True
