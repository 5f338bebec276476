"""
Task Tournament - Pairwise Priority Ranking

A system for ordering tasks by priority through repeated pairwise votes,
scored with Elo ratings and applied with optimistic concurrency.
"""

from .models import Task, Comparison, Outcome, Voter, Vote
from .interfaces import TaskStorage, PairSelector
from .engine import RankingEngine, EngineConfig

__version__ = "0.1.0"
__all__ = [
    "Task",
    "Comparison",
    "Outcome",
    "Voter",
    "Vote",
    "TaskStorage",
    "PairSelector",
    "RankingEngine",
    "EngineConfig",
]
