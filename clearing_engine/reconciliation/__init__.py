"""Matching pipeline: scoring, candidates, assignment, execution, statistics."""

from .scoring import (
    BankMatchScorer,
    LettrageScorer,
    MatchScore,
    GroupScore,
    extract_reference,
)
from .candidates import BankCandidate, BankCandidateGenerator, LettrageCandidateGenerator
from .assignment import GreedyAssignmentEngine
from .codes import ClearingCodeAllocator, next_clearing_code
from .executor import ClearingExecutor
from .statistics import ReconciliationStatistics

__all__ = [
    "BankMatchScorer",
    "LettrageScorer",
    "MatchScore",
    "GroupScore",
    "extract_reference",
    "BankCandidate",
    "BankCandidateGenerator",
    "LettrageCandidateGenerator",
    "GreedyAssignmentEngine",
    "ClearingCodeAllocator",
    "next_clearing_code",
    "ClearingExecutor",
    "ReconciliationStatistics",
]
