"""
Greedy Assignment Engine - conflict-free selection of ranked candidates.

Each ledger line (and bank line) is used at most once. The engine is
deliberately greedy and explainable: no global optimum search. The set
of consumed ids is local to one assignment pass.

Ordering rules:
- lettrage groups: descending score, then ascending first debit line
  id, then the sorted member ids
- bank pairs: bank lines in ascending (operation date, id); for each
  bank line the best-scoring unused ledger line wins, the first one in
  ascending ledger id order on a tie; accepted only at or above the
  threshold
"""

from datetime import date
from typing import Dict, List, Optional, Sequence, Set

import structlog

from ..config import Settings, get_settings
from ..models import BankStatementLine, ClearingProposal, ReconciliationPair
from .candidates import BankCandidate, proposal_rank_key

logger = structlog.get_logger()


class GreedyAssignmentEngine:
    """Picks a conflict-free subset of candidates in rank order."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.threshold = self.settings.bank_match_threshold

    def assign_groups(self, proposals: Sequence[ClearingProposal]) -> List[ClearingProposal]:
        """
        Accept lettrage proposals whose lines are all still unused.

        Args:
            proposals: Candidate groupings, possibly overlapping

        Returns:
            Accepted proposals in acceptance order
        """
        used_lines: Set[str] = set()
        accepted = []

        for proposal in sorted(proposals, key=proposal_rank_key):
            line_ids = proposal.line_ids
            if any(line_id in used_lines for line_id in line_ids):
                continue
            accepted.append(proposal)
            used_lines.update(line_ids)

        logger.debug(
            "Lettrage assignment complete",
            candidates=len(proposals),
            accepted=len(accepted),
        )
        return accepted

    def assign_bank_pairs(
        self,
        bank_lines: Sequence[BankStatementLine],
        candidates: Sequence[BankCandidate],
        threshold: Optional[float] = None,
    ) -> List[ReconciliationPair]:
        """
        Keep the single best eligible ledger line per bank line.

        Args:
            bank_lines: Unreconciled statement lines (outer loop)
            candidates: Eligible pairings from the candidate generator
            threshold: Minimum raw score (defaults to settings)

        Returns:
            Accepted pairs in bank line order
        """
        if threshold is None:
            threshold = self.threshold

        by_bank: Dict[str, List[BankCandidate]] = {}
        for candidate in candidates:
            by_bank.setdefault(candidate.bank_line.id, []).append(candidate)

        used_ledger_lines: Set[str] = set()
        pairs = []

        for bank_line in sorted(bank_lines, key=lambda b: (b.operation_date or date.min, b.id)):
            best: Optional[BankCandidate] = None
            best_score = 0.0

            options = sorted(by_bank.get(bank_line.id, []), key=lambda c: c.ledger_line.id)
            for candidate in options:
                if candidate.ledger_line.id in used_ledger_lines:
                    continue
                if candidate.score.total > best_score:
                    best = candidate
                    best_score = candidate.score.total

            if best is not None and best_score >= threshold:
                pairs.append(ReconciliationPair(
                    bank_line_id=bank_line.id,
                    ledger_line_id=best.ledger_line.id,
                    amount_cents=bank_line.amount_cents,
                    score=best_score,
                    confidence=best.score.confidence,
                ))
                used_ledger_lines.add(best.ledger_line.id)

        logger.debug(
            "Bank assignment complete",
            bank_lines=len(bank_lines),
            candidates=len(candidates),
            pairs=len(pairs),
        )
        return pairs
