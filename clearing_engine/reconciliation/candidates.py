"""
Candidate Generator - enumerates feasible lettrage groupings and bank pairings.

Lettrage search, per third party:
1. 1:1 pairs (one debit, one credit of the same amount)
2. one debit against a combination of credits
3. one credit against a combination of debits

Combinations are bounded: at most `lettrage_max_group_size` lines per
group, counterparts drawn from the `lettrage_combination_window` lines
closest in date to the anchor (ties by id). Output order only depends on
the input lines, never on dict or set iteration order.
"""

from dataclasses import dataclass
from datetime import date
from itertools import combinations
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

import structlog

from ..config import Settings, get_settings
from ..models import BankStatementLine, ClearingProposal, LedgerLine
from .scoring import BankMatchScorer, LettrageScorer, MatchScore, days_between

logger = structlog.get_logger()

_FAR_AWAY_DAYS = 10 ** 6


@dataclass
class BankCandidate:
    """An eligible bank line / ledger line pairing with its score."""
    bank_line: BankStatementLine
    ledger_line: LedgerLine
    score: MatchScore


def proposal_rank_key(proposal: ClearingProposal) -> Tuple:
    """Descending score, then ascending first debit id, then member ids."""
    return (-proposal.score, proposal.first_debit_id, tuple(sorted(proposal.line_ids)))


class LettrageCandidateGenerator:
    """Proposes balanced groupings of uncleared lines within one account."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        scorer: Optional[LettrageScorer] = None,
    ):
        self.settings = settings or get_settings()
        self.scorer = scorer or LettrageScorer(self.settings)
        self.tolerance = self.settings.clearing_tolerance_cents
        self.max_group_size = self.settings.lettrage_max_group_size
        self.window = self.settings.lettrage_combination_window

    def generate(
        self,
        lines: Sequence[LedgerLine],
        account: str,
        third_party_code: Optional[str] = None,
    ) -> List[ClearingProposal]:
        """
        Build ranked lettrage proposals.

        Args:
            lines: Ledger lines of the account (cleared lines are ignored)
            account: Account number the groups belong to
            third_party_code: Restrict to one third party

        Returns:
            Proposals sorted best first; they may overlap, the assignment
            engine picks a conflict-free subset
        """
        open_lines = [
            line for line in lines
            if line.account == account and not line.is_cleared
            and (third_party_code is None or line.third_party_code == third_party_code)
        ]

        proposals: List[ClearingProposal] = []
        seen: set = set()

        for party, party_lines in self._partition(open_lines, third_party_code):
            debits = sorted((l for l in party_lines if l.is_debit), key=lambda l: l.id)
            credits = sorted((l for l in party_lines if l.is_credit), key=lambda l: l.id)
            if not debits or not credits:
                continue

            for debit in debits:
                for credit in credits:
                    if abs(debit.debit_cents - credit.credit_cents) <= self.tolerance:
                        self._add(proposals, seen, account, party, [debit], [credit],
                                  "Identical amounts")

            for debit in debits:
                for combo in self._combinations(debit, credits):
                    self._add(proposals, seen, account, party, [debit], list(combo),
                              "Sum of credits equals debit")

            for credit in credits:
                for combo in self._combinations(credit, debits):
                    self._add(proposals, seen, account, party, list(combo), [credit],
                              "Sum of debits equals credit")

        proposals.sort(key=proposal_rank_key)

        logger.debug(
            "Lettrage candidates generated",
            account=account,
            third_party=third_party_code,
            open_lines=len(open_lines),
            proposals=len(proposals),
        )
        return proposals

    def _partition(
        self,
        lines: List[LedgerLine],
        third_party_code: Optional[str],
    ) -> List[Tuple[Optional[str], List[LedgerLine]]]:
        if third_party_code is not None or not self.settings.lettrage_group_by_third_party:
            return [(third_party_code, lines)]

        buckets: Dict[Optional[str], List[LedgerLine]] = {}
        for line in lines:
            buckets.setdefault(line.third_party_code, []).append(line)
        order = sorted(buckets, key=lambda code: (code is None, code or ""))
        return [(code, buckets[code]) for code in order]

    def _combinations(self, anchor: LedgerLine, counterparts: List[LedgerLine]):
        """Yield counterpart combinations (size >= 2) balancing the anchor."""
        nearest = sorted(
            counterparts,
            key=lambda c: (self._distance(anchor.piece_date, c.piece_date), c.id),
        )[:self.window]
        nearest.sort(key=lambda c: c.id)

        target = anchor.amount_cents
        for size in range(2, self.max_group_size):
            for combo in combinations(nearest, size):
                if abs(sum(c.amount_cents for c in combo) - target) <= self.tolerance:
                    yield combo

    @staticmethod
    def _distance(first: Optional[date], second: Optional[date]) -> int:
        days = days_between(first, second)
        return _FAR_AWAY_DAYS if days is None else days

    def _add(
        self,
        proposals: List[ClearingProposal],
        seen: set,
        account: str,
        third_party_code: Optional[str],
        debit_lines: List[LedgerLine],
        credit_lines: List[LedgerLine],
        reason: str,
    ) -> None:
        key: FrozenSet[str] = frozenset(l.id for l in debit_lines + credit_lines)
        if key in seen:
            return

        score = self.scorer.score_group(debit_lines, credit_lines)
        if not score.eligible:
            return
        seen.add(key)

        if score.shared_reference:
            reason = f"{reason}, shared reference {score.shared_reference}"

        proposals.append(ClearingProposal(
            account=account,
            third_party_code=third_party_code,
            debit_lines=list(debit_lines),
            credit_lines=list(credit_lines),
            score=score.total,
            confidence=score.confidence,
            reason=reason,
            shared_reference=score.shared_reference,
        ))


class BankCandidateGenerator:
    """Cross product of bank lines and treasury lines, pruned by eligibility."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        scorer: Optional[BankMatchScorer] = None,
    ):
        self.settings = settings or get_settings()
        self.scorer = scorer or BankMatchScorer(self.settings)

    def generate(
        self,
        bank_lines: Sequence[BankStatementLine],
        ledger_lines: Sequence[LedgerLine],
        tolerance_days: int,
    ) -> List[BankCandidate]:
        """
        Score every pairing and keep the eligible ones. A bank line only
        pairs with ledger lines posted to its own bank account, so an
        unscoped run never crosses class 5 accounts.

        Output is ordered by bank line (operation date, id) then ledger
        line id.
        """
        ordered_bank = sorted(bank_lines, key=lambda b: (b.operation_date or date.min, b.id))
        ordered_ledger = sorted(ledger_lines, key=lambda l: l.id)

        candidates = []
        for bank_line in ordered_bank:
            for ledger_line in ordered_ledger:
                if ledger_line.account != bank_line.bank_account:
                    continue
                score = self.scorer.score(bank_line, ledger_line, tolerance_days)
                if score.eligible:
                    candidates.append(BankCandidate(bank_line, ledger_line, score))

        logger.debug(
            "Bank candidates generated",
            bank_lines=len(ordered_bank),
            ledger_lines=len(ordered_ledger),
            candidates=len(candidates),
        )
        return candidates
