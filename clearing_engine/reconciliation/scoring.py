"""
Scoring Function - match quality for bank pairings and lettrage groups.

Bank matching (rapprochement) uses the literal additive formula:

    total = amount_base + (1 - days/tolerance_days) * date_weight + reference bonus

with the amount term acting as an eligibility gate (exact within one cent)
and the date window as a second gate. The sum is NOT normalised: it can
reach 1.3, and the acceptance threshold (0.5) applies to the raw sum.

Lettrage scoring only ranks groups that already balance; the balance
check is the sole acceptance gate.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence
import re

import structlog

from ..config import Settings, get_settings
from ..models import BankStatementLine, LedgerLine
from ..utils.money import round_half_up

logger = structlog.get_logger()

# Invoice number patterns found in SYSCOHADA journal labels
REFERENCE_PATTERNS = [
    re.compile(r"FA[C-]?\s*(\d{4,})", re.IGNORECASE),
    re.compile(r"FACT[URE]*\s*[N°#]*\s*(\d{4,})", re.IGNORECASE),
    re.compile(r"N°\s*(\d{4,})", re.IGNORECASE),
    re.compile(r"REF\s*[:#]?\s*(\w{4,})", re.IGNORECASE),
]


@dataclass(frozen=True)
class MatchScore:
    """Score components of one bank line / ledger line pairing."""
    amount_score: float = 0.0
    date_score: float = 0.0
    reference_score: float = 0.0
    eligible: bool = False
    amount_difference_cents: int = 0
    days_apart: int = 0

    @property
    def total(self) -> float:
        return self.amount_score + self.date_score + self.reference_score

    @property
    def confidence(self) -> int:
        """0-100, from the total capped at 1."""
        return round_half_up(min(self.total, 1.0) * 100)


@dataclass(frozen=True)
class GroupScore:
    """Ranking components of a candidate lettrage group."""
    residual_cents: int
    eligible: bool
    cardinality_score: float = 0.0
    date_score: float = 0.0
    reference_score: float = 0.0
    shared_reference: Optional[str] = None

    @property
    def quality(self) -> float:
        return 0.7 * self.date_score + 0.3 * self.reference_score

    @property
    def total(self) -> float:
        return round(self.cardinality_score + 0.09 * self.quality, 6)

    @property
    def confidence(self) -> int:
        return round_half_up(self.total * 100)


def days_between(first: Optional[date], second: Optional[date]) -> Optional[int]:
    """Absolute difference in days, None when either date is missing."""
    if first is None or second is None:
        return None
    return abs((first - second).days)


def extract_reference(text: Optional[str]) -> Optional[str]:
    """Extract an invoice number from a label, if any pattern matches."""
    if not text:
        return None
    for pattern in REFERENCE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).upper()
    return None


class BankMatchScorer:
    """Scores a bank statement line against a treasury ledger line."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.amount_tolerance = self.settings.bank_amount_tolerance_cents

    def score(
        self,
        bank_line: BankStatementLine,
        ledger_line: LedgerLine,
        tolerance_days: int,
    ) -> MatchScore:
        """
        Score one pairing.

        Args:
            bank_line: Statement line (signed, positive = inflow)
            ledger_line: Treasury ledger line
            tolerance_days: Date window; pairs further apart are ineligible

        Returns:
            MatchScore; ineligible scores carry zero components
        """
        ledger_amount = ledger_line.treasury_signed_cents
        difference = abs(bank_line.amount_cents - ledger_amount)
        if difference > self.amount_tolerance:
            return MatchScore(eligible=False, amount_difference_cents=difference)

        days = days_between(bank_line.operation_date, ledger_line.piece_date)
        if days is None or days > tolerance_days:
            return MatchScore(
                eligible=False,
                amount_difference_cents=difference,
                days_apart=days or 0,
            )

        return MatchScore(
            amount_score=self.settings.amount_base_weight,
            date_score=self.date_score(days, tolerance_days),
            reference_score=self.reference_score(bank_line, ledger_line),
            eligible=True,
            amount_difference_cents=difference,
            days_apart=days,
        )

    def date_score(self, days: int, tolerance_days: int) -> float:
        if tolerance_days <= 0:
            # same-day window
            return self.settings.date_weight
        return (1 - days / tolerance_days) * self.settings.date_weight

    def reference_score(self, bank_line: BankStatementLine, ledger_line: LedgerLine) -> float:
        """Exact piece-number bonus, else label-prefix bonus, else 0."""
        reference = bank_line.reference or ""
        piece = ledger_line.piece_number or ""
        if reference and piece and (piece in reference or reference in piece):
            return self.settings.reference_exact_bonus

        # an empty label is a prefix of any label, so it earns the bonus too
        bank_label = (bank_line.label or "").lower()
        ledger_label = (ledger_line.label or "").lower()
        length = self.settings.label_prefix_length
        if ledger_label[:length] in bank_label or bank_label[:length] in ledger_label:
            return self.settings.label_prefix_bonus

        return 0.0


class LettrageScorer:
    """Balance gate and ranking heuristic for lettrage groups."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.tolerance = self.settings.clearing_tolerance_cents
        self.date_window = self.settings.lettrage_date_window_days

    def residual_cents(self, lines: Iterable[LedgerLine]) -> int:
        """Signed debit - credit over the lines."""
        return sum(line.balance_cents for line in lines)

    def score_group(
        self,
        debit_lines: Sequence[LedgerLine],
        credit_lines: Sequence[LedgerLine],
    ) -> GroupScore:
        lines: List[LedgerLine] = list(debit_lines) + list(credit_lines)
        residual = abs(self.residual_cents(lines))
        if residual > self.tolerance or len(lines) < 2:
            return GroupScore(residual_cents=residual, eligible=False)

        # fewer lines always outrank larger groups
        cardinality = 0.9 - 0.1 * (len(lines) - 2)

        dates = [line.piece_date for line in lines if line.piece_date is not None]
        date_score = 0.0
        if dates:
            span = (max(dates) - min(dates)).days
            date_score = max(0.0, 1 - span / self.date_window)

        shared = self._shared_reference(debit_lines, credit_lines)

        return GroupScore(
            residual_cents=residual,
            eligible=True,
            cardinality_score=cardinality,
            date_score=date_score,
            reference_score=1.0 if shared else 0.0,
            shared_reference=shared,
        )

    def _shared_reference(
        self,
        debit_lines: Sequence[LedgerLine],
        credit_lines: Sequence[LedgerLine],
    ) -> Optional[str]:
        debit_refs = {ref for ref in map(self._line_reference, debit_lines) if ref}
        credit_refs = {ref for ref in map(self._line_reference, credit_lines) if ref}
        common = debit_refs & credit_refs
        return min(common) if common else None

    @staticmethod
    def _line_reference(line: LedgerLine) -> Optional[str]:
        return extract_reference(line.label) or extract_reference(line.piece_number)
