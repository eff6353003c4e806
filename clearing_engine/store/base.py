"""
Ledger store contract.

The engine only reads ledger movements and bank statement lines through
this interface and writes clearing state back through it. Persistence
itself (tables, views, SQL functions) belongs to the surrounding CRUD
layer.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from ..models import (
    BankStatementLine,
    ClearingGroup,
    ClearingHistoryEntry,
    ClearingStatus,
    LedgerLine,
    ReconciliationLink,
    ReconciliationSession,
)

DateRange = Tuple[Optional[date], Optional[date]]
AccountRange = Tuple[Optional[str], Optional[str]]


class LedgerStore(ABC):
    """Query contract and mutations used by the clearing engine."""

    # --- transactions -------------------------------------------------

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        All-or-nothing unit of work. Every mutation made inside the block
        is rolled back if the block raises. Nested blocks join the
        outermost one.
        """

    # --- ledger lines -------------------------------------------------

    @abstractmethod
    def list_lines(
        self,
        account_range: Optional[AccountRange] = None,
        third_party: Optional[str] = None,
        date_range: Optional[DateRange] = None,
        clearing_status: Optional[ClearingStatus] = None,
        journal_code: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[LedgerLine]:
        """Ledger lines ordered by account, piece date, id."""

    @abstractmethod
    def get_lines(self, line_ids: Iterable[str]) -> Dict[str, LedgerLine]:
        """Lines by id; unknown ids are absent from the result."""

    @abstractmethod
    def set_line_clearing(self, line_id: str, code: Optional[str], cleared_at) -> None:
        """Set (or clear, with None) a line's clearing code and date."""

    @abstractmethod
    def list_treasury_lines(
        self,
        date_range: Optional[DateRange] = None,
        reconciled: Optional[bool] = None,
        account: Optional[str] = None,
    ) -> List[LedgerLine]:
        """Lines on treasury accounts; `reconciled` means referenced by a link."""

    # --- bank statement lines ----------------------------------------

    @abstractmethod
    def list_bank_lines(
        self,
        reconciled: Optional[bool] = None,
        date_range: Optional[DateRange] = None,
        bank_account: Optional[str] = None,
    ) -> List[BankStatementLine]:
        """Bank lines ordered by operation date, id."""

    @abstractmethod
    def get_bank_line(self, bank_line_id: str) -> Optional[BankStatementLine]:
        ...

    @abstractmethod
    def set_bank_line_reconciliation(self, bank_line_id: str, link_id: Optional[str]) -> None:
        """Flag a bank line reconciled (link id) or unreconciled (None)."""

    @abstractmethod
    def delete_unreconciled_bank_lines(self) -> int:
        ...

    # --- reconciliation links ------------------------------------------

    @abstractmethod
    def insert_link(self, link: ReconciliationLink) -> ReconciliationLink:
        ...

    @abstractmethod
    def get_link(self, link_id: str) -> Optional[ReconciliationLink]:
        ...

    @abstractmethod
    def delete_link(self, link_id: str) -> bool:
        ...

    @abstractmethod
    def list_links(self, session_id: Optional[str] = None) -> List[ReconciliationLink]:
        ...

    # --- clearing groups, codes and history ----------------------------

    @abstractmethod
    def insert_clearing_group(self, group: ClearingGroup) -> ClearingGroup:
        ...

    @abstractmethod
    def get_clearing_group(self, account: str, code: str) -> Optional[ClearingGroup]:
        """Active group for an account and code."""

    @abstractmethod
    def close_clearing_group(self, account: str, code: str, cancelled_at) -> None:
        ...

    @abstractmethod
    def list_clearing_groups(self, account: Optional[str] = None) -> List[ClearingGroup]:
        """Active groups ordered by account, code."""

    @abstractmethod
    def last_clearing_code(self, account: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_last_clearing_code(self, account: str, code: str) -> None:
        ...

    @abstractmethod
    def insert_history(self, entry: ClearingHistoryEntry) -> None:
        ...

    @abstractmethod
    def list_history(self, account: Optional[str] = None, limit: int = 50) -> List[ClearingHistoryEntry]:
        """Newest first."""

    # --- sessions ------------------------------------------------------

    @abstractmethod
    def insert_session(self, session: ReconciliationSession) -> ReconciliationSession:
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[ReconciliationSession]:
        ...

    @abstractmethod
    def list_sessions(self) -> List[ReconciliationSession]:
        """Newest first."""

    # --- import helpers (used by the CRUD layer and tests) -------------

    @abstractmethod
    def add_lines(self, lines: Iterable[LedgerLine]) -> None:
        ...

    @abstractmethod
    def add_bank_lines(self, lines: Iterable[BankStatementLine]) -> None:
        ...
