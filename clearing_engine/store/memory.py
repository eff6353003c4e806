"""
In-memory ledger store.

Reference implementation of the store contract: state lives in plain
dicts, transactions snapshot the state on entry and restore it if the
block raises. A re-entrant lock owned by the store serialises
transactions, so two callers racing on the same lines see each other's
committed writes and the second one fails its precondition checks.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple
import copy
import threading

import structlog

from ..config import get_settings
from ..errors import StoreError
from ..models import (
    BankStatementLine,
    ClearingGroup,
    ClearingHistoryEntry,
    ClearingStatus,
    LedgerLine,
    ReconciliationLink,
    ReconciliationSession,
)
from .base import AccountRange, DateRange, LedgerStore

logger = structlog.get_logger()


@dataclass
class _StoreState:
    lines: Dict[str, LedgerLine] = field(default_factory=dict)
    bank_lines: Dict[str, BankStatementLine] = field(default_factory=dict)
    links: Dict[str, ReconciliationLink] = field(default_factory=dict)
    groups: Dict[Tuple[str, str], ClearingGroup] = field(default_factory=dict)
    last_codes: Dict[str, str] = field(default_factory=dict)
    history: List[ClearingHistoryEntry] = field(default_factory=list)
    sessions: Dict[str, ReconciliationSession] = field(default_factory=dict)


def _in_range(value: Optional[date], date_range: Optional[DateRange]) -> bool:
    if date_range is None:
        return True
    start, end = date_range
    if value is None:
        return start is None and end is None
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True


class InMemoryLedgerStore(LedgerStore):
    """Dict-backed store with snapshot/restore transactions."""

    def __init__(self, treasury_account_prefix: Optional[str] = None):
        if treasury_account_prefix is None:
            treasury_account_prefix = get_settings().treasury_account_prefix
        self.treasury_prefix = treasury_account_prefix
        self._state = _StoreState()
        self._lock = threading.RLock()
        self._depth = 0

    # --- transactions -------------------------------------------------

    @contextmanager
    def transaction(self):
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = copy.deepcopy(self._state)
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._state = snapshot
                logger.debug("Store transaction rolled back")
                raise
            finally:
                self._depth = 0

    # --- ledger lines -------------------------------------------------

    def list_lines(
        self,
        account_range: Optional[AccountRange] = None,
        third_party: Optional[str] = None,
        date_range: Optional[DateRange] = None,
        clearing_status: Optional[ClearingStatus] = None,
        journal_code: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[LedgerLine]:
        with self._lock:
            result = []
            for line in self._state.lines.values():
                if account_range is not None:
                    start, end = account_range
                    if start is not None and line.account < start:
                        continue
                    if end is not None and line.account > end:
                        continue
                if third_party is not None and line.third_party_code != third_party:
                    continue
                if not _in_range(line.piece_date, date_range):
                    continue
                if clearing_status == ClearingStatus.UNCLEARED and line.is_cleared:
                    continue
                if clearing_status == ClearingStatus.CLEARED and not line.is_cleared:
                    continue
                if journal_code is not None and line.journal_code != journal_code:
                    continue
                result.append(line)

            result.sort(key=lambda l: (l.account, l.piece_date or date.min, l.id))
            if limit is not None:
                result = result[:limit]
            return copy.deepcopy(result)

    def get_lines(self, line_ids: Iterable[str]) -> Dict[str, LedgerLine]:
        with self._lock:
            return {
                line_id: copy.deepcopy(self._state.lines[line_id])
                for line_id in line_ids
                if line_id in self._state.lines
            }

    def set_line_clearing(self, line_id: str, code: Optional[str], cleared_at) -> None:
        with self._lock:
            line = self._state.lines.get(line_id)
            if line is None:
                raise StoreError(f"Ledger line {line_id} does not exist")
            line.clearing_code = code
            line.cleared_at = cleared_at if code is not None else None

    def list_treasury_lines(
        self,
        date_range: Optional[DateRange] = None,
        reconciled: Optional[bool] = None,
        account: Optional[str] = None,
    ) -> List[LedgerLine]:
        with self._lock:
            linked = {link.ledger_line_id for link in self._state.links.values()}
            result = []
            for line in self._state.lines.values():
                if not line.account.startswith(self.treasury_prefix):
                    continue
                if account is not None and line.account != account:
                    continue
                if not _in_range(line.piece_date, date_range):
                    continue
                if reconciled is not None and (line.id in linked) != reconciled:
                    continue
                result.append(line)

            result.sort(key=lambda l: (l.piece_date or date.min, l.id))
            return copy.deepcopy(result)

    # --- bank statement lines ----------------------------------------

    def list_bank_lines(
        self,
        reconciled: Optional[bool] = None,
        date_range: Optional[DateRange] = None,
        bank_account: Optional[str] = None,
    ) -> List[BankStatementLine]:
        with self._lock:
            result = [
                line for line in self._state.bank_lines.values()
                if (reconciled is None or line.reconciled == reconciled)
                and _in_range(line.operation_date, date_range)
                and (bank_account is None or line.bank_account == bank_account)
            ]
            result.sort(key=lambda l: (l.operation_date or date.min, l.id))
            return copy.deepcopy(result)

    def get_bank_line(self, bank_line_id: str) -> Optional[BankStatementLine]:
        with self._lock:
            line = self._state.bank_lines.get(bank_line_id)
            return copy.deepcopy(line) if line else None

    def set_bank_line_reconciliation(self, bank_line_id: str, link_id: Optional[str]) -> None:
        with self._lock:
            line = self._state.bank_lines.get(bank_line_id)
            if line is None:
                raise StoreError(f"Bank line {bank_line_id} does not exist")
            line.link_id = link_id
            line.reconciled = link_id is not None

    def delete_unreconciled_bank_lines(self) -> int:
        with self._lock:
            doomed = [
                line_id for line_id, line in self._state.bank_lines.items()
                if not line.reconciled
            ]
            for line_id in doomed:
                del self._state.bank_lines[line_id]
            return len(doomed)

    # --- reconciliation links ------------------------------------------

    def insert_link(self, link: ReconciliationLink) -> ReconciliationLink:
        with self._lock:
            if link.id in self._state.links:
                raise StoreError(f"Link {link.id} already exists")
            self._state.links[link.id] = copy.deepcopy(link)
            return link

    def get_link(self, link_id: str) -> Optional[ReconciliationLink]:
        with self._lock:
            link = self._state.links.get(link_id)
            return copy.deepcopy(link) if link else None

    def delete_link(self, link_id: str) -> bool:
        with self._lock:
            return self._state.links.pop(link_id, None) is not None

    def list_links(self, session_id: Optional[str] = None) -> List[ReconciliationLink]:
        with self._lock:
            links = [
                link for link in self._state.links.values()
                if session_id is None or link.session_id == session_id
            ]
            links.sort(key=lambda l: (l.created_at, l.id))
            return copy.deepcopy(links)

    # --- clearing groups, codes and history ----------------------------

    def insert_clearing_group(self, group: ClearingGroup) -> ClearingGroup:
        with self._lock:
            key = (group.account, group.code)
            existing = self._state.groups.get(key)
            if existing is not None and existing.is_active:
                raise StoreError(
                    f"Clearing code {group.code} already active on account {group.account}"
                )
            stored = copy.deepcopy(group)
            stored.lines = []
            self._state.groups[key] = stored
            return group

    def get_clearing_group(self, account: str, code: str) -> Optional[ClearingGroup]:
        with self._lock:
            group = self._state.groups.get((account, code))
            if group is None or not group.is_active:
                return None
            return copy.deepcopy(group)

    def close_clearing_group(self, account: str, code: str, cancelled_at) -> None:
        with self._lock:
            group = self._state.groups.get((account, code))
            if group is None:
                raise StoreError(f"Clearing group {code} does not exist on account {account}")
            group.cancelled_at = cancelled_at

    def list_clearing_groups(self, account: Optional[str] = None) -> List[ClearingGroup]:
        with self._lock:
            groups = [
                group for group in self._state.groups.values()
                if group.is_active and (account is None or group.account == account)
            ]
            groups.sort(key=lambda g: (g.account, len(g.code), g.code))
            return copy.deepcopy(groups)

    def last_clearing_code(self, account: str) -> Optional[str]:
        with self._lock:
            return self._state.last_codes.get(account)

    def set_last_clearing_code(self, account: str, code: str) -> None:
        with self._lock:
            self._state.last_codes[account] = code

    def insert_history(self, entry: ClearingHistoryEntry) -> None:
        with self._lock:
            self._state.history.append(copy.deepcopy(entry))

    def list_history(self, account: Optional[str] = None, limit: int = 50) -> List[ClearingHistoryEntry]:
        with self._lock:
            entries = [
                entry for entry in reversed(self._state.history)
                if account is None or entry.account == account
            ]
            return copy.deepcopy(entries[:limit])

    # --- sessions ------------------------------------------------------

    def insert_session(self, session: ReconciliationSession) -> ReconciliationSession:
        with self._lock:
            if session.id in self._state.sessions:
                raise StoreError(f"Session {session.id} already exists")
            self._state.sessions[session.id] = copy.deepcopy(session)
            return session

    def get_session(self, session_id: str) -> Optional[ReconciliationSession]:
        with self._lock:
            session = self._state.sessions.get(session_id)
            return copy.deepcopy(session) if session else None

    def list_sessions(self) -> List[ReconciliationSession]:
        with self._lock:
            sessions = sorted(
                self._state.sessions.values(),
                key=lambda s: s.created_at,
                reverse=True,
            )
            return copy.deepcopy(sessions)

    # --- import helpers ------------------------------------------------

    def add_lines(self, lines: Iterable[LedgerLine]) -> None:
        with self._lock:
            for line in lines:
                self._state.lines[line.id] = copy.deepcopy(line)

    def add_bank_lines(self, lines: Iterable[BankStatementLine]) -> None:
        with self._lock:
            for line in lines:
                self._state.bank_lines[line.id] = copy.deepcopy(line)
