"""
Clearing code allocation.

Codes follow spreadsheet-column order: A, B, ... Z, AA, AB, ... ZZ, AAA.
The sequence is monotonic per account: allocation resumes after the last
code ever issued, so a cancelled code is not handed out again.
"""

from typing import Optional, Set

import structlog

from ..models import ClearingStatus
from ..store import LedgerStore

logger = structlog.get_logger()


def next_clearing_code(current: Optional[str] = None) -> str:
    """Successor of a clearing code (None -> "A", "Z" -> "AA", "AZ" -> "BA")."""
    if not current:
        return "A"

    chars = list(current.upper())
    i = len(chars) - 1
    while i >= 0:
        if chars[i] == "Z":
            chars[i] = "A"
            i -= 1
        else:
            chars[i] = chr(ord(chars[i]) + 1)
            return "".join(chars)

    return "A" + "".join(chars)


def code_sort_key(code: str):
    """Sort codes in sequence order (B before AA)."""
    return (len(code), code)


class ClearingCodeAllocator:
    """Issues the next unused clearing code for an account."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def allocate(self, account: str) -> str:
        """
        Reserve the next code. Must run inside the caller's store
        transaction so that concurrent allocations are serialised.
        """
        with self.store.transaction():
            in_use = self._codes_in_use(account)
            last = self.store.last_clearing_code(account)
            if last is None and in_use:
                # lines imported with codes but no recorded sequence
                last = max(in_use, key=code_sort_key)

            code = next_clearing_code(last)
            while code in in_use:
                code = next_clearing_code(code)

            self.store.set_last_clearing_code(account, code)

        logger.debug("Clearing code allocated", account=account, code=code)
        return code

    def _codes_in_use(self, account: str) -> Set[str]:
        lines = self.store.list_lines(
            account_range=(account, account),
            clearing_status=ClearingStatus.CLEARED,
        )
        return {line.clearing_code for line in lines if line.clearing_code}
