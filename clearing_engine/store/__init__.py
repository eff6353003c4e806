"""Ledger store contract and reference implementation."""

from .base import LedgerStore, DateRange, AccountRange
from .memory import InMemoryLedgerStore

__all__ = ["LedgerStore", "DateRange", "AccountRange", "InMemoryLedgerStore"]
