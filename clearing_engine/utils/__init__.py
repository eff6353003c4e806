"""Utility modules."""

from .audit_logger import AuditLogger
from .money import to_cents, round_half_up

__all__ = ["AuditLogger", "to_cents", "round_half_up"]
