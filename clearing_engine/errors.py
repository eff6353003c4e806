"""
Error kinds and the explicit success/failure result returned by every
public engine operation.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class ClearingEngineError(Exception):
    """Base class for data-level failures the caller can recover from."""

    code = "CLEARING_ERROR"

    def __init__(
        self,
        message: str,
        residual_cents: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.residual_cents = residual_cents
        self.details = details or {}

    @property
    def residual(self) -> Optional[float]:
        """Residual in currency units (the "écart" shown to users)."""
        if self.residual_cents is None:
            return None
        return self.residual_cents / 100.0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.residual_cents is not None:
            data["residual"] = self.residual
        if self.details:
            data["details"] = self.details
        return data


class ValidationError(ClearingEngineError):
    """Malformed input: too few lines, unknown ids, wrong account."""
    code = "VALIDATION_ERROR"


class NotBalancedError(ClearingEngineError):
    """Debits and credits differ by more than the tolerance."""
    code = "NOT_BALANCED"

    def __init__(self, residual_cents: int, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Lines do not balance (écart: {abs(residual_cents) / 100.0:.2f})",
            residual_cents=abs(residual_cents),
            details=details,
        )


class AlreadyClearedError(ClearingEngineError):
    """A ledger line already carries a clearing code."""
    code = "ALREADY_CLEARED"


class AlreadyReconciledError(ClearingEngineError):
    """A bank line or ledger line already has an active reconciliation link."""
    code = "ALREADY_RECONCILED"


class NotFoundError(ClearingEngineError):
    """Clearing code, link or session absent."""
    code = "NOT_FOUND"


class StoreError(ClearingEngineError):
    """The backing store rejected a write."""
    code = "STORE_ERROR"


@dataclass
class OperationResult(Generic[T]):
    """Outcome of a public engine operation: a payload or a structured error."""
    success: bool
    data: Optional[T] = None
    error: Optional[ClearingEngineError] = None
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def ok(cls, data: Optional[T] = None, warnings: Optional[List[str]] = None) -> "OperationResult[T]":
        return cls(success=True, data=data, warnings=warnings or [])

    @classmethod
    def fail(cls, error: ClearingEngineError) -> "OperationResult[T]":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        if not self.success:
            return {"success": False, "error": self.error.to_dict() if self.error else None}

        data = self.data
        if hasattr(data, "to_dict"):
            data = data.to_dict()
        elif isinstance(data, list):
            data = [item.to_dict() if hasattr(item, "to_dict") else item for item in data]

        payload: Dict[str, Any] = {"success": True, "data": data}
        if self.warnings:
            payload["warnings"] = self.warnings
        return payload
