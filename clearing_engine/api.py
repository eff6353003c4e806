"""
Caller-facing facade of the clearing engine.

Every operation takes plain structured input (a dict, a request model,
or keyword arguments), validates it with the request schemas and
returns an OperationResult: a payload on success, a structured error
(code, message, optional residual) otherwise.
"""

from typing import Any, Callable, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
import structlog

from .config import Settings, get_settings
from .errors import ClearingEngineError, OperationResult, ValidationError
from .models import (
    AuditAction,
    BankStatementLine,
    ClearingStatus,
    ReconciliationMethod,
)
from .reconciliation import ClearingExecutor, ReconciliationStatistics
from .schemas import (
    AutoLettrageRequest,
    AutoReconcileRequest,
    BankLineFilter,
    BankStatementImport,
    CancelLettrageRequest,
    LettrageRequest,
    LineFilter,
    ProposeLettrageRequest,
    ReconcileRequest,
    SessionRequest,
)
from .store import InMemoryLedgerStore, LedgerStore
from .utils.audit_logger import AuditLogger
from .utils.money import to_cents

logger = structlog.get_logger()

RequestT = TypeVar("RequestT", bound=BaseModel)
Payload = Optional[Union[Mapping[str, Any], BaseModel]]


def _parse(schema: Type[RequestT], payload: Payload, fields: Mapping[str, Any]) -> RequestT:
    """Validate caller input; pydantic errors become a ValidationError."""
    if isinstance(payload, schema) and not fields:
        return payload

    data = dict(payload.model_dump() if isinstance(payload, BaseModel) else payload or {})
    data.update(fields)
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        problems = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ]
        summary = "; ".join(f"{p['field'] or 'request'}: {p['message']}" for p in problems)
        raise ValidationError(f"Invalid request: {summary}", details={"errors": problems}) from exc


def _guard(operation: Callable[[], OperationResult]) -> OperationResult:
    try:
        return operation()
    except ClearingEngineError as exc:
        logger.warning("Operation rejected", code=exc.code, error=exc.message)
        return OperationResult.fail(exc)


def _date_range(start, end):
    if start is None and end is None:
        return None
    return (start, end)


class ClearingEngine:
    """
    Lettrage and bank reconciliation over a ledger store.

    Usage:
        engine = ClearingEngine(store)
        result = engine.propose_lettrage(account="4111")
        engine.execute_lettrage(line_ids=result.data[0].line_ids, account="4111")
    """

    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        settings: Optional[Settings] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or InMemoryLedgerStore(self.settings.treasury_account_prefix)
        self.audit = audit or AuditLogger()
        self.executor = ClearingExecutor(self.store, self.settings, self.audit)
        self.statistics = ReconciliationStatistics(self.store, self.settings, self.audit)

    # ------------------------------------------------------------------
    # Lettrage
    # ------------------------------------------------------------------

    def propose_lettrage(self, request: Payload = None, **fields) -> OperationResult:
        def run():
            req = _parse(ProposeLettrageRequest, request, fields)
            return OperationResult.ok(
                self.executor.propose_lettrage(req.account, req.third_party_code)
            )
        return _guard(run)

    def execute_lettrage(self, request: Payload = None, **fields) -> OperationResult:
        def run():
            req = _parse(LettrageRequest, request, fields)
            return self.executor.execute_lettrage(
                req.line_ids, req.account, req.third_party_code, actor=req.actor
            )
        return _guard(run)

    def cancel_lettrage(self, request: Payload = None, **fields) -> OperationResult:
        def run():
            req = _parse(CancelLettrageRequest, request, fields)
            return self.executor.cancel_lettrage(req.code.upper(), req.account, actor=req.actor)
        return _guard(run)

    def auto_lettrage(self, request: Payload = None, **fields) -> OperationResult:
        def run():
            req = _parse(AutoLettrageRequest, request, fields)
            return self.executor.auto_lettrage(req.account, req.third_party_code, actor=req.actor)
        return _guard(run)

    def list_clearing_groups(self, account: Optional[str] = None) -> OperationResult:
        return _guard(lambda: OperationResult.ok(self.executor.list_clearing_groups(account)))

    def lettrage_history(
        self,
        account: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> OperationResult:
        return _guard(lambda: OperationResult.ok(self.executor.lettrage_history(account, limit)))

    def lettrage_stats(self, account: str) -> OperationResult:
        return _guard(lambda: OperationResult.ok(self.statistics.lettrage_stats(account)))

    # ------------------------------------------------------------------
    # Rapprochement bancaire
    # ------------------------------------------------------------------

    def execute_reconciliation(self, request: Payload = None, **fields) -> OperationResult:
        def run():
            req = _parse(ReconcileRequest, request, fields)
            return self.executor.execute_reconciliation(
                req.bank_line_id,
                req.ledger_line_id,
                amount_cents=to_cents(req.amount) if req.amount is not None else None,
                method=ReconciliationMethod(req.method),
                session_id=req.session_id,
                confidence=req.confidence,
            )
        return _guard(run)

    def cancel_reconciliation(self, link_id: str) -> OperationResult:
        return _guard(lambda: self.executor.cancel_reconciliation(link_id))

    def auto_reconcile(self, request: Payload = None, **fields) -> OperationResult:
        def run():
            req = _parse(AutoReconcileRequest, request, fields)
            return self.executor.auto_reconcile(
                session_id=req.session_id,
                tolerance_days=req.tolerance_days,
                bank_account=req.bank_account,
            )
        return _guard(run)

    def compute_session(self, request: Payload = None, **fields) -> OperationResult:
        def run():
            req = _parse(SessionRequest, request, fields)
            return OperationResult.ok(self.statistics.compute_session(
                req.period_start,
                req.period_end,
                req.bank_account or self.settings.default_bank_account,
                to_cents(req.statement_opening),
                to_cents(req.statement_closing),
            ))
        return _guard(run)

    def session_report(self, session_id: str) -> OperationResult:
        return _guard(lambda: OperationResult.ok(self.statistics.session_report(session_id)))

    def list_sessions(self) -> OperationResult:
        return _guard(lambda: OperationResult.ok(self.store.list_sessions()))

    def list_links(self, session_id: Optional[str] = None) -> OperationResult:
        return _guard(lambda: OperationResult.ok(self.store.list_links(session_id)))

    def reconciliation_stats(self, request: Payload = None, **fields) -> OperationResult:
        def run():
            req = _parse(BankLineFilter, request, fields)
            return OperationResult.ok(self.statistics.reconciliation_stats(
                bank_account=req.bank_account,
                date_range=_date_range(req.date_start, req.date_end),
            ))
        return _guard(run)

    # ------------------------------------------------------------------
    # Bank statements and listings
    # ------------------------------------------------------------------

    def import_bank_statement(self, request: Payload = None, **fields) -> OperationResult:
        """Insert statement lines as unreconciled; returns the created lines."""
        def run():
            req = _parse(BankStatementImport, request, fields)
            bank_account = req.bank_account or self.settings.default_bank_account
            lines = [
                BankStatementLine(
                    operation_date=item.operation_date,
                    value_date=item.value_date or item.operation_date,
                    label=item.label,
                    reference=item.reference,
                    amount_cents=to_cents(item.amount),
                    running_balance_cents=(
                        to_cents(item.running_balance) if item.running_balance is not None else None
                    ),
                    bank_account=bank_account,
                    source_file=req.source_file,
                )
                for item in req.lines
            ]
            with self.store.transaction():
                self.store.add_bank_lines(lines)

            self.audit.record(
                AuditAction.BANK_STATEMENT_IMPORTED,
                f"Imported {len(lines)} bank statement lines",
                line_ids=[line.id for line in lines],
                account=bank_account,
                source_file=req.source_file,
            )
            return OperationResult.ok(lines)
        return _guard(run)

    def clear_unreconciled_bank_lines(self) -> OperationResult:
        def run():
            with self.store.transaction():
                deleted = self.store.delete_unreconciled_bank_lines()
            logger.info("Unreconciled bank lines deleted", count=deleted)
            return OperationResult.ok(deleted)
        return _guard(run)

    def list_ledger_lines(self, request: Payload = None, **fields) -> OperationResult:
        def run():
            req = _parse(LineFilter, request, fields)
            account_range = None
            if req.account_start is not None or req.account_end is not None:
                account_range = (req.account_start, req.account_end)
            return OperationResult.ok(self.store.list_lines(
                account_range=account_range,
                third_party=req.third_party_code,
                date_range=_date_range(req.date_start, req.date_end),
                clearing_status=ClearingStatus(req.clearing_status) if req.clearing_status else None,
                journal_code=req.journal_code,
                limit=req.limit or self.settings.line_query_limit,
            ))
        return _guard(run)

    def list_bank_lines(self, request: Payload = None, **fields) -> OperationResult:
        def run():
            req = _parse(BankLineFilter, request, fields)
            return OperationResult.ok(self.store.list_bank_lines(
                reconciled=req.reconciled,
                date_range=_date_range(req.date_start, req.date_end),
                bank_account=req.bank_account,
            ))
        return _guard(run)

    def list_bank_ledger_lines(self, request: Payload = None, **fields) -> OperationResult:
        """Treasury ledger lines, optionally filtered on their link state."""
        def run():
            req = _parse(BankLineFilter, request, fields)
            lines = self.store.list_treasury_lines(
                date_range=_date_range(req.date_start, req.date_end),
                reconciled=req.reconciled,
                account=req.bank_account,
            )
            return OperationResult.ok(lines)
        return _guard(run)
