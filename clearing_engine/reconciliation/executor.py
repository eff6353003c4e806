"""
Clearing Executor - turns accepted assignments into persisted state.

Lettrage tags balanced ledger lines with a shared clearing code;
rapprochement links bank statement lines to treasury ledger lines.
Every mutation runs inside one store transaction, so a group is either
fully tagged or untouched, and a link is never inserted without its
bank line being flagged. Preconditions are checked inside the same
transaction: a second request racing on already-cleared lines fails
with AlreadyClearedError instead of clearing them twice.
"""

from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from ..config import Settings, get_settings
from ..errors import (
    AlreadyClearedError,
    AlreadyReconciledError,
    ClearingEngineError,
    NotBalancedError,
    NotFoundError,
    OperationResult,
    ValidationError,
)
from ..models import (
    AuditAction,
    AutoLettrageResult,
    AutoReconcileResult,
    BatchFailure,
    ClearingGroup,
    ClearingHistoryEntry,
    ClearingMethod,
    ClearingProposal,
    ClearingStatus,
    HistoryAction,
    LedgerLine,
    ReconciliationLink,
    ReconciliationMethod,
)
from ..models.ledger import utcnow
from ..store import LedgerStore
from ..utils.audit_logger import AuditLogger
from .assignment import GreedyAssignmentEngine
from .candidates import BankCandidateGenerator, LettrageCandidateGenerator
from .codes import ClearingCodeAllocator, code_sort_key
from .scoring import LettrageScorer

logger = structlog.get_logger()


class ClearingExecutor:
    """
    Executes and undoes lettrage groups and bank reconciliation links.

    Public operations return an OperationResult; ClearingEngineError
    raised by the internal steps is converted at this boundary.
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[Settings] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.audit = audit or AuditLogger()
        self.tolerance = self.settings.clearing_tolerance_cents

        self.scorer = LettrageScorer(self.settings)
        self.lettrage_generator = LettrageCandidateGenerator(self.settings, self.scorer)
        self.bank_generator = BankCandidateGenerator(self.settings)
        self.assignment = GreedyAssignmentEngine(self.settings)
        self.allocator = ClearingCodeAllocator(store)

    # ------------------------------------------------------------------
    # Lettrage
    # ------------------------------------------------------------------

    def propose_lettrage(
        self,
        account: str,
        third_party_code: Optional[str] = None,
        include_overlapping: bool = False,
    ) -> List[ClearingProposal]:
        """
        Propose balanced groupings of uncleared lines. Read-only.

        Args:
            account: Account number
            third_party_code: Restrict to one third party
            include_overlapping: Return every ranked candidate instead of
                the conflict-free selection

        Returns:
            Proposals, best first
        """
        lines = self.store.list_lines(
            account_range=(account, account),
            third_party=third_party_code,
            clearing_status=ClearingStatus.UNCLEARED,
        )
        if len(lines) < 2:
            return []

        candidates = self.lettrage_generator.generate(lines, account, third_party_code)
        if include_overlapping:
            return candidates

        proposals = self.assignment.assign_groups(candidates)
        self.audit.record(
            AuditAction.LETTRAGE_PROPOSED,
            f"{len(proposals)} lettrage proposals from {len(candidates)} candidates",
            line_ids=[line_id for p in proposals for line_id in p.line_ids],
            account=account,
            third_party=third_party_code,
        )
        return proposals

    def execute_lettrage(
        self,
        line_ids: Iterable[str],
        account: str,
        third_party_code: Optional[str] = None,
        actor: Optional[str] = None,
        method: ClearingMethod = ClearingMethod.MANUAL,
    ) -> OperationResult[ClearingGroup]:
        """Clear a balanced set of lines under a new code, atomically."""
        ids = list(dict.fromkeys(line_ids))
        try:
            group = self._execute_lettrage(ids, account, third_party_code, actor, method)
        except ClearingEngineError as exc:
            self.audit.record(
                AuditAction.LETTRAGE_REJECTED,
                f"Lettrage rejected: {exc.message}",
                line_ids=ids,
                account=account,
                actor=actor,
                success=False,
                error_message=exc.message,
                error_code=exc.code,
                residual=exc.residual,
            )
            return OperationResult.fail(exc)

        self.audit.record(
            AuditAction.LETTRAGE_EXECUTED,
            f"Lettrage {group.code} executed",
            line_ids=group.line_ids,
            account=account,
            actor=actor,
            code=group.code,
            method=method.value,
            amount=group.total_debit_cents / 100.0,
        )
        return OperationResult.ok(group)

    def _execute_lettrage(
        self,
        ids: List[str],
        account: str,
        third_party_code: Optional[str],
        actor: Optional[str],
        method: ClearingMethod,
    ) -> ClearingGroup:
        if len(ids) < 2:
            raise ValidationError("Lettrage requires at least two lines")

        with self.store.transaction():
            found = self.store.get_lines(ids)

            missing = [line_id for line_id in ids if line_id not in found]
            if missing:
                raise ValidationError(
                    f"Unknown ledger lines: {', '.join(missing)}",
                    details={"line_ids": missing},
                )

            members = [found[line_id] for line_id in ids]
            self._check_membership(members, account, third_party_code)

            cleared = [line for line in members if line.is_cleared]
            if cleared:
                raise AlreadyClearedError(
                    "Lines already cleared: "
                    + ", ".join(f"{line.id} ({line.clearing_code})" for line in cleared),
                    details={"line_ids": [line.id for line in cleared]},
                )

            residual = self.scorer.residual_cents(members)
            if abs(residual) > self.tolerance:
                raise NotBalancedError(
                    residual,
                    details={
                        "total_debit": sum(l.debit_cents for l in members) / 100.0,
                        "total_credit": sum(l.credit_cents for l in members) / 100.0,
                    },
                )

            code = self.allocator.allocate(account)
            now = utcnow()
            for line in members:
                self.store.set_line_clearing(line.id, code, now)

            parties = {line.third_party_code for line in members}
            group = ClearingGroup(
                code=code,
                account=account,
                third_party_code=third_party_code or (parties.pop() if len(parties) == 1 else None),
                line_ids=ids,
                total_debit_cents=sum(l.debit_cents for l in members),
                total_credit_cents=sum(l.credit_cents for l in members),
                created_at=now,
                method=method,
                actor=actor,
            )
            self.store.insert_clearing_group(group)
            self.store.insert_history(ClearingHistoryEntry(
                code=code,
                action=HistoryAction.LETTRAGE,
                line_ids=ids,
                account=account,
                amount_cents=group.total_debit_cents,
                created_at=now,
                actor=actor,
            ))

        for line in members:
            line.clearing_code = code
            line.cleared_at = now
        group.lines = members
        return group

    @staticmethod
    def _check_membership(
        members: List[LedgerLine],
        account: str,
        third_party_code: Optional[str],
    ) -> None:
        foreign = [line.id for line in members if line.account != account]
        if foreign:
            raise ValidationError(
                f"Lines not on account {account}: {', '.join(foreign)}",
                details={"line_ids": foreign},
            )
        if third_party_code is not None:
            other = [line.id for line in members if line.third_party_code != third_party_code]
            if other:
                raise ValidationError(
                    f"Lines not on third party {third_party_code}: {', '.join(other)}",
                    details={"line_ids": other},
                )

    def cancel_lettrage(
        self,
        code: str,
        account: str,
        actor: Optional[str] = None,
    ) -> OperationResult[List[str]]:
        """Remove a clearing code from all its lines (délettrage)."""
        try:
            released = self._cancel_lettrage(code, account, actor)
        except ClearingEngineError as exc:
            self.audit.record(
                AuditAction.LETTRAGE_CANCELLED,
                f"Délettrage rejected: {exc.message}",
                account=account,
                actor=actor,
                success=False,
                error_message=exc.message,
                code=code,
            )
            return OperationResult.fail(exc)

        self.audit.record(
            AuditAction.LETTRAGE_CANCELLED,
            f"Lettrage {code} cancelled",
            line_ids=released,
            account=account,
            actor=actor,
            code=code,
        )
        return OperationResult.ok(released)

    def _cancel_lettrage(self, code: str, account: str, actor: Optional[str]) -> List[str]:
        with self.store.transaction():
            members = [
                line for line in self.store.list_lines(
                    account_range=(account, account),
                    clearing_status=ClearingStatus.CLEARED,
                )
                if line.clearing_code == code
            ]
            if not members:
                raise NotFoundError(f"Clearing code {code} not found on account {account}")

            for line in members:
                self.store.set_line_clearing(line.id, None, None)

            now = utcnow()
            if self.store.get_clearing_group(account, code) is not None:
                self.store.close_clearing_group(account, code, now)

            released = [line.id for line in members]
            self.store.insert_history(ClearingHistoryEntry(
                code=code,
                action=HistoryAction.DELETTRAGE,
                line_ids=released,
                account=account,
                amount_cents=sum(line.debit_cents for line in members),
                created_at=now,
                actor=actor,
            ))

        return released

    def auto_lettrage(
        self,
        account: str,
        third_party_code: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> OperationResult[AutoLettrageResult]:
        """Execute every conflict-free proposal; failures are collected."""
        proposals = self.propose_lettrage(account, third_party_code)
        result = AutoLettrageResult(proposed_count=len(proposals))

        for proposal in proposals:
            outcome = self.execute_lettrage(
                proposal.line_ids,
                account,
                proposal.third_party_code,
                actor=actor,
                method=ClearingMethod.AUTOMATIC,
            )
            if outcome.success:
                result.groups.append(outcome.data)
            else:
                result.failures.append(BatchFailure(
                    item_ids=proposal.line_ids,
                    error_code=outcome.error.code,
                    message=outcome.error.message,
                ))

        self.audit.record(
            AuditAction.AUTO_LETTRAGE_COMPLETED,
            f"Auto lettrage: {result.cleared_count}/{result.proposed_count} groups cleared",
            account=account,
            actor=actor,
            cleared=result.cleared_count,
            failed=len(result.failures),
        )
        return OperationResult.ok(result)

    def list_clearing_groups(self, account: Optional[str] = None) -> List[ClearingGroup]:
        """Active groups rebuilt from the cleared lines, with their members."""
        account_range = (account, account) if account else None
        lines = self.store.list_lines(
            account_range=account_range,
            clearing_status=ClearingStatus.CLEARED,
        )

        buckets: Dict[Tuple[str, str], List[LedgerLine]] = {}
        for line in lines:
            buckets.setdefault((line.account, line.clearing_code), []).append(line)

        groups = []
        for (group_account, code) in sorted(buckets, key=lambda k: (k[0], code_sort_key(k[1]))):
            members = buckets[(group_account, code)]
            record = self.store.get_clearing_group(group_account, code)
            group = ClearingGroup(
                code=code,
                account=group_account,
                third_party_code=record.third_party_code if record else members[0].third_party_code,
                line_ids=[line.id for line in members],
                total_debit_cents=sum(line.debit_cents for line in members),
                total_credit_cents=sum(line.credit_cents for line in members),
                created_at=record.created_at if record else (members[0].cleared_at or utcnow()),
                method=record.method if record else ClearingMethod.MANUAL,
                actor=record.actor if record else None,
                lines=members,
            )
            groups.append(group)
        return groups

    def lettrage_history(
        self,
        account: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[ClearingHistoryEntry]:
        return self.store.list_history(account, limit or self.settings.history_limit)

    # ------------------------------------------------------------------
    # Rapprochement bancaire
    # ------------------------------------------------------------------

    def execute_reconciliation(
        self,
        bank_line_id: str,
        ledger_line_id: str,
        amount_cents: Optional[int] = None,
        method: ReconciliationMethod = ReconciliationMethod.MANUAL,
        session_id: Optional[str] = None,
        confidence: Optional[int] = None,
    ) -> OperationResult[ReconciliationLink]:
        """Link a bank line to a treasury ledger line and flag it reconciled."""
        try:
            link = self._execute_reconciliation(
                bank_line_id, ledger_line_id, amount_cents, method, session_id, confidence
            )
        except ClearingEngineError as exc:
            self.audit.record(
                AuditAction.RECONCILIATION_REJECTED,
                f"Reconciliation rejected: {exc.message}",
                line_ids=[bank_line_id, ledger_line_id],
                success=False,
                error_message=exc.message,
                error_code=exc.code,
            )
            return OperationResult.fail(exc)

        self.audit.record(
            AuditAction.RECONCILIATION_EXECUTED,
            "Bank line reconciled",
            line_ids=[bank_line_id, ledger_line_id],
            link_id=link.id,
            method=method.value,
            confidence=confidence,
        )
        return OperationResult.ok(link)

    def _execute_reconciliation(
        self,
        bank_line_id: str,
        ledger_line_id: str,
        amount_cents: Optional[int],
        method: ReconciliationMethod,
        session_id: Optional[str],
        confidence: Optional[int],
    ) -> ReconciliationLink:
        with self.store.transaction():
            bank_line = self.store.get_bank_line(bank_line_id)
            if bank_line is None:
                raise ValidationError(f"Unknown bank statement line {bank_line_id}")
            if bank_line.reconciled:
                raise AlreadyReconciledError(
                    f"Bank line {bank_line_id} already reconciled (link {bank_line.link_id})"
                )

            ledger_line = self.store.get_lines([ledger_line_id]).get(ledger_line_id)
            if ledger_line is None:
                raise ValidationError(f"Unknown ledger line {ledger_line_id}")
            if not self.settings.is_treasury_account(ledger_line.account):
                raise ValidationError(
                    f"Ledger line {ledger_line_id} is not on a treasury account "
                    f"({ledger_line.account})"
                )
            if any(link.ledger_line_id == ledger_line_id for link in self.store.list_links()):
                raise AlreadyReconciledError(f"Ledger line {ledger_line_id} already reconciled")

            if session_id is not None and self.store.get_session(session_id) is None:
                raise NotFoundError(f"Reconciliation session {session_id} not found")

            link = ReconciliationLink(
                bank_line_id=bank_line_id,
                ledger_line_id=ledger_line_id,
                session_id=session_id,
                amount_cents=bank_line.amount_cents if amount_cents is None else amount_cents,
                method=method,
                confidence=confidence,
            )
            self.store.insert_link(link)
            self.store.set_bank_line_reconciliation(bank_line_id, link.id)

        return link

    def cancel_reconciliation(self, link_id: str) -> OperationResult[None]:
        """Delete a link and reset its bank line to unreconciled."""
        warnings: List[str] = []
        try:
            with self.store.transaction():
                link = self.store.get_link(link_id)
                if link is None:
                    raise NotFoundError(f"Reconciliation link {link_id} not found")

                bank_line = self.store.get_bank_line(link.bank_line_id)
                if bank_line is None:
                    warnings.append(
                        f"Bank line {link.bank_line_id} of link {link_id} not found; link removed"
                    )
                    logger.warning(
                        "Reconciliation link without bank line",
                        link_id=link_id,
                        bank_line_id=link.bank_line_id,
                    )
                else:
                    self.store.set_bank_line_reconciliation(bank_line.id, None)

                self.store.delete_link(link_id)
        except ClearingEngineError as exc:
            self.audit.record(
                AuditAction.RECONCILIATION_CANCELLED,
                f"Un-reconciliation rejected: {exc.message}",
                success=False,
                error_message=exc.message,
                link_id=link_id,
            )
            return OperationResult.fail(exc)

        self.audit.record(
            AuditAction.RECONCILIATION_CANCELLED,
            "Reconciliation cancelled",
            line_ids=[link.bank_line_id, link.ledger_line_id],
            link_id=link_id,
            anomalies=warnings,
        )
        return OperationResult.ok(None, warnings=warnings)

    def auto_reconcile(
        self,
        session_id: Optional[str] = None,
        tolerance_days: Optional[int] = None,
        bank_account: Optional[str] = None,
    ) -> OperationResult[AutoReconcileResult]:
        """
        Match unreconciled bank lines to treasury lines by amount, date
        proximity and reference, then commit each pair on its own.

        A failing pair is recorded and skipped; pairs already committed
        stay committed.
        """
        if tolerance_days is None:
            tolerance_days = self.settings.date_tolerance_days
        if tolerance_days < 0:
            return OperationResult.fail(ValidationError("tolerance_days must be >= 0"))

        bank_range = None
        ledger_range = None
        if session_id is not None:
            session = self.store.get_session(session_id)
            if session is None:
                return OperationResult.fail(
                    NotFoundError(f"Reconciliation session {session_id} not found")
                )
            bank_account = session.bank_account
            bank_range = (session.period_start, session.period_end)
            margin = timedelta(days=tolerance_days)
            ledger_range = (session.period_start - margin, session.period_end + margin)

        bank_lines = self.store.list_bank_lines(
            reconciled=False, date_range=bank_range, bank_account=bank_account
        )
        ledger_lines = self.store.list_treasury_lines(
            date_range=ledger_range, reconciled=False, account=bank_account
        )

        result = AutoReconcileResult(total_bank_lines=len(bank_lines))
        if not bank_lines or not ledger_lines:
            return OperationResult.ok(result)

        logger.info(
            "Starting auto reconciliation",
            session_id=session_id,
            bank_lines=len(bank_lines),
            ledger_lines=len(ledger_lines),
            tolerance_days=tolerance_days,
        )

        candidates = self.bank_generator.generate(bank_lines, ledger_lines, tolerance_days)
        pairs = self.assignment.assign_bank_pairs(bank_lines, candidates)

        for pair in pairs:
            outcome = self.execute_reconciliation(
                pair.bank_line_id,
                pair.ledger_line_id,
                amount_cents=pair.amount_cents,
                method=ReconciliationMethod.AUTO,
                session_id=session_id,
                confidence=pair.confidence,
            )
            if outcome.success:
                result.pairs.append(pair)
                result.links.append(outcome.data)
            else:
                result.failures.append(BatchFailure(
                    item_ids=[pair.bank_line_id, pair.ledger_line_id],
                    error_code=outcome.error.code,
                    message=outcome.error.message,
                ))

        result.matched_count = len(result.pairs)

        self.audit.record(
            AuditAction.AUTO_RECONCILE_COMPLETED,
            f"Auto reconciliation: {result.matched_count}/{result.total_bank_lines} bank lines matched",
            session_id=session_id,
            matched=result.matched_count,
            failed=len(result.failures),
        )
        return OperationResult.ok(result)
