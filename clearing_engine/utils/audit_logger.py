"""
Audit trail for clearing and reconciliation decisions.
"""

from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from uuid import uuid4
import json

import structlog

from ..config import get_settings
from ..models import AuditEntry, AuditAction

logger = structlog.get_logger()


class AuditLogger:
    """
    Collects audit entries for one engine instance.
    Provides both in-memory and file-based logging.
    """

    def __init__(self, context_id: Optional[str] = None):
        self.context_id = context_id or str(uuid4())
        self.entries: List[AuditEntry] = []
        self.settings = get_settings()

    def log(self, entry: AuditEntry) -> None:
        """Add an audit entry."""
        self.entries.append(entry)

        log = logger.info if entry.success else logger.warning
        log(
            entry.message,
            action=entry.action.value,
            line_ids=entry.line_ids,
            account=entry.account,
            actor=entry.actor,
            success=entry.success,
        )

    def record(
        self,
        action: AuditAction,
        message: str,
        line_ids: Optional[List[str]] = None,
        account: Optional[str] = None,
        actor: Optional[str] = None,
        success: bool = True,
        error_message: Optional[str] = None,
        **details,
    ) -> AuditEntry:
        """Build and log an entry in one call."""
        entry = AuditEntry(
            action=action,
            line_ids=list(line_ids or []),
            account=account,
            actor=actor,
            message=message,
            details=details,
            success=success,
            error_message=error_message,
        )
        self.log(entry)
        return entry

    def get_entries(
        self,
        action_filter: Optional[AuditAction] = None,
        success_only: bool = False,
    ) -> List[AuditEntry]:
        """Get filtered audit entries."""
        entries = self.entries

        if action_filter:
            entries = [e for e in entries if e.action == action_filter]

        if success_only:
            entries = [e for e in entries if e.success]

        return entries

    def export_to_file(self, output_path: Optional[Path] = None) -> Path:
        """Export audit log to JSON file."""
        if output_path is None:
            output_path = self.settings.reports_dir / f"audit_{self.context_id}.json"

        output_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "context_id": self.context_id,
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "total_entries": len(self.entries),
            "entries": [
                {
                    "id": e.id,
                    "timestamp": e.timestamp.isoformat(),
                    "action": e.action.value,
                    "line_ids": e.line_ids,
                    "account": e.account,
                    "actor": e.actor,
                    "message": e.message,
                    "details": e.details,
                    "success": e.success,
                    "error_message": e.error_message,
                }
                for e in self.entries
            ],
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)

        logger.info("Audit log exported", path=str(output_path))
        return output_path

    def summary(self) -> dict:
        """Get summary statistics of audit log."""
        action_counts = Counter(e.action.value for e in self.entries)
        success_count = sum(1 for e in self.entries if e.success)
        error_count = sum(1 for e in self.entries if not e.success)

        return {
            "total_entries": len(self.entries),
            "success_count": success_count,
            "error_count": error_count,
            "action_counts": dict(action_counts),
        }
