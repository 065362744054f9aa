from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..db.base import BaseDBManager
from ..models.audit import AuditEvent, AuditEventType

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Structured audit logger that writes to a file and the database.

    File logging is append-only, line-delimited JSON for easier ingestion
    by log aggregators. DB logging uses the `AuditEvent` model and the
    configured `BaseDBManager`. Events are written after the unit of work
    they describe has committed or rolled back.
    """

    def __init__(self, db: BaseDBManager, file_path: Path) -> None:
        self._db = db
        self._file_path = file_path
        self._file_path.parent.mkdir(parents=True, exist_ok=True)

    async def log_transfer(
        self,
        actor_id: str,
        subject_id: Optional[str],
        message: str,
        details: dict[str, Any],
    ) -> None:
        await self._log(AuditEventType.TRANSFER, actor_id, subject_id, message, details)

    async def log_top_up(
        self,
        actor_id: str,
        subject_id: str,
        details: dict[str, Any],
    ) -> None:
        await self._log(
            AuditEventType.TOP_UP, actor_id, subject_id, "SubAdmin topped up", details
        )

    async def log_account_event(
        self,
        actor_id: str,
        subject_id: Optional[str],
        message: str,
        details: dict[str, Any],
    ) -> None:
        await self._log(AuditEventType.ACCOUNT, actor_id, subject_id, message, details)

    async def log_error(
        self,
        message: str,
        details: dict[str, Any],
        actor_id: Optional[str] = None,
        subject_id: Optional[str] = None,
    ) -> None:
        await self._log(AuditEventType.ERROR, actor_id, subject_id, message, details)

    async def _log(
        self,
        event_type: AuditEventType,
        actor_id: Optional[str],
        subject_id: Optional[str],
        message: str,
        details: dict[str, Any],
    ) -> None:
        event = AuditEvent(
            event_type=event_type,
            actor_id=actor_id,
            subject_id=subject_id,
            message=message,
            details=details,
        )

        await self._db.add_audit_event(event)
        # The file mirror is best-effort; a failed write does not fail the operation.
        try:
            line = json.dumps(event.serialize_for_db(), default=str)
            with self._file_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as exc:
            logger.warning("Audit file write failed (%s): %s", self._file_path, exc)
