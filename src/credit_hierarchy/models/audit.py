from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import Field

from .base import DBSerializableModel


class AuditEventType(str, Enum):
    TRANSFER = "transfer"
    TOP_UP = "top_up"
    ACCOUNT = "account"
    ERROR = "error"


class AuditEvent(DBSerializableModel):
    """
    Structured audit record persisted to DB and mirrored to the JSONL file log.
    """

    collection_name: ClassVar[str] = "audit_events"

    id: Optional[str] = Field(default=None)
    event_type: AuditEventType
    actor_id: Optional[str] = Field(
        default=None, description="Id of the account that performed the operation."
    )
    subject_id: Optional[str] = Field(
        default=None, description="Id of the account the operation was applied to."
    )
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
