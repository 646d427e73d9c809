from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import String, DateTime, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from civicflow.db.base import Base, JsonType


def _now():
    return datetime.now(timezone.utc)


class AuditLog(Base):
    """
    Workflow audit trail record.
    - Append-only (never UPDATE)
    - Written in the same transaction as the transition it describes
    - Stores actor, stage change, request-id, payload hash and a safe summary
    """

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    issue_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    actor_profile_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    action: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. assign_department
    from_stage: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    to_stage: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    request_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    details_json: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_audit_logs_issue", "issue_id"),
        Index("ix_audit_logs_action", "action"),
        Index("ix_audit_logs_created_at", "created_at"),
    )
