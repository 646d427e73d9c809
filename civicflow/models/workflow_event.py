#civicflow/models/workflow_event.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import String, Boolean, DateTime, Index, Uuid, func, false
from sqlalchemy.orm import Mapped, mapped_column

from civicflow.db.base import Base, JsonType


def _now():
    return datetime.now(timezone.utc)


class WorkflowEvent(Base):
    """
    Outbox row for the notification / points consumers.
    Written after the transition commits; consumers poll and acknowledge.
    """

    __tablename__ = "workflow_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    issue_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    recipient_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    payload_json: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_workflow_events_type", "event_type"),
        Index("ix_workflow_events_pending", "delivered", "created_at"),
        Index("ix_workflow_events_issue", "issue_id"),
    )
