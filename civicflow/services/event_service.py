#civicflow/services/event_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from civicflow.core.errors import NotFound
from civicflow.models.enums import EventType
from civicflow.models.workflow_event import WorkflowEvent

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


class EventOutbox:
    """
    Fire-and-forget outbox for the notification / points consumers.

    `publish` runs after the workflow transaction has committed and never
    raises: a failed write is logged and dropped.
    """

    def publish(
        self,
        db: Session,
        *,
        event_type: EventType,
        issue_id: uuid.UUID,
        recipient_id: Optional[uuid.UUID],
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[WorkflowEvent]:
        row = WorkflowEvent(
            event_type=event_type.value,
            issue_id=issue_id,
            recipient_id=recipient_id,
            payload_json=payload or {},
        )
        try:
            db.add(row)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "event publish failed",
                extra={"event_type": event_type.value, "issue_id": str(issue_id)},
            )
            return None

        logger.info(
            "event published",
            extra={
                "event_type": event_type.value,
                "issue_id": str(issue_id),
                "recipient_id": str(recipient_id) if recipient_id else None,
            },
        )
        return row

    def list_events(
        self,
        db: Session,
        *,
        delivered: Optional[bool] = False,
        recipient_id: Optional[uuid.UUID] = None,
        limit: int = 100,
    ) -> List[WorkflowEvent]:
        stmt = select(WorkflowEvent).order_by(WorkflowEvent.created_at.asc()).limit(limit)
        if delivered is not None:
            stmt = stmt.where(WorkflowEvent.delivered.is_(delivered))
        if recipient_id is not None:
            stmt = stmt.where(WorkflowEvent.recipient_id == recipient_id)
        return db.execute(stmt).scalars().all()

    def acknowledge(self, db: Session, *, event_id: uuid.UUID) -> WorkflowEvent:
        row = db.get(WorkflowEvent, event_id)
        if row is None:
            raise NotFound("Event not found.")
        if not row.delivered:
            row.delivered = True
            row.delivered_at = _now()
            db.commit()
            db.refresh(row)
        return row
