#civicflow/api/v1/events.py
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from civicflow.core.auth_deps import get_current_principal
from civicflow.core.errors import NotAuthorized
from civicflow.db.session import get_db
from civicflow.models.workflow_event import WorkflowEvent
from civicflow.policies.rbac import Principal, is_admin
from civicflow.schemas.events import WorkflowEventListResponse, WorkflowEventResponse
from civicflow.services.event_service import EventOutbox

router = APIRouter(prefix="/events")


@router.get("", response_model=WorkflowEventListResponse)
def list_events(
    delivered: Optional[bool] = Query(False),
    recipient_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    # non-admins only read their own notifications
    if not is_admin(principal):
        recipient_id = uuid.UUID(principal.profile_id)

    rows = EventOutbox().list_events(db, delivered=delivered, recipient_id=recipient_id, limit=limit)
    return WorkflowEventListResponse(items=[WorkflowEventResponse.model_validate(r) for r in rows])


@router.post("/{event_id}/ack", response_model=WorkflowEventResponse)
def acknowledge_event(
    event_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    row = db.get(WorkflowEvent, event_id)
    if row is not None and not is_admin(principal) and str(row.recipient_id) != principal.profile_id:
        raise NotAuthorized("Only the recipient may acknowledge this event.")
    return EventOutbox().acknowledge(db, event_id=event_id)
