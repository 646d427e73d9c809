from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class WorkflowEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_type: str
    issue_id: uuid.UUID
    recipient_id: Optional[uuid.UUID]
    payload_json: Dict[str, Any]
    delivered: bool
    delivered_at: Optional[datetime]
    created_at: datetime


class WorkflowEventListResponse(BaseModel):
    items: List[WorkflowEventResponse]
