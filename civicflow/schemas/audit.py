from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    issue_id: uuid.UUID
    actor_profile_id: Optional[uuid.UUID]
    actor_role: Optional[str]
    action: str
    from_stage: Optional[str]
    to_stage: Optional[str]
    request_id: Optional[str]
    payload_hash: str
    details_json: Dict[str, Any]
    created_at: datetime


class AuditLogListResponse(BaseModel):
    issue_id: uuid.UUID
    items: List[AuditLogResponse]
