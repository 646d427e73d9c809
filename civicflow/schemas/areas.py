from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel


class AreaResolveResponse(BaseModel):
    query: str
    matched: bool
    area_id: Optional[uuid.UUID] = None
    area_name: Optional[str] = None
    admin_id: Optional[uuid.UUID] = None
