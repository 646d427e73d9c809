#civicflow/schemas/issues.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from civicflow.models.enums import IssueCategory, IssuePriority


# -----------------------
# Requests
# -----------------------


class IssueCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=2000)
    category: IssueCategory
    priority: IssuePriority = IssuePriority.medium

    area: Optional[str] = Field(None, max_length=128)
    ward: Optional[str] = Field(None, max_length=128)
    address: Optional[str] = None
    location_name: Optional[str] = Field(None, max_length=256)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    images: List[str] = Field(default_factory=list)


class VersionedRequest(BaseModel):
    """`expected_version` rejects the write if the issue changed since it was read."""
    expected_version: Optional[int] = Field(None, ge=1)


class AssignAreaRequest(VersionedRequest):
    model_config = ConfigDict(extra="forbid")

    area_id: uuid.UUID
    notes: Optional[str] = None


class AssignDepartmentRequest(VersionedRequest):
    model_config = ConfigDict(extra="forbid")

    department_id: uuid.UUID
    department_admin_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None


class StartWorkRequest(VersionedRequest):
    model_config = ConfigDict(extra="forbid")

    notes: Optional[str] = None


class ReassignRequest(VersionedRequest):
    model_config = ConfigDict(extra="forbid")

    new_assignee_id: uuid.UUID
    notes: Optional[str] = None


# -----------------------
# Responses
# -----------------------


class IssueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    reporter_id: uuid.UUID
    title: str
    description: str
    category: str
    priority: str
    area: Optional[str]
    ward: Optional[str]
    address: Optional[str]
    location_name: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    images: List[str]

    workflow_stage: str
    status: str
    assigned_area_id: Optional[uuid.UUID]
    assigned_department_id: Optional[uuid.UUID]
    current_assignee_id: Optional[uuid.UUID]

    resolved_at: Optional[datetime]
    final_resolution_notes: Optional[str]
    final_resolution_images: Optional[List[str]]

    version: int
    created_at: datetime
    updated_at: datetime


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    issue_id: uuid.UUID
    seq: int
    assigned_by: uuid.UUID
    assigned_to: uuid.UUID
    assignment_type: str
    assignment_notes: Optional[str]
    status: str
    prev_hash: str
    entry_hash: str
    completed_at: Optional[datetime]
    created_at: datetime


class AssignmentHistoryResponse(BaseModel):
    issue_id: uuid.UUID
    chain_valid: bool
    items: List[AssignmentResponse]
