#civicflow/schemas/work_progress.py
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkProgressSubmitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    after_images: List[str] = Field(..., min_length=1)
    before_images: List[str] = Field(default_factory=list)
    materials_used: List[str] = Field(default_factory=list)
    cost_breakdown: Optional[Dict[str, Any]] = None
    work_details: Dict[str, Any] = Field(default_factory=dict)
    completion_date: Optional[date] = None
    expected_version: Optional[int] = Field(None, ge=1)


class ReviewRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    notes: Optional[str] = None


class ApproveRequest(ReviewRequest):
    quality_rating: Optional[int] = Field(None, ge=1, le=5)


class WorkProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    issue_id: uuid.UUID
    assignment_id: Optional[uuid.UUID]
    submitted_by: uuid.UUID
    title: str
    description: str
    before_images: List[str]
    after_images: List[str]
    work_details: Dict[str, Any]
    materials_used: List[str]
    cost_breakdown: Optional[Dict[str, Any]]
    completion_date: date
    quality_rating: Optional[int]
    status: str
    reviewed_by: Optional[uuid.UUID]
    review_notes: Optional[str]
    reviewed_at: Optional[datetime]
    created_at: datetime


class ReviewResponse(BaseModel):
    record: WorkProgressResponse
    issue_id: uuid.UUID
    from_stage: str
    to_stage: str
    issue_version: int
