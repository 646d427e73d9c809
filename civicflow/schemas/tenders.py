#civicflow/schemas/tenders.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TenderCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    issue_id: uuid.UUID
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    estimated_budget_min: Decimal = Field(..., ge=0)
    estimated_budget_max: Decimal = Field(..., ge=0)
    submission_deadline: datetime


class BidCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(..., gt=0)
    proposal: str = Field(..., min_length=50)


class AwardRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    bid_id: uuid.UUID
    contract_amount: Optional[Decimal] = Field(None, gt=0)
    notes: Optional[str] = None


class TenderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    source_issue_id: uuid.UUID
    department_id: Optional[uuid.UUID]
    created_by: uuid.UUID
    title: str
    description: str
    estimated_budget_min: Decimal
    estimated_budget_max: Decimal
    submission_deadline: datetime
    status: str
    awarded_to: Optional[uuid.UUID]
    awarded_amount: Optional[Decimal]
    awarded_at: Optional[datetime]
    created_at: datetime


class BidResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tender_id: uuid.UUID
    contractor_id: uuid.UUID
    amount: Decimal
    proposal: str
    status: str
    created_at: datetime


class TenderListResponse(BaseModel):
    items: List[TenderResponse]
