#civicflow/api/v1/tenders.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from civicflow.core.auth_deps import get_current_principal
from civicflow.core.deps import get_request_id
from civicflow.db.session import get_db
from civicflow.models.enums import TenderStatus
from civicflow.policies.rbac import Principal
from civicflow.schemas.tenders import (
    AwardRequest,
    BidCreateRequest,
    BidResponse,
    TenderCreateRequest,
    TenderListResponse,
    TenderResponse,
)
from civicflow.services.tender_service import TenderService

router = APIRouter(prefix="/tenders")


@router.post("", response_model=TenderResponse, status_code=201)
def create_tender(
    body: TenderCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    return TenderService().create_tender(
        db,
        principal=principal,
        issue_id=body.issue_id,
        title=body.title,
        description=body.description,
        budget_min=body.estimated_budget_min,
        budget_max=body.estimated_budget_max,
        submission_deadline=body.submission_deadline,
        request_id=request_id,
    )


@router.get("", response_model=TenderListResponse)
def list_tenders(
    status: Optional[TenderStatus] = Query(None),
    issue_id: Optional[uuid.UUID] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    rows = TenderService().list_tenders(
        db, status=status.value if status else None, issue_id=issue_id
    )
    return TenderListResponse(items=[TenderResponse.model_validate(t) for t in rows])


@router.get("/{tender_id}/bids", response_model=List[BidResponse])
def list_bids(
    tender_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return TenderService().list_bids(db, tender_id=tender_id)


@router.post("/{tender_id}/bids", response_model=BidResponse, status_code=201)
def place_bid(
    tender_id: uuid.UUID,
    body: BidCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    return TenderService().place_bid(
        db,
        principal=principal,
        tender_id=tender_id,
        amount=body.amount,
        proposal=body.proposal,
        request_id=request_id,
    )


@router.post("/{tender_id}/award", response_model=TenderResponse)
def award_tender(
    tender_id: uuid.UUID,
    body: AwardRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    return TenderService().award_tender(
        db,
        principal=principal,
        tender_id=tender_id,
        bid_id=body.bid_id,
        contract_amount=body.contract_amount,
        notes=body.notes,
        request_id=request_id,
    )
