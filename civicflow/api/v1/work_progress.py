#civicflow/api/v1/work_progress.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from civicflow.core.auth_deps import get_current_principal
from civicflow.core.deps import get_request_id
from civicflow.db.session import get_db
from civicflow.policies.rbac import Principal
from civicflow.schemas.work_progress import (
    ApproveRequest,
    ReviewRequest,
    ReviewResponse,
    WorkProgressResponse,
    WorkProgressSubmitRequest,
)
from civicflow.services.work_progress_service import WorkProgressTracker
from civicflow.services.workflow_engine import CompletionEvidence, TransitionResult

router = APIRouter()


def _review_response(result: TransitionResult) -> ReviewResponse:
    return ReviewResponse(
        record=WorkProgressResponse.model_validate(result.record),
        issue_id=result.issue.id,
        from_stage=result.from_stage.value,
        to_stage=result.to_stage.value,
        issue_version=result.issue.version,
    )


@router.post("/issues/{issue_id}/work-progress", response_model=WorkProgressResponse, status_code=201)
def submit_work_progress(
    issue_id: uuid.UUID,
    body: WorkProgressSubmitRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    evidence = CompletionEvidence(
        title=body.title,
        description=body.description,
        after_images=body.after_images,
        before_images=body.before_images,
        materials_used=body.materials_used,
        cost_breakdown=body.cost_breakdown,
        work_details=body.work_details,
        completion_date=body.completion_date,
    )
    return WorkProgressTracker().submit(
        db,
        issue_id=issue_id,
        principal=principal,
        evidence=evidence,
        expected_version=body.expected_version,
        request_id=request_id,
    )


@router.get("/issues/{issue_id}/work-progress", response_model=List[WorkProgressResponse])
def list_work_progress(
    issue_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return WorkProgressTracker().list_for_issue(db, issue_id=issue_id)


@router.post("/work-progress/{record_id}/forward", response_model=ReviewResponse)
def forward_for_area_approval(
    record_id: uuid.UUID,
    body: ReviewRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    result = WorkProgressTracker().forward_for_area_approval(
        db, record_id=record_id, principal=principal, notes=body.notes, request_id=request_id
    )
    return _review_response(result)


@router.post("/work-progress/{record_id}/approve", response_model=ReviewResponse)
def approve_work_progress(
    record_id: uuid.UUID,
    body: ApproveRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    result = WorkProgressTracker().approve(
        db,
        record_id=record_id,
        principal=principal,
        notes=body.notes,
        quality_rating=body.quality_rating,
        request_id=request_id,
    )
    return _review_response(result)


@router.post("/work-progress/{record_id}/reject", response_model=ReviewResponse)
def reject_work_progress(
    record_id: uuid.UUID,
    body: ReviewRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    result = WorkProgressTracker().reject(
        db, record_id=record_id, principal=principal, notes=body.notes, request_id=request_id
    )
    return _review_response(result)
