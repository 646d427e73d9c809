#civicflow/api/v1/issues.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from civicflow.core.auth_deps import get_current_principal
from civicflow.core.deps import get_request_id
from civicflow.core.deps_idempotency import idempotency_guard
from civicflow.db.session import get_db
from civicflow.models.enums import UserType
from civicflow.policies.rbac import PRIVILEGED_TYPES, Principal, require_user_type
from civicflow.schemas.audit import AuditLogListResponse, AuditLogResponse
from civicflow.schemas.issues import (
    AssignAreaRequest,
    AssignDepartmentRequest,
    AssignmentHistoryResponse,
    AssignmentResponse,
    IssueCreateRequest,
    IssueResponse,
    ReassignRequest,
    StartWorkRequest,
)
from civicflow.services.assignment_ledger import AssignmentLedger
from civicflow.services.audit_service import AuditService
from civicflow.services.idempotency_service import IdempotencyCheck, IdempotencyService
from civicflow.services.issue_service import IssueService
from civicflow.services.workflow_engine import WorkflowEngine

router = APIRouter(prefix="/issues")


# ------------------------------------------------------------------
# INTAKE / READS
# ------------------------------------------------------------------


@router.post("", response_model=IssueResponse, status_code=201)
def create_issue(
    body: IssueCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    idem: Optional[IdempotencyCheck] = Depends(idempotency_guard),
    request_id: Optional[str] = Depends(get_request_id),
):
    if idem is not None and idem.is_replay:
        return JSONResponse(content=idem.replay_json, status_code=idem.replay_status)

    issue = IssueService().create_issue(
        db,
        principal=principal,
        title=body.title,
        description=body.description,
        category=body.category.value,
        priority=body.priority.value,
        area=body.area,
        ward=body.ward,
        address=body.address,
        location_name=body.location_name,
        latitude=body.latitude,
        longitude=body.longitude,
        images=body.images,
        request_id=request_id,
    )
    payload = IssueResponse.model_validate(issue).model_dump(mode="json")

    if idem is not None:
        IdempotencyService().remember(
            db,
            profile_id=principal.profile_id,
            check=idem,
            response_json=payload,
            response_status=201,
        )

    return JSONResponse(content=payload, status_code=201)


@router.get("", response_model=List[IssueResponse])
def list_issues(
    stage: Optional[str] = Query(None),
    area_id: Optional[uuid.UUID] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    assignee_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    # citizens only ever see their own reports
    reporter_id = (
        uuid.UUID(principal.profile_id) if principal.user_type == UserType.citizen else None
    )
    return IssueService().list_issues(
        db,
        stage=stage,
        area_id=area_id,
        department_id=department_id,
        assignee_id=assignee_id,
        reporter_id=reporter_id,
        limit=limit,
        offset=offset,
    )


@router.get("/{issue_id}", response_model=IssueResponse)
def get_issue(
    issue_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return IssueService().get_issue(db, issue_id=issue_id)


@router.get("/{issue_id}/assignments", response_model=AssignmentHistoryResponse)
def list_assignments(
    issue_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    IssueService().get_issue(db, issue_id=issue_id)
    ledger = AssignmentLedger()
    items = ledger.list_for_issue(db, issue_id=issue_id)
    return AssignmentHistoryResponse(
        issue_id=issue_id,
        chain_valid=ledger.verify_chain(db, issue_id=issue_id),
        items=[AssignmentResponse.model_validate(a) for a in items],
    )


@router.get("/{issue_id}/audit", response_model=AuditLogListResponse)
def list_audit(
    issue_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    # the trail names staff and internal notes
    require_user_type(principal, *PRIVILEGED_TYPES)
    IssueService().get_issue(db, issue_id=issue_id)
    rows = AuditService().list_for_issue(db, issue_id=issue_id)
    return AuditLogListResponse(
        issue_id=issue_id,
        items=[AuditLogResponse.model_validate(r) for r in rows],
    )


# ------------------------------------------------------------------
# TRANSITIONS
# ------------------------------------------------------------------


@router.post("/{issue_id}/assign-area", response_model=IssueResponse)
def assign_area(
    issue_id: uuid.UUID,
    body: AssignAreaRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    result = WorkflowEngine().assign_area(
        db,
        issue_id=issue_id,
        principal=principal,
        area_id=body.area_id,
        notes=body.notes,
        expected_version=body.expected_version,
        request_id=request_id,
    )
    return result.issue


@router.post("/{issue_id}/assign-department", response_model=IssueResponse)
def assign_department(
    issue_id: uuid.UUID,
    body: AssignDepartmentRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    result = WorkflowEngine().assign_department(
        db,
        issue_id=issue_id,
        principal=principal,
        department_id=body.department_id,
        department_admin_id=body.department_admin_id,
        notes=body.notes,
        expected_version=body.expected_version,
        request_id=request_id,
    )
    return result.issue


@router.post("/{issue_id}/start-work", response_model=IssueResponse)
def start_work(
    issue_id: uuid.UUID,
    body: StartWorkRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    result = WorkflowEngine().start_work(
        db,
        issue_id=issue_id,
        principal=principal,
        notes=body.notes,
        expected_version=body.expected_version,
        request_id=request_id,
    )
    return result.issue


@router.post("/{issue_id}/reassign", response_model=IssueResponse)
def reassign(
    issue_id: uuid.UUID,
    body: ReassignRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    request_id: Optional[str] = Depends(get_request_id),
):
    result = WorkflowEngine().reassign(
        db,
        issue_id=issue_id,
        principal=principal,
        new_assignee_id=body.new_assignee_id,
        notes=body.notes,
        expected_version=body.expected_version,
        request_id=request_id,
    )
    return result.issue
