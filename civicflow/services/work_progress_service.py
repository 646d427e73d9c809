#civicflow/services/work_progress_service.py
from __future__ import annotations

import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from civicflow.core.errors import InvalidTransition, NotFound, ValidationError
from civicflow.core.workflow_graph import TransitionEvent
from civicflow.models.enums import WorkProgressStatus
from civicflow.models.issue import Issue
from civicflow.models.work_progress import WorkProgressRecord
from civicflow.policies.rbac import Principal
from civicflow.services.workflow_engine import (
    CompletionEvidence,
    TransitionResult,
    WorkflowEngine,
)

FINAL_RECORD_STATES = {WorkProgressStatus.approved.value, WorkProgressStatus.rejected.value}


def _validate_evidence(evidence: CompletionEvidence) -> None:
    if not evidence.title or not evidence.title.strip():
        raise ValidationError("Title is required.")
    if not evidence.description or not evidence.description.strip():
        raise ValidationError("Description is required.")
    if not evidence.after_images:
        raise ValidationError("At least one after image is required.")
    if any(not img or not str(img).strip() for img in evidence.after_images):
        raise ValidationError("After image URLs must not be blank.")
    if any(not img or not str(img).strip() for img in evidence.before_images):
        raise ValidationError("Before image URLs must not be blank.")


class WorkProgressTracker:
    """
    Completion evidence and its review loop.

    Input checks happen here; the stage changes (and who may make them) are
    the engine's. A record's outcome is final once approved or rejected.
    """

    def __init__(self, engine: Optional[WorkflowEngine] = None):
        self.engine = engine or WorkflowEngine()

    # ─────────────────────────────────────────────
    # READ
    # ─────────────────────────────────────────────

    def get_record(self, db: Session, *, record_id: uuid.UUID) -> WorkProgressRecord:
        record = db.get(WorkProgressRecord, record_id)
        if record is None:
            raise NotFound("Work progress record not found.", details={"record_id": str(record_id)})
        return record

    def list_for_issue(self, db: Session, *, issue_id: uuid.UUID) -> List[WorkProgressRecord]:
        if db.get(Issue, issue_id) is None:
            raise NotFound("Issue not found.", details={"issue_id": str(issue_id)})
        return (
            db.execute(
                select(WorkProgressRecord)
                .where(WorkProgressRecord.issue_id == issue_id)
                .order_by(WorkProgressRecord.created_at.desc())
            )
            .scalars()
            .all()
        )

    # ─────────────────────────────────────────────
    # WRITE
    # ─────────────────────────────────────────────

    def submit(
        self,
        db: Session,
        *,
        issue_id: uuid.UUID,
        principal: Principal,
        evidence: CompletionEvidence,
        expected_version: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> WorkProgressRecord:
        _validate_evidence(evidence)
        result = self.engine.apply_transition(
            db,
            issue_id=issue_id,
            event=TransitionEvent.SUBMIT_COMPLETION,
            principal=principal,
            params={"evidence": evidence},
            expected_version=expected_version,
            request_id=request_id,
        )
        return result.record

    def _open_for_review(self, db: Session, record_id: uuid.UUID) -> WorkProgressRecord:
        record = self.get_record(db, record_id=record_id)
        if record.status in FINAL_RECORD_STATES:
            raise InvalidTransition(
                f"Work progress record is already {record.status}.",
                details={"record_id": str(record_id), "status": record.status},
            )
        return record

    def forward_for_area_approval(
        self,
        db: Session,
        *,
        record_id: uuid.UUID,
        principal: Principal,
        notes: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> TransitionResult:
        record = self._open_for_review(db, record_id)
        return self.engine.apply_transition(
            db,
            issue_id=record.issue_id,
            event=TransitionEvent.FORWARD_FOR_AREA_APPROVAL,
            principal=principal,
            params={"record_id": record.id, "notes": notes},
            request_id=request_id,
        )

    def approve(
        self,
        db: Session,
        *,
        record_id: uuid.UUID,
        principal: Principal,
        notes: Optional[str] = None,
        quality_rating: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> TransitionResult:
        if quality_rating is not None and not 1 <= quality_rating <= 5:
            raise ValidationError("quality_rating must be between 1 and 5.")
        record = self._open_for_review(db, record_id)
        return self.engine.apply_transition(
            db,
            issue_id=record.issue_id,
            event=TransitionEvent.APPROVE_COMPLETION,
            principal=principal,
            params={"record_id": record.id, "notes": notes, "quality_rating": quality_rating},
            request_id=request_id,
        )

    def reject(
        self,
        db: Session,
        *,
        record_id: uuid.UUID,
        principal: Principal,
        notes: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> TransitionResult:
        record = self._open_for_review(db, record_id)
        return self.engine.apply_transition(
            db,
            issue_id=record.issue_id,
            event=TransitionEvent.REJECT_COMPLETION,
            principal=principal,
            params={"record_id": record.id, "notes": notes},
            request_id=request_id,
        )
