#civicflow/services/issue_service.py
from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from civicflow.core.config import get_settings
from civicflow.core.errors import NotFound, ValidationError
from civicflow.models.enums import (
    EventType,
    IssueCategory,
    IssuePriority,
    IssueStatus,
    WorkflowStage,
)
from civicflow.models.issue import Issue
from civicflow.policies.rbac import Principal
from civicflow.services.assignment_resolver import AssignmentResolver
from civicflow.services.audit_service import AuditAction, AuditService
from civicflow.services.event_service import EventOutbox
from civicflow.services.profile_service import require_actor
from civicflow.services.workflow_engine import WorkflowEngine

logger = logging.getLogger(__name__)

TITLE_MIN, TITLE_MAX = 5, 200
DESCRIPTION_MIN, DESCRIPTION_MAX = 10, 2000


def _clean_text(value: Optional[str], field: str, lo: int, hi: int) -> str:
    text = (value or "").strip()
    if not lo <= len(text) <= hi:
        raise ValidationError(
            f"{field} must be between {lo} and {hi} characters.",
            details={"field": field, "length": len(text)},
        )
    return text


def _parse_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field}: {value!r}.",
            details={"field": field, "allowed": [m.value for m in enum_cls]},
        )


class IssueService:
    """Citizen intake: validate, insert, route to the area admin, award points."""

    def __init__(
        self,
        resolver: Optional[AssignmentResolver] = None,
        engine: Optional[WorkflowEngine] = None,
        outbox: Optional[EventOutbox] = None,
    ):
        self.resolver = resolver or AssignmentResolver()
        self.engine = engine or WorkflowEngine()
        self.outbox = outbox or EventOutbox()

    def create_issue(
        self,
        db: Session,
        *,
        principal: Principal,
        title: str,
        description: str,
        category: str,
        priority: Optional[str] = None,
        area: Optional[str] = None,
        ward: Optional[str] = None,
        address: Optional[str] = None,
        location_name: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        images: Optional[List[str]] = None,
        request_id: Optional[str] = None,
    ) -> Issue:
        reporter = require_actor(db, principal)

        title = _clean_text(title, "title", TITLE_MIN, TITLE_MAX)
        description = _clean_text(description, "description", DESCRIPTION_MIN, DESCRIPTION_MAX)
        category_enum = _parse_enum(IssueCategory, category, "category")
        priority_enum = _parse_enum(IssuePriority, priority or IssuePriority.medium.value, "priority")

        if latitude is not None and not -90 <= latitude <= 90:
            raise ValidationError("latitude must be between -90 and 90.")
        if longitude is not None and not -180 <= longitude <= 180:
            raise ValidationError("longitude must be between -180 and 180.")

        issue = Issue(
            reporter_id=reporter.id,
            title=title,
            description=description,
            category=category_enum.value,
            priority=priority_enum.value,
            area=(area or "").strip() or None,
            ward=ward,
            address=address,
            location_name=location_name,
            latitude=latitude,
            longitude=longitude,
            images=[img for img in (images or []) if img and img.strip()],
            workflow_stage=WorkflowStage.reported.value,
            status=IssueStatus.pending.value,
        )

        try:
            db.add(issue)
            db.flush()

            AuditService().write(
                db,
                issue_id=issue.id,
                actor_profile_id=reporter.id,
                actor_role=reporter.user_type,
                action=AuditAction.ISSUE_CREATED,
                request_id=request_id,
                to_stage=WorkflowStage.reported.value,
                details={"category": issue.category, "priority": issue.priority, "area": issue.area},
            )

            resolution = self.resolver.resolve(db, issue.area)
            pending = self.engine.route_new_issue(
                db, issue=issue, resolution=resolution, request_id=request_id
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(issue)
        logger.info(
            "issue created",
            extra={
                "issue_id": str(issue.id),
                "reporter_id": str(reporter.id),
                "workflow_stage": issue.workflow_stage,
            },
        )

        points = get_settings().points_for_priority(priority_enum.value)
        self.outbox.publish(
            db,
            event_type=EventType.points_awarded,
            issue_id=issue.id,
            recipient_id=reporter.id,
            payload={"points": points, "reason": "issue_reported", "priority": priority_enum.value},
        )
        for ev in pending:
            self.outbox.publish(
                db,
                event_type=ev.event_type,
                issue_id=issue.id,
                recipient_id=ev.recipient_id,
                payload=ev.payload,
            )
        return issue

    def get_issue(self, db: Session, *, issue_id: uuid.UUID) -> Issue:
        issue = db.get(Issue, issue_id)
        if issue is None:
            raise NotFound("Issue not found.", details={"issue_id": str(issue_id)})
        return issue

    def list_issues(
        self,
        db: Session,
        *,
        stage: Optional[str] = None,
        area_id: Optional[uuid.UUID] = None,
        department_id: Optional[uuid.UUID] = None,
        assignee_id: Optional[uuid.UUID] = None,
        reporter_id: Optional[uuid.UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Issue]:
        stmt = select(Issue)
        if stage is not None:
            stmt = stmt.where(Issue.workflow_stage == _parse_enum(WorkflowStage, stage, "stage").value)
        if area_id is not None:
            stmt = stmt.where(Issue.assigned_area_id == area_id)
        if department_id is not None:
            stmt = stmt.where(Issue.assigned_department_id == department_id)
        if assignee_id is not None:
            stmt = stmt.where(Issue.current_assignee_id == assignee_id)
        if reporter_id is not None:
            stmt = stmt.where(Issue.reporter_id == reporter_id)

        stmt = stmt.order_by(Issue.created_at.desc()).limit(limit).offset(offset)
        return db.execute(stmt).scalars().all()
