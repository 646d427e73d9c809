# civicflow/services/workflow_engine.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from civicflow.core.config import get_settings
from civicflow.core.errors import (
    ConflictError,
    InvalidTransition,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from civicflow.core.workflow_graph import (
    REASSIGNABLE_STAGES,
    STAGE_STATUS,
    TransitionEvent,
    next_stage,
)
from civicflow.models.assignment import IssueAssignment
from civicflow.models.department import Department
from civicflow.models.enums import (
    AssignmentType,
    BidStatus,
    EventType,
    TenderStatus,
    UserType,
    WorkflowStage,
    WorkProgressStatus,
)
from civicflow.models.issue import Issue
from civicflow.models.location import AdministrativeArea
from civicflow.models.profile import Profile
from civicflow.models.tender import Tender, TenderBid
from civicflow.models.work_progress import WorkProgressRecord
from civicflow.policies.rbac import Principal
from civicflow.policies.workflow_policy import (
    TransitionContext,
    authorize_reassign,
    authorize_transition,
)
from civicflow.services.assignment_ledger import AssignmentLedger
from civicflow.services.assignment_resolver import AreaResolution
from civicflow.services.audit_service import AuditAction, AuditService
from civicflow.services.event_service import EventOutbox
from civicflow.services.profile_service import (
    find_department_admin,
    require_actor,
    require_profile_of_type,
)

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


# assignee user type each hand-off kind must go to
ASSIGNEE_TYPE: Dict[AssignmentType, UserType] = {
    AssignmentType.area_admin: UserType.area_super_admin,
    AssignmentType.department_admin: UserType.department_admin,
    AssignmentType.contractor: UserType.contractor,
}

OPEN_RECORD_STATES = {
    WorkProgressStatus.submitted.value,
    WorkProgressStatus.under_review.value,
}


@dataclass(frozen=True)
class CompletionEvidence:
    title: str
    description: str
    after_images: List[str]
    before_images: List[str] = field(default_factory=list)
    materials_used: List[str] = field(default_factory=list)
    cost_breakdown: Optional[Dict[str, Any]] = None
    work_details: Dict[str, Any] = field(default_factory=dict)
    completion_date: Optional[date] = None


@dataclass
class PendingEvent:
    event_type: EventType
    recipient_id: Optional[uuid.UUID]
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TransitionOutcome:
    assignment: Optional[IssueAssignment] = None
    record: Optional[WorkProgressRecord] = None
    events: List[PendingEvent] = field(default_factory=list)


@dataclass
class TransitionResult:
    issue: Issue
    from_stage: WorkflowStage
    to_stage: WorkflowStage
    assignment: Optional[IssueAssignment] = None
    record: Optional[WorkProgressRecord] = None


class WorkflowEngine:
    """
    Single authority over an issue's `workflow_stage` and `current_assignee_id`.

    Every transition:
    - locks the issue row (FOR UPDATE) and re-reads it
    - rejects stale `expected_version` reads (ConflictError)
    - checks the edge exists (InvalidTransition) and the actor may take it (NotAuthorized)
    - applies the side effect, the stage change and the audit row in ONE commit
    - publishes notification events afterwards, best-effort
    """

    def __init__(
        self,
        ledger: Optional[AssignmentLedger] = None,
        outbox: Optional[EventOutbox] = None,
        audit: Optional[AuditService] = None,
    ):
        self.ledger = ledger or AssignmentLedger()
        self.outbox = outbox or EventOutbox()
        self.audit = audit or AuditService()
        self._handlers: Dict[TransitionEvent, Callable[..., TransitionOutcome]] = {
            TransitionEvent.AUTO_ASSIGN_AREA: self._on_auto_assign_area,
            TransitionEvent.ASSIGN_AREA: self._on_assign_area,
            TransitionEvent.ASSIGN_DEPARTMENT: self._on_assign_department,
            TransitionEvent.AWARD_CONTRACTOR: self._on_award_contractor,
            TransitionEvent.START_WORK: self._on_start_work,
            TransitionEvent.SUBMIT_COMPLETION: self._on_submit_completion,
            TransitionEvent.FORWARD_FOR_AREA_APPROVAL: self._on_forward_for_area_approval,
            TransitionEvent.APPROVE_COMPLETION: self._on_approve_completion,
            TransitionEvent.REJECT_COMPLETION: self._on_reject_completion,
        }

    # ─────────────────────────────────────────────
    # INTERNAL READ HELPERS
    # ─────────────────────────────────────────────

    def _lock_issue(self, db: Session, issue_id: uuid.UUID) -> Issue:
        issue = db.execute(
            select(Issue)
            .where(Issue.id == issue_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if issue is None:
            raise NotFound("Issue not found.", details={"issue_id": str(issue_id)})
        return issue

    def _context(
        self,
        db: Session,
        issue: Issue,
        actor: Profile,
        target_area_id: Optional[uuid.UUID] = None,
    ) -> TransitionContext:
        issue_area = (
            db.get(AdministrativeArea, issue.assigned_area_id)
            if issue.assigned_area_id
            else None
        )
        target_area = None
        if target_area_id is not None:
            target_area = db.get(AdministrativeArea, target_area_id)
            if target_area is None:
                raise NotFound("Area not found.", details={"area_id": str(target_area_id)})
        return TransitionContext(
            actor=actor,
            issue=issue,
            issue_area=issue_area,
            active_assignment=self.ledger.get_active(db, issue_id=issue.id),
            target_area=target_area,
        )

    def _open_record(self, db: Session, issue: Issue, record_id: uuid.UUID) -> WorkProgressRecord:
        record = db.execute(
            select(WorkProgressRecord)
            .where(WorkProgressRecord.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None or record.issue_id != issue.id:
            raise NotFound("Work progress record not found.", details={"record_id": str(record_id)})
        if record.status not in OPEN_RECORD_STATES:
            raise InvalidTransition(
                f"Work progress record is already {record.status}.",
                details={"record_id": str(record_id), "status": record.status},
            )
        return record

    @staticmethod
    def _check_version(issue: Issue, expected_version: Optional[int]) -> None:
        if expected_version is not None and issue.version != expected_version:
            raise ConflictError(
                "Issue was modified by another request.",
                details={"expected_version": expected_version, "current_version": issue.version},
            )

    # ─────────────────────────────────────────────
    # CORE TRANSITION
    # ─────────────────────────────────────────────

    def apply_transition(
        self,
        db: Session,
        *,
        issue_id: uuid.UUID,
        event: TransitionEvent,
        principal: Principal,
        params: Optional[Dict[str, Any]] = None,
        expected_version: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> TransitionResult:
        """
        Apply one workflow event to an issue.

        Changes the caller staged in `db` before calling (e.g. a tender award)
        commit or roll back together with the transition.
        """
        params = params or {}

        try:
            issue = self._lock_issue(db, issue_id)
            self._check_version(issue, expected_version)

            current = WorkflowStage(issue.workflow_stage)
            target = next_stage(current, event)
            if target is None:
                raise InvalidTransition(
                    f"Cannot {event.value} an issue in stage {current.value}.",
                    details={"stage": current.value, "event": event.value},
                )

            actor = require_actor(db, principal)
            ctx = self._context(db, issue, actor, target_area_id=params.get("area_id"))
            authorize_transition(event, ctx)

            outcome = self._handlers[event](db, ctx, params)

            issue.workflow_stage = target.value
            issue.status = STAGE_STATUS[target].value

            self.audit.write(
                db,
                issue_id=issue.id,
                actor_profile_id=actor.id,
                actor_role=actor.user_type,
                action=event.value,
                request_id=request_id,
                from_stage=current.value,
                to_stage=target.value,
                details=self._audit_details(outcome, params),
            )
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise ConflictError("Issue was modified by another request.") from e
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("Concurrent assignment change detected.") from e
        except Exception:
            db.rollback()
            raise

        db.refresh(issue)
        logger.info(
            "transition applied",
            extra={
                "issue_id": str(issue.id),
                "event": event.value,
                "from_stage": current.value,
                "to_stage": target.value,
                "actor_id": str(actor.id),
            },
        )
        self._publish(db, issue.id, outcome.events)

        return TransitionResult(
            issue=issue,
            from_stage=current,
            to_stage=target,
            assignment=outcome.assignment,
            record=outcome.record,
        )

    def route_new_issue(
        self,
        db: Session,
        *,
        issue: Issue,
        resolution: Optional[AreaResolution],
        request_id: Optional[str] = None,
    ) -> List[PendingEvent]:
        """
        Intake routing inside the caller's (uncommitted) creation transaction.
        With no resolution the issue simply stays `reported` for manual triage.
        """
        if resolution is None:
            return []

        reporter = db.get(Profile, issue.reporter_id)
        ctx = TransitionContext(
            actor=reporter,
            issue=issue,
            issue_area=None,
            active_assignment=None,
        )
        authorize_transition(TransitionEvent.AUTO_ASSIGN_AREA, ctx)
        outcome = self._on_auto_assign_area(db, ctx, {"resolution": resolution})

        target = next_stage(WorkflowStage(issue.workflow_stage), TransitionEvent.AUTO_ASSIGN_AREA)
        issue.workflow_stage = target.value
        issue.status = STAGE_STATUS[target].value

        self.audit.write(
            db,
            issue_id=issue.id,
            actor_profile_id=issue.reporter_id,
            actor_role=reporter.user_type if reporter else None,
            action=TransitionEvent.AUTO_ASSIGN_AREA.value,
            request_id=request_id,
            from_stage=WorkflowStage.reported.value,
            to_stage=target.value,
            details=self._audit_details(outcome, {"area_id": resolution.area.id}),
        )
        return outcome.events

    def reassign(
        self,
        db: Session,
        *,
        issue_id: uuid.UUID,
        principal: Principal,
        new_assignee_id: uuid.UUID,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> TransitionResult:
        """Hand the active assignment to someone else of the same kind; stage unchanged."""
        try:
            issue = self._lock_issue(db, issue_id)
            self._check_version(issue, expected_version)

            stage = WorkflowStage(issue.workflow_stage)
            if stage not in REASSIGNABLE_STAGES:
                raise InvalidTransition(
                    f"Cannot reassign an issue in stage {stage.value}.",
                    details={"stage": stage.value},
                )

            actor = require_actor(db, principal)
            ctx = self._context(db, issue, actor)
            active = ctx.active_assignment
            if active is None:
                raise InvalidTransition("Issue has no active assignment to reassign.")
            authorize_reassign(ctx)

            kind = AssignmentType(active.assignment_type)
            assignee = require_profile_of_type(db, new_assignee_id, ASSIGNEE_TYPE[kind])
            if assignee.id == active.assigned_to:
                raise ValidationError("Issue is already assigned to this profile.")
            if kind == AssignmentType.area_admin and assignee.assigned_area_id != issue.assigned_area_id:
                raise ValidationError("New area admin does not administer the issue's area.")
            if (
                kind == AssignmentType.department_admin
                and assignee.assigned_department_id != issue.assigned_department_id
            ):
                raise ValidationError("New department admin does not belong to the issue's department.")

            assignment = self.ledger.record_assignment(
                db,
                issue_id=issue.id,
                assigned_by=actor.id,
                assigned_to=assignee.id,
                assignment_type=kind,
                notes=notes,
            )
            issue.current_assignee_id = assignee.id

            self.audit.write(
                db,
                issue_id=issue.id,
                actor_profile_id=actor.id,
                actor_role=actor.user_type,
                action=AuditAction.ISSUE_REASSIGNED,
                request_id=request_id,
                from_stage=stage.value,
                to_stage=stage.value,
                details={
                    "assignment_id": str(assignment.id),
                    "previous_assignee": str(active.assigned_to),
                    "assignee": str(assignee.id),
                },
            )
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise ConflictError("Issue was modified by another request.") from e
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("Concurrent assignment change detected.") from e
        except Exception:
            db.rollback()
            raise

        db.refresh(issue)
        logger.info(
            "issue reassigned",
            extra={"issue_id": str(issue.id), "assignee_id": str(assignee.id), "actor_id": str(actor.id)},
        )
        self._publish(
            db,
            issue.id,
            [
                PendingEvent(
                    EventType.issue_assigned,
                    assignee.id,
                    {"assignment_type": kind.value, "reassigned": True},
                )
            ],
        )
        return TransitionResult(issue=issue, from_stage=stage, to_stage=stage, assignment=assignment)

    # ─────────────────────────────────────────────
    # NAMED OPERATIONS
    # ─────────────────────────────────────────────

    def assign_area(self, db: Session, *, issue_id, principal, area_id, notes=None, **kw) -> TransitionResult:
        return self.apply_transition(
            db, issue_id=issue_id, event=TransitionEvent.ASSIGN_AREA, principal=principal,
            params={"area_id": area_id, "notes": notes}, **kw,
        )

    def assign_department(
        self, db: Session, *, issue_id, principal, department_id, department_admin_id=None, notes=None, **kw
    ) -> TransitionResult:
        return self.apply_transition(
            db, issue_id=issue_id, event=TransitionEvent.ASSIGN_DEPARTMENT, principal=principal,
            params={
                "department_id": department_id,
                "department_admin_id": department_admin_id,
                "notes": notes,
            },
            **kw,
        )

    def award_contractor(
        self, db: Session, *, issue_id, principal, contractor_id, tender_id=None, notes=None, **kw
    ) -> TransitionResult:
        return self.apply_transition(
            db, issue_id=issue_id, event=TransitionEvent.AWARD_CONTRACTOR, principal=principal,
            params={
                "contractor_id": contractor_id,
                "tender_id": str(tender_id) if tender_id else None,
                "notes": notes,
            },
            **kw,
        )

    def start_work(self, db: Session, *, issue_id, principal, notes=None, **kw) -> TransitionResult:
        return self.apply_transition(
            db, issue_id=issue_id, event=TransitionEvent.START_WORK, principal=principal,
            params={"notes": notes}, **kw,
        )

    # ─────────────────────────────────────────────
    # SIDE-EFFECT HANDLERS
    # ─────────────────────────────────────────────

    def _on_auto_assign_area(self, db: Session, ctx: TransitionContext, params) -> TransitionOutcome:
        resolution: AreaResolution = params["resolution"]
        issue = ctx.issue

        issue.assigned_area_id = resolution.area.id
        issue.current_assignee_id = resolution.admin_id

        assignment = self.ledger.record_assignment(
            db,
            issue_id=issue.id,
            assigned_by=issue.reporter_id,
            assigned_to=resolution.admin_id,
            assignment_type=AssignmentType.area_admin,
            notes=get_settings().auto_assign_notes,
        )
        return TransitionOutcome(
            assignment=assignment,
            events=[
                PendingEvent(
                    EventType.issue_assigned,
                    resolution.admin_id,
                    {"assignment_type": AssignmentType.area_admin.value, "area_id": str(resolution.area.id)},
                )
            ],
        )

    def _on_assign_area(self, db: Session, ctx: TransitionContext, params) -> TransitionOutcome:
        area = ctx.target_area
        if area is None:
            raise ValidationError("area_id is required.")
        if not area.is_active:
            raise ValidationError("Area is not active.")
        if area.area_super_admin_id is None:
            raise ValidationError("Area has no admin to assign the issue to.")

        issue = ctx.issue
        issue.assigned_area_id = area.id
        issue.current_assignee_id = area.area_super_admin_id

        assignment = self.ledger.record_assignment(
            db,
            issue_id=issue.id,
            assigned_by=ctx.actor.id,
            assigned_to=area.area_super_admin_id,
            assignment_type=AssignmentType.area_admin,
            notes=params.get("notes"),
        )
        return TransitionOutcome(
            assignment=assignment,
            events=[
                PendingEvent(
                    EventType.issue_assigned,
                    area.area_super_admin_id,
                    {"assignment_type": AssignmentType.area_admin.value, "area_id": str(area.id)},
                )
            ],
        )

    def _on_assign_department(self, db: Session, ctx: TransitionContext, params) -> TransitionOutcome:
        department_id = params.get("department_id")
        if department_id is None:
            raise ValidationError("department_id is required.")
        department = db.get(Department, department_id)
        if department is None:
            raise NotFound("Department not found.", details={"department_id": str(department_id)})
        if not department.is_active:
            raise ValidationError("Department is not active.")

        admin_id = params.get("department_admin_id")
        if admin_id is not None:
            admin = require_profile_of_type(db, admin_id, UserType.department_admin)
            if admin.assigned_department_id != department.id:
                raise ValidationError("Department admin does not belong to this department.")
        else:
            admin = find_department_admin(db, department.id)
            if admin is None:
                raise ValidationError("No department admin found for this department.")

        issue = ctx.issue
        issue.assigned_department_id = department.id
        issue.current_assignee_id = admin.id

        assignment = self.ledger.record_assignment(
            db,
            issue_id=issue.id,
            assigned_by=ctx.actor.id,
            assigned_to=admin.id,
            assignment_type=AssignmentType.department_admin,
            notes=params.get("notes"),
        )
        return TransitionOutcome(
            assignment=assignment,
            events=[
                PendingEvent(
                    EventType.issue_assigned,
                    admin.id,
                    {
                        "assignment_type": AssignmentType.department_admin.value,
                        "department_id": str(department.id),
                    },
                )
            ],
        )

    def _on_award_contractor(self, db: Session, ctx: TransitionContext, params) -> TransitionOutcome:
        contractor_id = params.get("contractor_id")
        if contractor_id is None:
            raise ValidationError("contractor_id is required.")
        contractor = require_profile_of_type(db, contractor_id, UserType.contractor)

        issue = ctx.issue
        issue.current_assignee_id = contractor.id
        self._close_open_tenders(db, issue.id, keep_tender_id=params.get("tender_id"))

        assignment = self.ledger.record_assignment(
            db,
            issue_id=issue.id,
            assigned_by=ctx.actor.id,
            assigned_to=contractor.id,
            assignment_type=AssignmentType.contractor,
            notes=params.get("notes"),
        )
        return TransitionOutcome(
            assignment=assignment,
            events=[
                PendingEvent(
                    EventType.issue_assigned,
                    contractor.id,
                    {"assignment_type": AssignmentType.contractor.value, "tender_id": params.get("tender_id")},
                )
            ],
        )

    def _on_start_work(self, db: Session, ctx: TransitionContext, params) -> TransitionOutcome:
        self._close_open_tenders(db, ctx.issue.id)
        return TransitionOutcome()

    def _on_submit_completion(self, db: Session, ctx: TransitionContext, params) -> TransitionOutcome:
        evidence: CompletionEvidence = params["evidence"]
        active = ctx.active_assignment

        record = WorkProgressRecord(
            issue_id=ctx.issue.id,
            assignment_id=active.id if active else None,
            submitted_by=ctx.actor.id,
            title=evidence.title,
            description=evidence.description,
            before_images=list(evidence.before_images),
            after_images=list(evidence.after_images),
            materials_used=list(evidence.materials_used),
            cost_breakdown=evidence.cost_breakdown,
            work_details=dict(evidence.work_details),
            completion_date=evidence.completion_date or _now().date(),
            status=WorkProgressStatus.submitted.value,
        )
        db.add(record)
        db.flush()

        return TransitionOutcome(
            record=record,
            events=[
                PendingEvent(
                    EventType.work_submitted,
                    active.assigned_by if active else None,
                    {"record_id": str(record.id)},
                )
            ],
        )

    def _reviewable_record(self, db: Session, ctx: TransitionContext, params) -> WorkProgressRecord:
        record_id = params.get("record_id")
        if record_id is None:
            raise ValidationError("record_id is required.")
        record = self._open_record(db, ctx.issue, record_id)
        if record.submitted_by == ctx.actor.id:
            raise NotAuthorized("Reviewers cannot review their own submission.")
        return record

    def _on_forward_for_area_approval(self, db: Session, ctx: TransitionContext, params) -> TransitionOutcome:
        record = self._reviewable_record(db, ctx, params)
        record.status = WorkProgressStatus.under_review.value

        area = ctx.issue_area
        if area is not None and area.area_super_admin_id is not None:
            ctx.issue.current_assignee_id = area.area_super_admin_id
        return TransitionOutcome(record=record)

    def _on_approve_completion(self, db: Session, ctx: TransitionContext, params) -> TransitionOutcome:
        record = self._reviewable_record(db, ctx, params)

        rating = params.get("quality_rating")
        if rating is not None and not 1 <= int(rating) <= 5:
            raise ValidationError("quality_rating must be between 1 and 5.")

        now = _now()
        record.status = WorkProgressStatus.approved.value
        record.reviewed_by = ctx.actor.id
        record.review_notes = params.get("notes")
        record.reviewed_at = now
        record.quality_rating = rating

        issue = ctx.issue
        issue.resolved_at = now
        issue.final_resolution_notes = record.description
        issue.final_resolution_images = list(record.after_images)

        completed = self.ledger.complete_active(db, issue_id=issue.id)
        return TransitionOutcome(
            assignment=completed,
            record=record,
            events=[
                PendingEvent(
                    EventType.issue_resolved,
                    issue.reporter_id,
                    {"record_id": str(record.id)},
                )
            ],
        )

    def _on_reject_completion(self, db: Session, ctx: TransitionContext, params) -> TransitionOutcome:
        record = self._reviewable_record(db, ctx, params)

        record.status = WorkProgressStatus.rejected.value
        record.reviewed_by = ctx.actor.id
        record.review_notes = params.get("notes")
        record.reviewed_at = _now()

        # rework goes to whoever holds the active assignment
        active = ctx.active_assignment
        rework_by = active.assigned_to if active is not None else record.submitted_by
        ctx.issue.current_assignee_id = rework_by
        return TransitionOutcome(
            record=record,
            events=[
                PendingEvent(
                    EventType.work_rejected,
                    rework_by,
                    {"record_id": str(record.id), "notes": params.get("notes")},
                )
            ],
        )

    # ─────────────────────────────────────────────
    # HELPERS
    # ─────────────────────────────────────────────

    @staticmethod
    def _close_open_tenders(db: Session, issue_id: uuid.UUID, keep_tender_id=None) -> None:
        # once work is placed, remaining open tenders for the issue stop taking bids
        stmt = select(Tender).where(
            Tender.source_issue_id == issue_id,
            Tender.status == TenderStatus.available.value,
        )
        if keep_tender_id is not None:
            stmt = stmt.where(Tender.id != uuid.UUID(str(keep_tender_id)))
        for tender in db.execute(stmt).scalars().all():
            tender.status = TenderStatus.cancelled.value
            pending = db.execute(
                select(TenderBid).where(
                    TenderBid.tender_id == tender.id,
                    TenderBid.status == BidStatus.pending.value,
                )
            ).scalars()
            for bid in pending:
                bid.status = BidStatus.rejected.value

    @staticmethod
    def _audit_details(outcome: TransitionOutcome, params: Dict[str, Any]) -> Dict[str, Any]:
        details: Dict[str, Any] = {}
        if outcome.assignment is not None:
            details["assignment_id"] = str(outcome.assignment.id)
            details["assigned_to"] = str(outcome.assignment.assigned_to)
        if outcome.record is not None:
            details["record_id"] = str(outcome.record.id)
        for key in ("area_id", "department_id", "contractor_id", "tender_id"):
            if params.get(key) is not None:
                details[key] = str(params[key])
        return details

    def _publish(self, db: Session, issue_id: uuid.UUID, events: List[PendingEvent]) -> None:
        for ev in events:
            self.outbox.publish(
                db,
                event_type=ev.event_type,
                issue_id=issue_id,
                recipient_id=ev.recipient_id,
                payload=ev.payload,
            )
