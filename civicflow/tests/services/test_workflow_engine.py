import uuid

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from civicflow.core.errors import (
    ConflictError,
    InvalidTransition,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from civicflow.core.workflow_graph import ALLOWED_TRANSITIONS, TransitionEvent
from civicflow.models.assignment import IssueAssignment
from civicflow.models.audit_log import AuditLog
from civicflow.models.department import Department
from civicflow.models.enums import (
    AssignmentStatus,
    AssignmentType,
    UserType,
    WorkflowStage,
)
from civicflow.models.issue import Issue
from civicflow.models.profile import Profile
from civicflow.models.workflow_event import WorkflowEvent
from civicflow.services.assignment_ledger import AssignmentLedger
from civicflow.services.audit_service import AuditService
from civicflow.services.work_progress_service import WorkProgressTracker
from civicflow.services.workflow_engine import WorkflowEngine


def _active_count(db, issue_id):
    return (
        db.query(IssueAssignment)
        .filter(
            IssueAssignment.issue_id == issue_id,
            IssueAssignment.status == AssignmentStatus.active.value,
        )
        .count()
    )


def _second_cp_admin(db, world):
    """An area admin posted to Connaught Place who is not its designated super admin."""
    profile = Profile(
        username="cp_admin_two",
        password_hash="!",
        full_name="CP Admin Two",
        user_type=UserType.area_super_admin.value,
        assigned_area_id=world.cp.id,
        is_verified=True,
    )
    db.add(profile)
    db.commit()
    return profile


# ─────────────────────────────────────────────
# ROUTING / TRIAGE
# ─────────────────────────────────────────────


def test_karol_bagh_report_is_routed_to_its_area_admin(db, world, make_issue):
    issue = make_issue(area="Karol Bagh")

    assert issue.workflow_stage == WorkflowStage.area_review.value
    assert issue.current_assignee_id == world.kb_admin.id
    assert issue.assigned_area_id == world.kb.id

    entries = AssignmentLedger().list_for_issue(db, issue_id=issue.id)
    assert len(entries) == 1
    assert entries[0].assignment_type == AssignmentType.area_admin.value
    assert entries[0].assigned_to == world.kb_admin.id
    assert entries[0].assigned_by == world.citizen.id
    assert entries[0].assignment_notes == "Auto-assigned based on location"


def test_unknown_area_stays_reported(db, world, make_issue):
    issue = make_issue(area="Nonexistent Place")

    assert issue.workflow_stage == WorkflowStage.reported.value
    assert issue.current_assignee_id is None
    assert AssignmentLedger().list_for_issue(db, issue_id=issue.id) == []


def test_manual_area_assignment_from_reported(db, world, make_issue, as_principal):
    issue = make_issue(area="Nonexistent Place")

    result = WorkflowEngine().assign_area(
        db, issue_id=issue.id, principal=as_principal(world.admin), area_id=world.cp.id
    )

    assert result.to_stage == WorkflowStage.area_review
    assert result.issue.current_assignee_id == world.cp_admin.id
    assert result.issue.assigned_area_id == world.cp.id


def test_area_admin_may_claim_an_issue_for_own_area_only(db, world, make_issue, as_principal):
    issue = make_issue(area="Nonexistent Place")
    engine = WorkflowEngine()

    with pytest.raises(NotAuthorized):
        engine.assign_area(db, issue_id=issue.id, principal=as_principal(world.kb_admin), area_id=world.cp.id)

    result = engine.assign_area(db, issue_id=issue.id, principal=as_principal(world.kb_admin), area_id=world.kb.id)
    assert result.issue.current_assignee_id == world.kb_admin.id


def test_only_the_designated_area_admin_may_claim(db, world, make_issue, as_principal):
    deputy = _second_cp_admin(db, world)
    issue = make_issue(area="Nonexistent Place")

    with pytest.raises(NotAuthorized):
        WorkflowEngine().assign_area(db, issue_id=issue.id, principal=as_principal(deputy), area_id=world.cp.id)

    db.refresh(issue)
    assert issue.workflow_stage == WorkflowStage.reported.value


def test_manual_assignment_to_unstaffed_area_fails(db, world, make_issue, as_principal):
    issue = make_issue(area="Nonexistent Place")

    with pytest.raises(ValidationError):
        WorkflowEngine().assign_area(
            db, issue_id=issue.id, principal=as_principal(world.admin), area_id=world.dwarka.id
        )
    db.refresh(issue)
    assert issue.workflow_stage == WorkflowStage.reported.value


# ─────────────────────────────────────────────
# DEPARTMENT ASSIGNMENT
# ─────────────────────────────────────────────


def test_department_assignment_hands_issue_to_department_admin(db, world, make_issue, as_principal):
    issue = make_issue()

    result = WorkflowEngine().assign_department(
        db, issue_id=issue.id, principal=as_principal(world.cp_admin), department_id=world.pwd.id
    )

    assert result.issue.workflow_stage == WorkflowStage.department_assigned.value
    assert result.issue.assigned_department_id == world.pwd.id
    assert result.issue.current_assignee_id == world.pwd_admin.id
    assert result.assignment.assignment_type == AssignmentType.department_admin.value
    assert _active_count(db, issue.id) == 1


def test_only_the_issue_area_admin_or_global_admin_assigns_department(db, world, make_issue, as_principal):
    issue = make_issue()
    engine = WorkflowEngine()

    for outsider in (world.kb_admin, world.pwd_admin, world.contractor, world.citizen):
        with pytest.raises(NotAuthorized):
            engine.assign_department(
                db, issue_id=issue.id, principal=as_principal(outsider), department_id=world.pwd.id
            )

    result = engine.assign_department(
        db, issue_id=issue.id, principal=as_principal(world.admin), department_id=world.pwd.id
    )
    assert result.to_stage == WorkflowStage.department_assigned


def test_explicit_department_admin_must_belong_to_department(db, world, make_issue, as_principal):
    issue = make_issue()

    with pytest.raises(ValidationError):
        WorkflowEngine().assign_department(
            db,
            issue_id=issue.id,
            principal=as_principal(world.cp_admin),
            department_id=world.pwd.id,
            department_admin_id=world.djb_admin.id,
        )


def test_department_without_admin_cannot_take_issues(db, world, make_issue, as_principal):
    empty = Department(name="Planning Cell", code="PLN", category="planning")
    db.add(empty)
    db.commit()
    issue = make_issue()

    with pytest.raises(ValidationError):
        WorkflowEngine().assign_department(
            db, issue_id=issue.id, principal=as_principal(world.cp_admin), department_id=empty.id
        )
    db.refresh(issue)
    assert issue.workflow_stage == WorkflowStage.area_review.value
    assert _active_count(db, issue.id) == 1


def test_unknown_department_is_not_found(db, world, make_issue, as_principal):
    issue = make_issue()
    with pytest.raises(NotFound):
        WorkflowEngine().assign_department(
            db, issue_id=issue.id, principal=as_principal(world.cp_admin), department_id=uuid.uuid4()
        )


# ─────────────────────────────────────────────
# TRANSITION TABLE
# ─────────────────────────────────────────────

ILLEGAL = [
    (stage, event)
    for stage in WorkflowStage
    for event in TransitionEvent
    if (stage, event) not in ALLOWED_TRANSITIONS
]


@pytest.mark.parametrize("stage,event", ILLEGAL, ids=[f"{s.value}-{e.value}" for s, e in ILLEGAL])
def test_edges_outside_the_table_are_invalid(db, world, make_issue, as_principal, stage, event):
    issue = make_issue()
    issue.workflow_stage = stage.value
    db.commit()

    with pytest.raises(InvalidTransition):
        WorkflowEngine().apply_transition(
            db, issue_id=issue.id, event=event, principal=as_principal(world.admin)
        )

    db.refresh(issue)
    assert issue.workflow_stage == stage.value


def test_missing_issue_is_not_found(db, world, as_principal):
    with pytest.raises(NotFound):
        WorkflowEngine().start_work(db, issue_id=uuid.uuid4(), principal=as_principal(world.admin))


def test_inactive_actor_cannot_act(db, world, make_issue, as_principal):
    issue = make_issue()
    world.cp_admin.is_active = False
    db.commit()

    with pytest.raises(NotAuthorized):
        WorkflowEngine().assign_department(
            db, issue_id=issue.id, principal=as_principal(world.cp_admin), department_id=world.pwd.id
        )


# ─────────────────────────────────────────────
# CONCURRENCY
# ─────────────────────────────────────────────


def test_stale_expected_version_is_a_conflict(db, world, make_issue, as_principal):
    issue = make_issue()
    stale = issue.version

    WorkflowEngine().assign_department(
        db, issue_id=issue.id, principal=as_principal(world.cp_admin), department_id=world.pwd.id
    )

    with pytest.raises(ConflictError):
        WorkflowEngine().start_work(
            db, issue_id=issue.id, principal=as_principal(world.pwd_admin), expected_version=stale
        )
    db.refresh(issue)
    assert issue.workflow_stage == WorkflowStage.department_assigned.value


def test_concurrent_writer_surfaces_as_conflict(db, world, make_issue, as_principal, monkeypatch):
    issue = make_issue()
    before_version = issue.version
    real_write = AuditService.write

    def racing_write(self, db_, **kw):
        # another transaction bumps the row after our read
        db_.execute(text("UPDATE issues SET version = version + 1 WHERE id = :id"), {"id": issue.id.hex})
        return real_write(self, db_, **kw)

    monkeypatch.setattr(AuditService, "write", racing_write)

    with pytest.raises(ConflictError):
        WorkflowEngine().assign_department(
            db, issue_id=issue.id, principal=as_principal(world.cp_admin), department_id=world.pwd.id
        )

    db.expire_all()
    fresh = db.get(Issue, issue.id)
    assert fresh.workflow_stage == WorkflowStage.area_review.value
    assert fresh.version == before_version
    assert _active_count(db, issue.id) == 1


# ─────────────────────────────────────────────
# END TO END
# ─────────────────────────────────────────────


def test_full_pipeline_resolves_and_completes_assignment(db, world, make_issue, as_principal, advance):
    issue = make_issue()
    record_id = advance(issue, "area_approval")
    assert issue.workflow_stage == WorkflowStage.area_approval.value
    assert issue.current_assignee_id == world.cp_admin.id
    assert _active_count(db, issue.id) == 1

    result = WorkProgressTracker().approve(
        db, record_id=record_id, principal=as_principal(world.cp_admin), notes="Looks good", quality_rating=5
    )

    resolved = result.issue
    assert resolved.workflow_stage == WorkflowStage.resolved.value
    assert resolved.status == "resolved"
    assert resolved.resolved_at is not None
    assert resolved.final_resolution_notes == result.record.description
    assert resolved.final_resolution_images == result.record.after_images

    ledger = AssignmentLedger()
    assert _active_count(db, issue.id) == 0
    assert ledger.list_for_issue(db, issue_id=issue.id)[0].status == AssignmentStatus.completed.value
    assert ledger.verify_chain(db, issue_id=issue.id) is True

    actions = [row.action for row in db.query(AuditLog).filter(AuditLog.issue_id == issue.id)]
    for expected in (
        "issue_created",
        "auto_assign_area",
        "assign_department",
        "award_contractor",
        "start_work",
        "submit_completion",
        "forward_for_area_approval",
        "approve_completion",
    ):
        assert expected in actions


def test_department_admin_can_start_work_without_contractor(db, world, make_issue, as_principal, advance):
    issue = make_issue()
    advance(issue, "department_assigned")

    result = WorkflowEngine().start_work(db, issue_id=issue.id, principal=as_principal(world.pwd_admin))

    assert result.issue.workflow_stage == WorkflowStage.in_progress.value
    assert result.issue.status == "in_progress"


def test_outsiders_cannot_start_work(db, world, make_issue, as_principal, advance):
    issue = make_issue()
    advance(issue, "contractor_assigned")

    with pytest.raises(NotAuthorized):
        WorkflowEngine().start_work(db, issue_id=issue.id, principal=as_principal(world.contractor2))


def test_outbox_failure_keeps_the_transition(db, world, make_issue, as_principal, monkeypatch):
    issue = make_issue()
    real_add = db.add

    def failing_add(obj, *a, **kw):
        if isinstance(obj, WorkflowEvent):
            raise SQLAlchemyError("outbox unavailable")
        return real_add(obj, *a, **kw)

    monkeypatch.setattr(db, "add", failing_add)

    result = WorkflowEngine().assign_department(
        db, issue_id=issue.id, principal=as_principal(world.cp_admin), department_id=world.pwd.id
    )
    monkeypatch.undo()

    db.expire_all()
    assert db.get(Issue, result.issue.id).workflow_stage == WorkflowStage.department_assigned.value
    assert (
        db.query(WorkflowEvent)
        .filter(WorkflowEvent.issue_id == issue.id, WorkflowEvent.event_type == "issue_assigned")
        .count()
        == 1  # only the intake routing event
    )


# ─────────────────────────────────────────────
# REASSIGNMENT
# ─────────────────────────────────────────────


def test_assigner_can_hand_department_work_to_a_colleague(db, world, make_issue, as_principal, advance):
    colleague = Profile(
        username="pwd_admin_two",
        password_hash="!",
        full_name="PWD Admin Two",
        user_type=UserType.department_admin.value,
        assigned_department_id=world.pwd.id,
        is_verified=True,
    )
    db.add(colleague)
    db.commit()
    issue = make_issue()
    advance(issue, "department_assigned")

    result = WorkflowEngine().reassign(
        db, issue_id=issue.id, principal=as_principal(world.cp_admin), new_assignee_id=colleague.id
    )

    assert result.to_stage == WorkflowStage.department_assigned
    assert result.issue.current_assignee_id == colleague.id
    assert _active_count(db, issue.id) == 1
    statuses = [e.status for e in AssignmentLedger().list_for_issue(db, issue_id=issue.id)]
    assert statuses == ["active", "reassigned", "reassigned"]


def test_reassignment_rules(db, world, make_issue, as_principal, advance):
    issue = make_issue()
    advance(issue, "department_assigned")
    engine = WorkflowEngine()

    # another department's admin does not qualify
    with pytest.raises(ValidationError):
        engine.reassign(db, issue_id=issue.id, principal=as_principal(world.cp_admin), new_assignee_id=world.djb_admin.id)

    # same person
    with pytest.raises(ValidationError):
        engine.reassign(db, issue_id=issue.id, principal=as_principal(world.cp_admin), new_assignee_id=world.pwd_admin.id)

    # only the assigner or a global admin
    with pytest.raises(NotAuthorized):
        engine.reassign(db, issue_id=issue.id, principal=as_principal(world.kb_admin), new_assignee_id=world.pwd_admin.id)


def test_reporter_cannot_reassign_a_routed_issue(db, world, make_issue, as_principal):
    deputy = _second_cp_admin(db, world)
    issue = make_issue()  # intake records the citizen as assigner

    with pytest.raises(NotAuthorized):
        WorkflowEngine().reassign(
            db, issue_id=issue.id, principal=as_principal(world.citizen), new_assignee_id=deputy.id
        )

    db.refresh(issue)
    assert issue.current_assignee_id == world.cp_admin.id
    assert _active_count(db, issue.id) == 1


def test_reassigned_area_admin_can_assign_department(db, world, make_issue, as_principal):
    deputy = _second_cp_admin(db, world)
    issue = make_issue()
    engine = WorkflowEngine()

    engine.reassign(db, issue_id=issue.id, principal=as_principal(world.admin), new_assignee_id=deputy.id)
    result = engine.assign_department(
        db, issue_id=issue.id, principal=as_principal(deputy), department_id=world.pwd.id
    )

    assert result.to_stage == WorkflowStage.department_assigned
    assert result.issue.current_assignee_id == world.pwd_admin.id


def test_resolved_issue_cannot_be_reassigned(db, world, make_issue, as_principal, advance):
    issue = make_issue()
    record_id = advance(issue, "department_review")
    WorkProgressTracker().approve(db, record_id=record_id, principal=as_principal(world.pwd_admin))

    with pytest.raises(InvalidTransition):
        WorkflowEngine().reassign(
            db, issue_id=issue.id, principal=as_principal(world.admin), new_assignee_id=world.contractor2.id
        )
