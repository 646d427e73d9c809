import uuid

import pytest

from civicflow.core.errors import InvalidTransition, NotAuthorized, NotFound, ValidationError
from civicflow.models.enums import WorkflowStage, WorkProgressStatus
from civicflow.models.workflow_event import WorkflowEvent
from civicflow.services.work_progress_service import WorkProgressTracker
from civicflow.services.workflow_engine import WorkflowEngine


def test_submission_without_after_images_is_rejected(db, world, make_issue, as_principal, advance, evidence):
    issue = make_issue()
    advance(issue, "in_progress")
    tracker = WorkProgressTracker()

    with pytest.raises(ValidationError):
        tracker.submit(db, issue_id=issue.id, principal=as_principal(world.contractor), evidence=evidence(after_images=[]))

    record = tracker.submit(
        db, issue_id=issue.id, principal=as_principal(world.contractor), evidence=evidence(after_images=["url1"])
    )
    db.refresh(issue)
    assert issue.workflow_stage == WorkflowStage.department_review.value
    assert record.status == WorkProgressStatus.submitted.value
    assert record.after_images == ["url1"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"after_images": ["  "]},
        {"after_images": ["ok.jpg", ""]},
        {"title": "   "},
        {"description": ""},
    ],
)
def test_blank_evidence_fields_are_rejected(db, world, make_issue, as_principal, advance, evidence, overrides):
    issue = make_issue()
    advance(issue, "in_progress")

    with pytest.raises(ValidationError):
        WorkProgressTracker().submit(
            db, issue_id=issue.id, principal=as_principal(world.contractor), evidence=evidence(**overrides)
        )
    db.refresh(issue)
    assert issue.workflow_stage == WorkflowStage.in_progress.value


def test_only_the_assignee_side_submits(db, world, make_issue, as_principal, advance, evidence):
    issue = make_issue()
    advance(issue, "in_progress")

    with pytest.raises(NotAuthorized):
        WorkProgressTracker().submit(
            db, issue_id=issue.id, principal=as_principal(world.contractor2), evidence=evidence()
        )


def test_submission_links_the_active_assignment_and_notifies_assigner(db, world, make_issue, as_principal, advance, evidence):
    issue = make_issue()
    advance(issue, "in_progress")

    record = WorkProgressTracker().submit(
        db, issue_id=issue.id, principal=as_principal(world.contractor), evidence=evidence()
    )

    assert record.assignment_id is not None
    event = (
        db.query(WorkflowEvent)
        .filter(WorkflowEvent.issue_id == issue.id, WorkflowEvent.event_type == "work_submitted")
        .one()
    )
    assert event.recipient_id == world.pwd_admin.id


def test_approve_resolves_issue(db, world, make_issue, as_principal, advance):
    issue = make_issue()
    record_id = advance(issue, "department_review")

    result = WorkProgressTracker().approve(
        db, record_id=record_id, principal=as_principal(world.pwd_admin), notes="Looks good"
    )

    assert result.issue.status == "resolved"
    assert result.record.status == WorkProgressStatus.approved.value
    assert result.record.reviewed_by == world.pwd_admin.id
    assert result.record.review_notes == "Looks good"
    assert result.issue.final_resolution_notes == result.record.description


def test_second_approval_is_refused(db, world, make_issue, as_principal, advance):
    issue = make_issue()
    record_id = advance(issue, "department_review")
    tracker = WorkProgressTracker()
    tracker.approve(db, record_id=record_id, principal=as_principal(world.pwd_admin))
    db.refresh(issue)
    resolved_at = issue.resolved_at

    with pytest.raises(InvalidTransition):
        tracker.approve(db, record_id=record_id, principal=as_principal(world.pwd_admin))

    db.refresh(issue)
    assert issue.resolved_at == resolved_at
    resolved_events = (
        db.query(WorkflowEvent)
        .filter(WorkflowEvent.issue_id == issue.id, WorkflowEvent.event_type == "issue_resolved")
        .count()
    )
    assert resolved_events == 1


def test_reject_returns_issue_to_the_submitter(db, world, make_issue, as_principal, advance, evidence):
    issue = make_issue()
    record_id = advance(issue, "department_review")
    tracker = WorkProgressTracker()

    result = tracker.reject(db, record_id=record_id, principal=as_principal(world.pwd_admin), notes="Uneven surface")

    assert result.to_stage == WorkflowStage.in_progress
    assert result.issue.current_assignee_id == world.contractor.id
    assert result.record.status == WorkProgressStatus.rejected.value

    # rejected is final for that record
    with pytest.raises(InvalidTransition):
        tracker.approve(db, record_id=record_id, principal=as_principal(world.pwd_admin))

    # the contractor reworks and resubmits
    again = tracker.submit(db, issue_id=issue.id, principal=as_principal(world.contractor), evidence=evidence())
    assert again.id != record_id
    assert [r.id for r in tracker.list_for_issue(db, issue_id=issue.id)][0] == again.id


def test_reject_of_assigner_submission_returns_work_to_the_contractor(
    db, world, make_issue, as_principal, advance, evidence
):
    issue = make_issue()
    advance(issue, "in_progress")
    tracker = WorkProgressTracker()

    # the department admin files evidence on the contractor's behalf
    record = tracker.submit(db, issue_id=issue.id, principal=as_principal(world.pwd_admin), evidence=evidence())
    result = tracker.reject(db, record_id=record.id, principal=as_principal(world.cp_admin), notes="Photos unclear")

    assert result.to_stage == WorkflowStage.in_progress
    assert result.issue.current_assignee_id == world.contractor.id

    [rejected] = (
        db.query(WorkflowEvent)
        .filter(WorkflowEvent.issue_id == issue.id, WorkflowEvent.event_type == "work_rejected")
        .all()
    )
    assert rejected.recipient_id == world.contractor.id

    again = tracker.submit(db, issue_id=issue.id, principal=as_principal(world.contractor), evidence=evidence())
    assert again.submitted_by == world.contractor.id


def test_forward_moves_review_to_area_admin(db, world, make_issue, as_principal, advance):
    issue = make_issue()
    record_id = advance(issue, "department_review")
    tracker = WorkProgressTracker()

    # area admins cannot forward; that is the department's call
    with pytest.raises(NotAuthorized):
        tracker.forward_for_area_approval(db, record_id=record_id, principal=as_principal(world.cp_admin))

    result = tracker.forward_for_area_approval(db, record_id=record_id, principal=as_principal(world.pwd_admin))
    assert result.to_stage == WorkflowStage.area_approval
    assert result.record.status == WorkProgressStatus.under_review.value
    assert result.issue.current_assignee_id == world.cp_admin.id

    # department admin no longer decides once forwarded
    with pytest.raises(NotAuthorized):
        tracker.approve(db, record_id=record_id, principal=as_principal(world.pwd_admin))


def test_reviewer_cannot_review_own_submission(db, world, make_issue, as_principal, advance, evidence):
    issue = make_issue()
    advance(issue, "department_assigned")
    tracker = WorkProgressTracker()

    WorkflowEngine().start_work(db, issue_id=issue.id, principal=as_principal(world.pwd_admin))
    record = tracker.submit(db, issue_id=issue.id, principal=as_principal(world.pwd_admin), evidence=evidence())

    with pytest.raises(NotAuthorized):
        tracker.approve(db, record_id=record.id, principal=as_principal(world.pwd_admin))

    result = tracker.approve(db, record_id=record.id, principal=as_principal(world.cp_admin))
    assert result.issue.status == "resolved"


def test_quality_rating_bounds(db, world, make_issue, as_principal, advance):
    issue = make_issue()
    record_id = advance(issue, "department_review")

    with pytest.raises(ValidationError):
        WorkProgressTracker().approve(
            db, record_id=record_id, principal=as_principal(world.pwd_admin), quality_rating=6
        )


def test_unknown_record_is_not_found(db, world, as_principal):
    with pytest.raises(NotFound):
        WorkProgressTracker().approve(db, record_id=uuid.uuid4(), principal=as_principal(world.admin))
