import uuid

import pytest

from civicflow.core.errors import NotAuthorized, NotFound, ValidationError
from civicflow.models.audit_log import AuditLog
from civicflow.models.enums import WorkflowStage
from civicflow.models.workflow_event import WorkflowEvent
from civicflow.services.issue_service import IssueService


def _events(db, issue_id, event_type):
    return (
        db.query(WorkflowEvent)
        .filter(WorkflowEvent.issue_id == issue_id, WorkflowEvent.event_type == event_type)
        .all()
    )


@pytest.mark.parametrize("priority,points", [("low", 5), ("medium", 10), ("high", 15), ("urgent", 20)])
def test_reporter_earns_points_by_priority(db, world, make_issue, priority, points):
    issue = make_issue(priority=priority)

    [award] = _events(db, issue.id, "points_awarded")
    assert award.recipient_id == world.citizen.id
    assert award.payload_json["points"] == points


def test_routed_issue_notifies_area_admin(db, world, make_issue):
    issue = make_issue(area="Connaught Place")

    [assigned] = _events(db, issue.id, "issue_assigned")
    assert assigned.recipient_id == world.cp_admin.id


def test_unrouted_issue_still_awards_points(db, world, make_issue):
    issue = make_issue(area="Atlantis")

    assert issue.workflow_stage == WorkflowStage.reported.value
    assert len(_events(db, issue.id, "points_awarded")) == 1
    assert _events(db, issue.id, "issue_assigned") == []


def test_blank_area_is_stored_as_missing(db, world, make_issue):
    issue = make_issue(area="   ")

    assert issue.area is None
    assert issue.assigned_area_id is None
    assert issue.workflow_stage == WorkflowStage.reported.value


def test_creation_is_audited(db, world, make_issue):
    issue = make_issue()

    actions = {row.action for row in db.query(AuditLog).filter(AuditLog.issue_id == issue.id)}
    assert {"issue_created", "auto_assign_area"} <= actions


@pytest.mark.parametrize(
    "field,value",
    [
        ("title", "abc"),
        ("title", "x" * 201),
        ("description", "too short"),
        ("category", "aliens"),
        ("priority", "whenever"),
    ],
)
def test_invalid_reports_are_rejected(db, world, as_principal, field, value):
    payload = dict(
        title="Broken streetlight",
        description="Streetlight outside block C has been off for a week.",
        category="safety",
        priority="medium",
        area="Karol Bagh",
    )
    payload[field] = value

    with pytest.raises(ValidationError):
        IssueService().create_issue(db, principal=as_principal(world.citizen), **payload)


def test_unknown_reporter_cannot_report(db, world, as_principal):
    world.citizen.is_active = False
    db.commit()

    with pytest.raises(NotAuthorized):
        IssueService().create_issue(
            db,
            principal=as_principal(world.citizen),
            title="Broken streetlight",
            description="Streetlight outside block C has been off for a week.",
            category="safety",
        )


def test_list_issues_filters_newest_first(db, world, make_issue):
    first = make_issue(area="Connaught Place", title="First report")
    second = make_issue(area="Karol Bagh", title="Second report")
    svc = IssueService()

    assert [i.id for i in svc.list_issues(db)] == [second.id, first.id]
    assert [i.id for i in svc.list_issues(db, area_id=world.kb.id)] == [second.id]
    assert [i.id for i in svc.list_issues(db, assignee_id=world.cp_admin.id)] == [first.id]
    assert svc.list_issues(db, stage="resolved") == []

    with pytest.raises(ValidationError):
        svc.list_issues(db, stage="nowhere")


def test_get_missing_issue(db, world):
    with pytest.raises(NotFound):
        IssueService().get_issue(db, issue_id=uuid.uuid4())
