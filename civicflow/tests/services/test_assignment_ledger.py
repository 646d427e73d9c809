import pytest
from sqlalchemy.exc import IntegrityError

from civicflow.models.assignment import IssueAssignment
from civicflow.models.enums import AssignmentStatus, AssignmentType
from civicflow.services.assignment_ledger import AssignmentLedger


def _active_rows(db, issue_id):
    return (
        db.query(IssueAssignment)
        .filter(
            IssueAssignment.issue_id == issue_id,
            IssueAssignment.status == AssignmentStatus.active.value,
        )
        .all()
    )


def test_new_assignment_supersedes_the_active_one(db, world, make_issue):
    issue = make_issue()  # auto-routed: one active area_admin entry
    ledger = AssignmentLedger()

    first = ledger.get_active(db, issue_id=issue.id)
    second = ledger.record_assignment(
        db,
        issue_id=issue.id,
        assigned_by=world.cp_admin.id,
        assigned_to=world.pwd_admin.id,
        assignment_type=AssignmentType.department_admin,
        notes="over to PWD",
    )
    db.commit()

    db.refresh(first)
    assert first.status == AssignmentStatus.reassigned.value
    assert second.status == AssignmentStatus.active.value
    assert second.seq == first.seq + 1
    assert second.prev_hash == first.entry_hash
    assert [a.id for a in _active_rows(db, issue.id)] == [second.id]


def test_listing_is_newest_first(db, world, make_issue):
    issue = make_issue()
    ledger = AssignmentLedger()
    for assignee in (world.pwd_admin, world.djb_admin):
        ledger.record_assignment(
            db,
            issue_id=issue.id,
            assigned_by=world.cp_admin.id,
            assigned_to=assignee.id,
            assignment_type=AssignmentType.department_admin,
        )
    db.commit()

    entries = ledger.list_for_issue(db, issue_id=issue.id)
    assert [e.seq for e in entries] == [3, 2, 1]
    assert entries[0].assigned_to == world.djb_admin.id


def test_chain_verifies_and_detects_tampering(db, world, make_issue):
    issue = make_issue()
    ledger = AssignmentLedger()
    ledger.record_assignment(
        db,
        issue_id=issue.id,
        assigned_by=world.cp_admin.id,
        assigned_to=world.pwd_admin.id,
        assignment_type=AssignmentType.department_admin,
    )
    db.commit()
    assert ledger.verify_chain(db, issue_id=issue.id) is True

    oldest = ledger.list_for_issue(db, issue_id=issue.id)[-1]
    oldest.assigned_to = world.djb_admin.id
    db.commit()
    assert ledger.verify_chain(db, issue_id=issue.id) is False


def test_complete_active_closes_the_entry(db, world, make_issue):
    issue = make_issue()
    ledger = AssignmentLedger()

    done = ledger.complete_active(db, issue_id=issue.id)
    db.commit()

    assert done.status == AssignmentStatus.completed.value
    assert done.completed_at is not None
    assert ledger.get_active(db, issue_id=issue.id) is None
    assert ledger.complete_active(db, issue_id=issue.id) is None


def test_storage_rejects_a_second_active_row(db, world, make_issue):
    issue = make_issue()
    active = AssignmentLedger().get_active(db, issue_id=issue.id)

    db.add(
        IssueAssignment(
            issue_id=issue.id,
            seq=active.seq + 1,
            assigned_by=world.cp_admin.id,
            assigned_to=world.pwd_admin.id,
            assignment_type=AssignmentType.department_admin.value,
            status=AssignmentStatus.active.value,
            prev_hash=active.entry_hash,
            entry_hash="f" * 64,
        )
    )
    with pytest.raises(IntegrityError):
        db.flush()
    db.rollback()
