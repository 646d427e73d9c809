#civicflow/services/assignment_ledger.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from civicflow.core.hashing import GENESIS_HASH, chain_hash
from civicflow.models.assignment import IssueAssignment
from civicflow.models.enums import AssignmentStatus, AssignmentType

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


def _entry_payload(
    *,
    issue_id: uuid.UUID,
    seq: int,
    assigned_by: uuid.UUID,
    assigned_to: uuid.UUID,
    assignment_type: str,
    notes: Optional[str],
) -> Dict[str, Any]:
    # only the fields that never change after insert
    return {
        "issue_id": str(issue_id),
        "seq": seq,
        "assigned_by": str(assigned_by),
        "assigned_to": str(assigned_to),
        "assignment_type": assignment_type,
        "notes": notes or "",
    }


class AssignmentLedger:
    """
    Append-only history of responsibility hand-offs, hash-chained per issue.

    Enforces the single-active-assignment invariant itself. Every method only
    flushes: the caller (the workflow engine) owns the transaction.
    """

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def _get_last_entry(self, db: Session, *, issue_id: uuid.UUID) -> Optional[IssueAssignment]:
        return db.execute(
            select(IssueAssignment)
            .where(IssueAssignment.issue_id == issue_id)
            .order_by(IssueAssignment.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    # ─────────────────────────────────────────────
    # PUBLIC API
    # ─────────────────────────────────────────────

    def get_active(self, db: Session, *, issue_id: uuid.UUID) -> Optional[IssueAssignment]:
        return db.execute(
            select(IssueAssignment).where(
                IssueAssignment.issue_id == issue_id,
                IssueAssignment.status == AssignmentStatus.active.value,
            )
        ).scalar_one_or_none()

    def record_assignment(
        self,
        db: Session,
        *,
        issue_id: uuid.UUID,
        assigned_by: uuid.UUID,
        assigned_to: uuid.UUID,
        assignment_type: AssignmentType,
        notes: Optional[str] = None,
    ) -> IssueAssignment:
        """
        Append a new active assignment.

        Any assignment still active for the issue is flipped to `reassigned`
        and flushed first, so two active rows never coexist.
        """
        active = self.get_active(db, issue_id=issue_id)
        if active is not None:
            active.status = AssignmentStatus.reassigned.value
            db.flush()
            logger.info(
                "assignment superseded",
                extra={"issue_id": str(issue_id), "assignment_id": str(active.id)},
            )

        last = self._get_last_entry(db, issue_id=issue_id)
        prev_hash = last.entry_hash if last else GENESIS_HASH
        seq = 1 if not last else last.seq + 1

        payload = _entry_payload(
            issue_id=issue_id,
            seq=seq,
            assigned_by=assigned_by,
            assigned_to=assigned_to,
            assignment_type=assignment_type.value,
            notes=notes,
        )

        row = IssueAssignment(
            issue_id=issue_id,
            seq=seq,
            assigned_by=assigned_by,
            assigned_to=assigned_to,
            assignment_type=assignment_type.value,
            assignment_notes=notes,
            status=AssignmentStatus.active.value,
            prev_hash=prev_hash,
            entry_hash=chain_hash(prev_hash, payload),
        )
        db.add(row)
        db.flush()
        return row

    def complete_active(self, db: Session, *, issue_id: uuid.UUID) -> Optional[IssueAssignment]:
        active = self.get_active(db, issue_id=issue_id)
        if active is None:
            return None
        active.status = AssignmentStatus.completed.value
        active.completed_at = _now()
        db.flush()
        return active

    # ─────────────────────────────────────────────
    # READ-ONLY HELPERS (AUDIT)
    # ─────────────────────────────────────────────

    def list_for_issue(self, db: Session, *, issue_id: uuid.UUID) -> List[IssueAssignment]:
        """Newest first."""
        return (
            db.execute(
                select(IssueAssignment)
                .where(IssueAssignment.issue_id == issue_id)
                .order_by(IssueAssignment.seq.desc())
            )
            .scalars()
            .all()
        )

    def verify_chain(self, db: Session, *, issue_id: uuid.UUID) -> bool:
        entries = sorted(self.list_for_issue(db, issue_id=issue_id), key=lambda e: e.seq)

        prev_hash = GENESIS_HASH
        for e in entries:
            payload = _entry_payload(
                issue_id=e.issue_id,
                seq=e.seq,
                assigned_by=e.assigned_by,
                assigned_to=e.assigned_to,
                assignment_type=e.assignment_type,
                notes=e.assignment_notes,
            )
            if e.prev_hash != prev_hash or e.entry_hash != chain_hash(prev_hash, payload):
                return False
            prev_hash = e.entry_hash

        return True
