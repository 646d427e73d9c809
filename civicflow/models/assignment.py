# civicflow/models/assignment.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from civicflow.db.base import Base
from civicflow.models.enums import AssignmentStatus


def _now():
    return datetime.now(timezone.utc)


class IssueAssignment(Base):
    """
    One row per hand-off of responsibility for an issue.

    - Append-only: only `status` and `completed_at` ever change
    - `seq` orders entries per issue; `entry_hash` chains them
    - At most one `active` row per issue (partial unique index)
    """

    __tablename__ = "issue_assignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    issue_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("issues.id", ondelete="CASCADE"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    assigned_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=False
    )
    assigned_to: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=False
    )

    assignment_type: Mapped[str] = mapped_column(String(32), nullable=False)
    assignment_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=AssignmentStatus.active.value
    )

    prev_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("issue_id", "seq", name="uq_issue_assignments_issue_seq"),
        CheckConstraint(
            "assignment_type IN ('area_admin','department_admin','contractor')",
            name="ck_issue_assignments_type_valid",
        ),
        CheckConstraint(
            "status IN ('active','completed','reassigned','cancelled')",
            name="ck_issue_assignments_status_valid",
        ),
        Index(
            "uq_issue_assignments_single_active",
            "issue_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_issue_assignments_issue_id", "issue_id"),
        Index("ix_issue_assignments_assigned_to", "assigned_to"),
    )
