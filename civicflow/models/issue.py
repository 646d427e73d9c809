#civicflow/models/issue.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    String,
    Text,
    Integer,
    Float,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from civicflow.db.base import Base, JsonType
from civicflow.models.enums import WorkflowStage, IssueStatus, IssuePriority


def _now():
    return datetime.now(timezone.utc)


class Issue(Base):
    """
    Citizen-reported problem. Soft-closed via status=resolved, never deleted.

    `version` is the optimistic-concurrency counter: every UPDATE is issued as
    `... WHERE version = <read version>` and bumps it.
    """

    __tablename__ = "issues"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    reporter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    priority: Mapped[str] = mapped_column(
        String(16), nullable=False, default=IssuePriority.medium.value
    )

    # free-text location as typed by the citizen
    area: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    ward: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    images: Mapped[List[str]] = mapped_column(JsonType, nullable=False, default=list)

    workflow_stage: Mapped[str] = mapped_column(
        String(32), nullable=False, default=WorkflowStage.reported.value
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=IssueStatus.pending.value
    )

    assigned_area_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("areas.id", ondelete="SET NULL"), nullable=True
    )
    assigned_department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )
    current_assignee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )

    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    final_resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    final_resolution_images: Mapped[Optional[List[str]]] = mapped_column(JsonType, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now, server_default=func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "workflow_stage IN ('reported','area_review','department_assigned','contractor_assigned',"
            "'in_progress','department_review','area_approval','resolved')",
            name="ck_issues_workflow_stage_valid",
        ),
        CheckConstraint(
            "status IN ('pending','in_progress','resolved')",
            name="ck_issues_status_valid",
        ),
        Index("ix_issues_workflow_stage", "workflow_stage"),
        Index("ix_issues_assigned_area", "assigned_area_id"),
        Index("ix_issues_assigned_department", "assigned_department_id"),
        Index("ix_issues_current_assignee", "current_assignee_id"),
        Index("ix_issues_reporter", "reporter_id"),
    )
