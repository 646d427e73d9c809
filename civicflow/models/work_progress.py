from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    String,
    Text,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from civicflow.db.base import Base, JsonType
from civicflow.models.enums import WorkProgressStatus


def _now():
    return datetime.now(timezone.utc)


class WorkProgressRecord(Base):
    """
    Completion evidence submitted by the current assignee.
    Mutated only by a reviewer moving `status`; immutable once approved.
    """

    __tablename__ = "work_progress"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    issue_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("issues.id", ondelete="CASCADE"), nullable=False
    )
    assignment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("issue_assignments.id", ondelete="CASCADE"), nullable=True
    )
    submitted_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    before_images: Mapped[List[str]] = mapped_column(JsonType, nullable=False, default=list)
    after_images: Mapped[List[str]] = mapped_column(JsonType, nullable=False)

    work_details: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    materials_used: Mapped[List[str]] = mapped_column(JsonType, nullable=False, default=list)
    cost_breakdown: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType, nullable=True)

    completion_date: Mapped[date] = mapped_column(Date, nullable=False)
    quality_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=WorkProgressStatus.submitted.value
    )
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "quality_rating IS NULL OR (quality_rating >= 1 AND quality_rating <= 5)",
            name="ck_work_progress_quality_rating",
        ),
        CheckConstraint(
            "status IN ('submitted','under_review','approved','rejected')",
            name="ck_work_progress_status_valid",
        ),
        Index("ix_work_progress_issue_id", "issue_id"),
        Index("ix_work_progress_status", "status"),
    )
