#civicflow/models/tender.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    Numeric,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from civicflow.db.base import Base
from civicflow.models.enums import TenderStatus, BidStatus


def _now():
    return datetime.now(timezone.utc)


class Tender(Base):
    """
    Work contract a department opens for one issue.
    Awarding it is what moves the issue to `contractor_assigned`.
    """

    __tablename__ = "tenders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    source_issue_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("issues.id", ondelete="CASCADE"), nullable=False
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    estimated_budget_min: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    estimated_budget_max: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    submission_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TenderStatus.available.value
    )

    awarded_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    awarded_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    awarded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "estimated_budget_min >= 0 AND estimated_budget_max >= estimated_budget_min",
            name="ck_tenders_budget_range",
        ),
        CheckConstraint(
            "status IN ('available','awarded','cancelled')",
            name="ck_tenders_status_valid",
        ),
        Index("ix_tenders_source_issue", "source_issue_id"),
        Index("ix_tenders_status", "status"),
    )


class TenderBid(Base):
    __tablename__ = "tender_bids"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    tender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenders.id", ondelete="CASCADE"), nullable=False
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    proposal: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=BidStatus.pending.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("tender_id", "contractor_id", name="uq_tender_bids_one_per_contractor"),
        CheckConstraint("amount > 0", name="ck_tender_bids_amount_positive"),
        Index("ix_tender_bids_tender", "tender_id"),
    )
