# civicflow/models/profile.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Boolean, ForeignKey, Index, Uuid, func, false, true
from sqlalchemy.orm import Mapped, mapped_column

from civicflow.db.base import Base
from civicflow.models.enums import UserType


def _now():
    return datetime.now(timezone.utc)


class Profile(Base):
    """
    Local copy of the identity service's profile.

    The workflow core only reads `user_type`, `assigned_area_id` and
    `assigned_department_id`; credentials exist so the API can issue tokens.
    """

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)

    full_name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    user_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=UserType.citizen.value
    )

    # areas/departments reference profiles too; break the cycle with ALTER
    assigned_area_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("areas.id", ondelete="SET NULL", use_alter=True, name="fk_profiles_assigned_area"),
        nullable=True,
    )
    assigned_department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("departments.id", ondelete="SET NULL", use_alter=True, name="fk_profiles_assigned_department"),
        nullable=True,
    )

    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_profiles_user_type", "user_type"),
        Index("ix_profiles_assigned_area", "assigned_area_id"),
        Index("ix_profiles_assigned_department", "assigned_department_id"),
    )
