from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import String, DateTime, UniqueConstraint, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from civicflow.db.base import Base, JsonType


def _now():
    return datetime.now(timezone.utc)


class IdempotencyKeyRecord(Base):
    """
    Stores response for a POST request with Idempotency-Key header to prevent duplicates.

    Scope is strict:
      (profile_id, endpoint_key, idem_key) must be unique.
    """
    __tablename__ = "idempotency_key_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    profile_id: Mapped[str] = mapped_column(String(64), nullable=False)

    endpoint_key: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "POST:/api/v1/issues"
    idem_key: Mapped[str] = mapped_column(String(128), nullable=False)

    request_hash: Mapped[str] = mapped_column(String(128), nullable=False)

    response_status: Mapped[str] = mapped_column(String(16), nullable=False, default="200")
    response_json: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("profile_id", "endpoint_key", "idem_key", name="uq_idem_scope"),
        Index("ix_idem_lookup", "profile_id", "endpoint_key"),
    )
