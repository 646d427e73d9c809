from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from civicflow.core.hashing import payload_fingerprint
from civicflow.core.logging import request_id_var
from civicflow.models.audit_log import AuditLog


class AuditAction:
    # Intake
    ISSUE_CREATED = "issue_created"

    # Non-stage operations (stage events use TransitionEvent values)
    ISSUE_REASSIGNED = "issue_reassigned"

    # Tender desk
    TENDER_CREATED = "tender_created"
    TENDER_BID_PLACED = "tender_bid_placed"


class AuditService:
    def write(
        self,
        db: Session,
        *,
        issue_id: uuid.UUID,
        actor_profile_id: Optional[uuid.UUID],
        actor_role: Optional[str],
        action: str,
        request_id: Optional[str],
        details: Dict[str, Any],
        from_stage: Optional[str] = None,
        to_stage: Optional[str] = None,
    ) -> AuditLog:
        """
        Stage an append-only audit row in the caller's transaction.
        `details` must be a safe summary; only its hash is treated as evidence.
        """
        row = AuditLog(
            issue_id=issue_id,
            actor_profile_id=actor_profile_id,
            actor_role=actor_role,
            action=action,
            from_stage=from_stage,
            to_stage=to_stage,
            request_id=request_id or request_id_var.get(),
            payload_hash=payload_fingerprint(details),
            details_json=details,
        )
        db.add(row)
        return row

    def list_for_issue(self, db: Session, *, issue_id: uuid.UUID) -> List[AuditLog]:
        return (
            db.execute(
                select(AuditLog)
                .where(AuditLog.issue_id == issue_id)
                .order_by(AuditLog.created_at.asc())
            )
            .scalars()
            .all()
        )
