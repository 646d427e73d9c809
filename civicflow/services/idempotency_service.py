from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from civicflow.core.errors import ConflictError
from civicflow.core.hashing import payload_fingerprint
from civicflow.models.idempotency_key import IdempotencyKeyRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdempotencyCheck:
    """Outcome of looking up one Idempotency-Key before the handler runs."""

    endpoint_key: str
    idem_key: str
    request_hash: str
    replay_json: Optional[Dict[str, Any]] = None
    replay_status: Optional[int] = None

    @property
    def is_replay(self) -> bool:
        return self.replay_json is not None


class IdempotencyService:
    """
    Remembers the first response to a keyed create so a client retry returns
    the same issue instead of filing a duplicate.

    Keys are scoped to (profile, endpoint); the same key from two profiles
    never collides.
    """

    def _find(self, db: Session, *, profile_id: str, endpoint_key: str, idem_key: str):
        return db.execute(
            select(IdempotencyKeyRecord).where(
                IdempotencyKeyRecord.profile_id == profile_id,
                IdempotencyKeyRecord.endpoint_key == endpoint_key,
                IdempotencyKeyRecord.idem_key == idem_key,
            )
        ).scalar_one_or_none()

    def check(
        self,
        db: Session,
        *,
        profile_id: str,
        endpoint_key: str,
        idem_key: str,
        request_payload: Dict[str, Any],
    ) -> IdempotencyCheck:
        req_hash = payload_fingerprint(request_payload)
        seen = self._find(db, profile_id=profile_id, endpoint_key=endpoint_key, idem_key=idem_key)
        if seen is None:
            return IdempotencyCheck(endpoint_key=endpoint_key, idem_key=idem_key, request_hash=req_hash)

        if seen.request_hash != req_hash:
            raise ConflictError(
                "Idempotency-Key was already used with a different request body.",
                details={"idempotency_key": idem_key},
            )

        logger.info("idempotent replay", extra={"endpoint": endpoint_key, "profile_id": profile_id})
        return IdempotencyCheck(
            endpoint_key=endpoint_key,
            idem_key=idem_key,
            request_hash=req_hash,
            replay_json=seen.response_json,
            replay_status=int(seen.response_status),
        )

    def remember(
        self,
        db: Session,
        *,
        profile_id: str,
        check: IdempotencyCheck,
        response_json: Dict[str, Any],
        response_status: int,
    ) -> None:
        """Store the response; when two retries race, the first stored one wins."""
        row = IdempotencyKeyRecord(
            profile_id=profile_id,
            endpoint_key=check.endpoint_key,
            idem_key=check.idem_key,
            request_hash=check.request_hash,
            response_status=str(response_status),
            response_json=response_json,
        )
        try:
            db.add(row)
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(
                "idempotency key stored concurrently",
                extra={"endpoint": check.endpoint_key, "profile_id": profile_id},
            )
