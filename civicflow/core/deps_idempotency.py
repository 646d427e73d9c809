from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from civicflow.core.auth_deps import get_current_principal
from civicflow.core.config import get_settings
from civicflow.core.errors import ValidationError
from civicflow.db.session import get_db
from civicflow.policies.rbac import Principal
from civicflow.services.idempotency_service import IdempotencyCheck, IdempotencyService

IDEMPOTENCY_HEADER = "Idempotency-Key"


async def optional_idempotency_key(request: Request) -> Optional[str]:
    key = (request.headers.get(IDEMPOTENCY_HEADER) or "").strip()
    if not key:
        return None
    if len(key) > get_settings().idempotency_key_max_length:
        raise ValidationError(f"{IDEMPOTENCY_HEADER} is too long.")
    return key


async def idempotency_guard(
    request: Request,
    idem_key: Optional[str] = Depends(optional_idempotency_key),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> Optional[IdempotencyCheck]:
    """
    For POST endpoints that create rows. None when the client sent no key.

    A replayed key yields a check with `is_replay` set; the handler returns the
    stored response instead of running again. A reused key with a different
    body raises ConflictError (409).
    """
    if idem_key is None:
        return None

    try:
        payload = await request.json()
    except ValueError:
        payload = {}

    return IdempotencyService().check(
        db,
        profile_id=principal.profile_id,
        endpoint_key=f"{request.method}:{request.url.path}",
        idem_key=idem_key,
        request_payload=payload if isinstance(payload, dict) else {"_": payload},
    )
