# civicflow/core/security.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from passlib.context import CryptContext

from civicflow.core.config import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(raw: str) -> str:
    return pwd_context.hash(raw)


def verify_password(raw: str, hashed: Optional[str]) -> bool:
    # seeded service accounts may carry a placeholder instead of a bcrypt hash
    if not hashed or pwd_context.identify(hashed) is None:
        return False
    return pwd_context.verify(raw, hashed)


def create_access_token(
    *,
    profile_id: str,
    user_type: str,
    display_name: str,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Bearer token for one profile. Only identity travels in the token; area and
    department membership are re-read from the profile on every call.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    ttl = timedelta(minutes=expires_minutes or settings.jwt_access_token_minutes)
    payload = {
        "sub": profile_id,
        "profile_id": profile_id,
        "user_type": user_type,
        "display_name": display_name,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
