from __future__ import annotations

from typing import Any, Dict

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from civicflow.core.security import decode_token
from civicflow.models.enums import UserType
from civicflow.policies.rbac import Principal

bearer = HTTPBearer(auto_error=True)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def _principal_from_claims(claims: Dict[str, Any]) -> Principal:
    profile_id = claims.get("profile_id") or claims.get("sub")
    user_type = claims.get("user_type")
    if not profile_id or not user_type:
        raise _unauthorized("Token missing required claims.")

    try:
        user_type_enum = UserType(user_type)
    except ValueError:
        raise _unauthorized("Invalid user type in token.")

    return Principal(
        profile_id=str(profile_id),
        user_type=user_type_enum,
        display_name=str(claims.get("display_name") or "Unknown"),
    )


def get_current_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Principal:
    """
    Authenticated caller, from the bearer token alone.

    Whether the profile still exists and is active is checked by the service
    call itself (`require_actor`), inside the same transaction as the write.
    """
    try:
        claims = decode_token(creds.credentials)
    except JWTError:
        raise _unauthorized("Invalid or expired token.")

    principal = _principal_from_claims(claims)

    # RequestIdMiddleware reads it for the access log
    request.state.principal = principal
    return principal
