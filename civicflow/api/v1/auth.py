#civicflow/api/v1/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from civicflow.core.auth_deps import get_current_principal
from civicflow.db.session import get_db
from civicflow.policies.rbac import Principal
from civicflow.schemas.auth import LoginRequest, MeResponse, TokenResponse
from civicflow.services.auth_service import authenticate, issue_token

router = APIRouter(prefix="/auth")


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    principal = authenticate(db, req.username, req.password)
    if not principal:
        raise HTTPException(status_code=401, detail="Invalid credentials.")
    return TokenResponse(access_token=issue_token(principal))


@router.get("/me", response_model=MeResponse)
def get_me(principal: Principal = Depends(get_current_principal)):
    return MeResponse(
        profile_id=principal.profile_id,
        user_type=principal.user_type.value,
        display_name=principal.display_name,
    )
