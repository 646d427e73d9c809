from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from civicflow.core.errors import NotAuthorized, NotFound, ValidationError
from civicflow.models.enums import UserType
from civicflow.models.profile import Profile
from civicflow.policies.rbac import Principal


def _as_uuid(value, what: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"{what} must be a UUID.")


def get_profile(db: Session, profile_id) -> Optional[Profile]:
    return db.get(Profile, _as_uuid(profile_id, "profile id"))


def require_actor(db: Session, principal: Principal) -> Profile:
    """Load the acting profile; unknown or disabled profiles cannot act."""
    profile = get_profile(db, principal.profile_id)
    if profile is None or not profile.is_active:
        raise NotAuthorized("Acting profile is unknown or inactive.")
    return profile


def require_profile_of_type(db: Session, profile_id, user_type: UserType) -> Profile:
    profile = get_profile(db, profile_id)
    if profile is None or not profile.is_active:
        raise NotFound(f"Profile {profile_id} not found.")
    if profile.user_type != user_type.value:
        raise ValidationError(
            f"Profile {profile_id} is a {profile.user_type}, expected {user_type.value}."
        )
    return profile


def find_department_admin(db: Session, department_id: uuid.UUID) -> Optional[Profile]:
    """First verified, active admin of the department (oldest profile first)."""
    return db.execute(
        select(Profile)
        .where(
            Profile.assigned_department_id == department_id,
            Profile.user_type == UserType.department_admin.value,
            Profile.is_verified.is_(True),
            Profile.is_active.is_(True),
        )
        .order_by(Profile.created_at.asc(), Profile.id.asc())
        .limit(1)
    ).scalar_one_or_none()
