# civicflow/services/auth_service.py
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from civicflow.core.security import create_access_token, verify_password
from civicflow.models.enums import UserType
from civicflow.models.profile import Profile
from civicflow.policies.rbac import Principal

logger = logging.getLogger(__name__)


def authenticate(db: Session, username: str, password: str) -> Optional[Principal]:
    """Principal for valid credentials of an active profile, else None."""
    profile = db.execute(
        select(Profile).where(
            Profile.username == username,
            Profile.is_active.is_(True),
        )
    ).scalar_one_or_none()

    if profile is None or not verify_password(password, profile.password_hash):
        logger.info("login rejected", extra={"username": username})
        return None

    return Principal(
        profile_id=str(profile.id),
        user_type=UserType(profile.user_type),
        display_name=profile.full_name,
    )


def issue_token(principal: Principal) -> str:
    return create_access_token(
        profile_id=principal.profile_id,
        user_type=principal.user_type.value,
        display_name=principal.display_name,
    )
