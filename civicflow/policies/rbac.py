#civicflow/policies/rbac.py
from __future__ import annotations
from dataclasses import dataclass

from civicflow.core.errors import NotAuthorized
from civicflow.models.enums import UserType


@dataclass(frozen=True)
class Principal:
    """
    Acting identity, passed explicitly into every mutating operation.
    """
    profile_id: str
    user_type: UserType
    display_name: str


PRIVILEGED_TYPES = frozenset({
    UserType.admin,
    UserType.area_super_admin,
    UserType.department_admin,
})


def is_admin(principal: Principal) -> bool:
    return principal.user_type == UserType.admin


def require_user_type(principal: Principal, *allowed: UserType) -> None:
    if principal.user_type not in allowed:
        raise NotAuthorized(
            f"User type {principal.user_type.value} not permitted for this action."
        )
