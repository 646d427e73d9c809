import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

import civicflow.models  # noqa: F401
from civicflow.core.config import get_settings
from civicflow.core.logging import configure_logging
from civicflow.core.security import hash_password
from civicflow.db.session import session_scope
from civicflow.models.department import Department
from civicflow.models.enums import DepartmentCategory, UserType
from civicflow.models.location import AdministrativeArea, District, State
from civicflow.models.profile import Profile

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "pass123"

AREAS = [
    ("Connaught Place", "CP"),
    ("Karol Bagh", "KB"),
    ("Chandni Chowk", "CC"),
    ("Lajpat Nagar", "LN"),
]

DEPARTMENTS = [
    ("Public Works Department", "PWD", DepartmentCategory.roads),
    ("Delhi Jal Board", "DJB", DepartmentCategory.utilities),
    ("Municipal Corporation of Delhi", "MCD", DepartmentCategory.environment),
    ("Delhi Police Traffic", "DPT", DepartmentCategory.safety),
    ("Horticulture Department", "HORT", DepartmentCategory.parks),
]


def _profile(db: Session, username: str, full_name: str, user_type: UserType, **kw) -> Profile:
    p = db.execute(select(Profile).where(Profile.username == username)).scalar_one_or_none()
    if p:
        return p
    p = Profile(
        username=username,
        password_hash=hash_password(DEMO_PASSWORD),
        full_name=full_name,
        email=f"{username}@example.org",
        user_type=user_type.value,
        is_verified=True,
        **kw,
    )
    db.add(p)
    db.flush()
    return p


def seed(db: Session) -> None:
    if db.execute(select(State).where(State.code == "DL")).scalar_one_or_none():
        logger.info("seed data already present")
        return

    state = State(name="Delhi", code="DL")
    db.add(state)
    db.flush()

    district = District(state_id=state.id, name="New Delhi", code="ND")
    db.add(district)
    db.flush()

    _profile(db, "admin", "Platform Admin", UserType.admin)

    for name, code in AREAS:
        area = AdministrativeArea(district_id=district.id, name=name, code=code)
        db.add(area)
        db.flush()

        admin = _profile(
            db,
            f"area_{code.lower()}",
            f"{name} Area Admin",
            UserType.area_super_admin,
            assigned_area_id=area.id,
        )
        area.area_super_admin_id = admin.id

    for name, code, category in DEPARTMENTS:
        dept = Department(name=name, code=code, category=category.value)
        db.add(dept)
        db.flush()
        _profile(
            db,
            f"dept_{code.lower()}",
            f"{code} Department Admin",
            UserType.department_admin,
            assigned_department_id=dept.id,
        )

    _profile(db, "contractor1", "Sharma Constructions", UserType.contractor)
    _profile(db, "contractor2", "Gupta Infra Works", UserType.contractor)
    _profile(db, "citizen1", "Demo Citizen", UserType.citizen)

    logger.info("seed data created", extra={"areas": len(AREAS), "departments": len(DEPARTMENTS)})


if __name__ == "__main__":
    configure_logging(get_settings())
    with session_scope() as session:
        seed(session)
