import os

# settings are read at import time by civicflow.db.session
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

# FORCE model registration
import civicflow.models  # noqa

from civicflow.core.security import create_access_token
from civicflow.db.base import Base
from civicflow.db.session import make_engine
from civicflow.models.department import Department
from civicflow.models.enums import DepartmentCategory, UserType
from civicflow.models.location import AdministrativeArea, District, State
from civicflow.models.profile import Profile
from civicflow.policies.rbac import Principal
from civicflow.services.issue_service import IssueService
from civicflow.services.work_progress_service import WorkProgressTracker
from civicflow.services.workflow_engine import CompletionEvidence, WorkflowEngine

# not a real bcrypt hash; only the login tests hash a password
UNUSABLE_PASSWORD = "!"


@pytest.fixture(scope="function")
def db():
    # fresh in-memory database per test
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def _add_profile(db, username, user_type, **kw):
    p = Profile(
        username=username,
        password_hash=UNUSABLE_PASSWORD,
        full_name=username.replace("_", " ").title(),
        user_type=user_type.value,
        is_verified=True,
        **kw,
    )
    db.add(p)
    db.flush()
    return p


def _add_area(db, district, name, code, admin_username=None):
    area = AdministrativeArea(district_id=district.id, name=name, code=code)
    db.add(area)
    db.flush()
    admin = None
    if admin_username:
        admin = _add_profile(db, admin_username, UserType.area_super_admin, assigned_area_id=area.id)
        area.area_super_admin_id = admin.id
        db.flush()
    return area, admin


def _add_department(db, name, code, category, admin_username=None):
    dept = Department(name=name, code=code, category=category.value)
    db.add(dept)
    db.flush()
    admin = None
    if admin_username:
        admin = _add_profile(db, admin_username, UserType.department_admin, assigned_department_id=dept.id)
    return dept, admin


@pytest.fixture()
def world(db):
    """Delhi with two staffed areas, one unstaffed area, two departments and the usual cast."""
    state = State(name="Delhi", code="DL")
    db.add(state)
    db.flush()
    district = District(state_id=state.id, name="New Delhi", code="ND")
    db.add(district)
    db.flush()

    cp, cp_admin = _add_area(db, district, "Connaught Place", "CP", "cp_admin")
    kb, kb_admin = _add_area(db, district, "Karol Bagh", "KB", "kb_admin")
    dwarka, _ = _add_area(db, district, "Dwarka", "DW")

    pwd, pwd_admin = _add_department(db, "Public Works Department", "PWD", DepartmentCategory.roads, "pwd_admin")
    djb, djb_admin = _add_department(db, "Delhi Jal Board", "DJB", DepartmentCategory.utilities, "djb_admin")

    w = SimpleNamespace(
        state=state,
        district=district,
        cp=cp,
        cp_admin=cp_admin,
        kb=kb,
        kb_admin=kb_admin,
        dwarka=dwarka,
        pwd=pwd,
        pwd_admin=pwd_admin,
        djb=djb,
        djb_admin=djb_admin,
        admin=_add_profile(db, "root_admin", UserType.admin),
        citizen=_add_profile(db, "citizen_one", UserType.citizen),
        contractor=_add_profile(db, "contractor_one", UserType.contractor),
        contractor2=_add_profile(db, "contractor_two", UserType.contractor),
    )
    db.commit()
    return w


@pytest.fixture()
def as_principal():
    def _make(profile: Profile) -> Principal:
        return Principal(
            profile_id=str(profile.id),
            user_type=UserType(profile.user_type),
            display_name=profile.full_name,
        )
    return _make


@pytest.fixture()
def make_issue(db, world, as_principal):
    def _make(area="Connaught Place", priority="medium", reporter=None, title="Pothole on main road"):
        return IssueService().create_issue(
            db,
            principal=as_principal(reporter or world.citizen),
            title=title,
            description="Large pothole near the metro exit causing traffic slowdowns.",
            category="roads",
            priority=priority,
            area=area,
        )
    return _make


@pytest.fixture()
def evidence():
    def _make(**overrides):
        fields = dict(
            title="Pothole filled",
            description="Filled with bituminous mix and compacted.",
            after_images=["https://img.example.org/after-1.jpg"],
            before_images=["https://img.example.org/before-1.jpg"],
            materials_used=["bitumen", "gravel"],
        )
        fields.update(overrides)
        return CompletionEvidence(**fields)
    return _make


@pytest.fixture()
def advance(db, world, as_principal, evidence):
    """
    Walk a routed Connaught Place issue forward to `stage`.
    Returns the id of the submitted record once one exists, else None.
    """
    engine_ = WorkflowEngine()
    tracker = WorkProgressTracker(engine_)

    def _advance(issue, stage):
        order = [
            "area_review",
            "department_assigned",
            "contractor_assigned",
            "in_progress",
            "department_review",
            "area_approval",
        ]
        record_id = None
        for step in order[1: order.index(stage) + 1]:
            if step == "department_assigned":
                engine_.assign_department(
                    db, issue_id=issue.id, principal=as_principal(world.cp_admin), department_id=world.pwd.id
                )
            elif step == "contractor_assigned":
                engine_.award_contractor(
                    db, issue_id=issue.id, principal=as_principal(world.pwd_admin), contractor_id=world.contractor.id
                )
            elif step == "in_progress":
                engine_.start_work(db, issue_id=issue.id, principal=as_principal(world.contractor))
            elif step == "department_review":
                record_id = tracker.submit(
                    db, issue_id=issue.id, principal=as_principal(world.contractor), evidence=evidence()
                ).id
            elif step == "area_approval":
                tracker.forward_for_area_approval(
                    db, record_id=record_id, principal=as_principal(world.pwd_admin)
                )
        db.refresh(issue)
        return record_id

    return _advance


@pytest.fixture()
def auth_header():
    def _make(profile: Profile):
        token = create_access_token(
            profile_id=str(profile.id),
            user_type=profile.user_type,
            display_name=profile.full_name,
        )
        return {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture()
def client(db):
    from fastapi.testclient import TestClient

    from civicflow.db.session import get_db
    from civicflow.main import app

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
