from fastapi import APIRouter

from civicflow.api.v1.health import router as health_router
from civicflow.api.v1.auth import router as auth_router
from civicflow.api.v1.issues import router as issues_router
from civicflow.api.v1.work_progress import router as work_progress_router
from civicflow.api.v1.areas import router as areas_router
from civicflow.api.v1.tenders import router as tenders_router
from civicflow.api.v1.events import router as events_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(auth_router, tags=["auth"])

# ------------------------------------------------------------------
# ISSUE WORKFLOW
# ------------------------------------------------------------------
v1_router.include_router(issues_router, tags=["issues"])
v1_router.include_router(work_progress_router, tags=["work-progress"])
v1_router.include_router(areas_router, tags=["areas"])

# ------------------------------------------------------------------
# TENDERS
# ------------------------------------------------------------------
v1_router.include_router(tenders_router, tags=["tenders"])

# ------------------------------------------------------------------
# OUTBOX
# ------------------------------------------------------------------
v1_router.include_router(events_router, tags=["events"])
