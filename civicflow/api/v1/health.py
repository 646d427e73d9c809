import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from civicflow.core.config import get_settings
from civicflow.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health(request: Request, db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        logger.exception("health check: database unreachable")
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "service": get_settings().app_name,
        "database": database,
        "request_id": getattr(request.state, "request_id", None),
    }
