from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from civicflow.core.auth_deps import get_current_principal
from civicflow.db.session import get_db
from civicflow.policies.rbac import Principal
from civicflow.schemas.areas import AreaResolveResponse
from civicflow.services.assignment_resolver import AssignmentResolver

router = APIRouter(prefix="/areas")


@router.get("/resolve", response_model=AreaResolveResponse)
def resolve_area(
    name: str = Query(..., min_length=1, max_length=128),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    resolution = AssignmentResolver().resolve(db, name)
    if resolution is None:
        return AreaResolveResponse(query=name, matched=False)
    return AreaResolveResponse(
        query=name,
        matched=True,
        area_id=resolution.area.id,
        area_name=resolution.area.name,
        admin_id=resolution.admin_id,
    )
