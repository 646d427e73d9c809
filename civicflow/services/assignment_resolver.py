#civicflow/services/assignment_resolver.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from civicflow.models.location import AdministrativeArea, District, State

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AreaResolution:
    area: AdministrativeArea
    admin_id: uuid.UUID


class AssignmentResolver:
    """
    One-shot lookup from an issue's free-text area to the responsible admin.

    Match rule: case-insensitive exact name match among active areas
    (surrounding whitespace ignored). Areas without an admin resolve to None.
    """

    def resolve(self, db: Session, area_name: Optional[str]) -> Optional[AreaResolution]:
        if not area_name or not area_name.strip():
            return None

        needle = area_name.strip().lower()

        matches = (
            db.execute(
                select(AdministrativeArea)
                .join(District, AdministrativeArea.district_id == District.id)
                .join(State, District.state_id == State.id)
                .where(
                    func.lower(AdministrativeArea.name) == needle,
                    AdministrativeArea.is_active.is_(True),
                )
                .order_by(AdministrativeArea.created_at.asc(), AdministrativeArea.id.asc())
            )
            .scalars()
            .all()
        )

        if not matches:
            return None

        if len(matches) > 1:
            # same name in two districts; oldest wins
            logger.warning(
                "ambiguous area name",
                extra={"area_name": needle, "candidates": [str(a.id) for a in matches]},
            )

        area = matches[0]
        if area.area_super_admin_id is None:
            logger.info("area has no admin", extra={"area_id": str(area.id)})
            return None

        return AreaResolution(area=area, admin_id=area.area_super_admin_id)
