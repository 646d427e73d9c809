#civicflow/services/tender_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from civicflow.core.errors import (
    ConflictError,
    InvalidTransition,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from civicflow.models.enums import BidStatus, TenderStatus, UserType, WorkflowStage
from civicflow.models.issue import Issue
from civicflow.models.tender import Tender, TenderBid
from civicflow.policies.rbac import Principal
from civicflow.services.audit_service import AuditAction, AuditService
from civicflow.services.profile_service import require_actor
from civicflow.services.workflow_engine import WorkflowEngine

logger = logging.getLogger(__name__)

PROPOSAL_MIN_LENGTH = 50


def _now():
    return datetime.now(timezone.utc)


def _aware(dt: datetime) -> datetime:
    # sqlite hands back naive datetimes; treat them as UTC
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _money(value, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number.")
    return amount.quantize(Decimal("0.01"))


class TenderService:
    """
    Department tenders for issue work.

    Awarding a tender is the only way an issue reaches `contractor_assigned`:
    the tender/bid updates and the engine transition commit together.
    """

    def __init__(self, engine: Optional[WorkflowEngine] = None):
        self.engine = engine or WorkflowEngine()
        self.audit = AuditService()

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def _get_tender(self, db: Session, tender_id: uuid.UUID, *, lock: bool = False) -> Tender:
        stmt = select(Tender).where(Tender.id == tender_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        tender = db.execute(stmt).scalar_one_or_none()
        if tender is None:
            raise NotFound("Tender not found.", details={"tender_id": str(tender_id)})
        return tender

    # ─────────────────────────────────────────────
    # PUBLIC API
    # ─────────────────────────────────────────────

    def create_tender(
        self,
        db: Session,
        *,
        principal: Principal,
        issue_id: uuid.UUID,
        title: str,
        description: str,
        budget_min,
        budget_max,
        submission_deadline: datetime,
        request_id: Optional[str] = None,
    ) -> Tender:
        """One open tender per issue; the issue row is locked while checking."""
        try:
            actor = require_actor(db, principal)
            issue = db.execute(
                select(Issue)
                .where(Issue.id == issue_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if issue is None:
                raise NotFound("Issue not found.", details={"issue_id": str(issue_id)})
            if issue.workflow_stage != WorkflowStage.department_assigned.value:
                raise InvalidTransition(
                    "Tenders can only be opened for issues assigned to a department.",
                    details={"stage": issue.workflow_stage},
                )

            is_dept_admin = (
                actor.user_type == UserType.department_admin.value
                and actor.assigned_department_id is not None
                and actor.assigned_department_id == issue.assigned_department_id
            )
            if actor.user_type != UserType.admin.value and not is_dept_admin:
                raise NotAuthorized("Only the issue's department admin may open a tender.")

            open_tender = db.execute(
                select(Tender.id).where(
                    Tender.source_issue_id == issue.id,
                    Tender.status == TenderStatus.available.value,
                )
            ).first()
            if open_tender is not None:
                raise ConflictError(
                    "Issue already has an open tender.",
                    details={"tender_id": str(open_tender.id)},
                )

            if not title or not title.strip():
                raise ValidationError("Title is required.")
            if not description or not description.strip():
                raise ValidationError("Description is required.")

            lo = _money(budget_min, "budget_min")
            hi = _money(budget_max, "budget_max")
            if lo < 0 or hi < lo:
                raise ValidationError("Budget range must satisfy 0 <= budget_min <= budget_max.")

            deadline = _aware(submission_deadline)
            if deadline <= _now():
                raise ValidationError("Submission deadline must be in the future.")

            tender = Tender(
                source_issue_id=issue.id,
                department_id=issue.assigned_department_id,
                created_by=actor.id,
                title=title.strip(),
                description=description.strip(),
                estimated_budget_min=lo,
                estimated_budget_max=hi,
                submission_deadline=deadline,
                status=TenderStatus.available.value,
            )
            db.add(tender)
            db.flush()
            self.audit.write(
                db,
                issue_id=issue.id,
                actor_profile_id=actor.id,
                actor_role=actor.user_type,
                action=AuditAction.TENDER_CREATED,
                request_id=request_id,
                details={"tender_id": str(tender.id), "budget_min": str(lo), "budget_max": str(hi)},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(tender)
        logger.info("tender created", extra={"tender_id": str(tender.id), "issue_id": str(issue.id)})
        return tender

    def place_bid(
        self,
        db: Session,
        *,
        principal: Principal,
        tender_id: uuid.UUID,
        amount,
        proposal: str,
        request_id: Optional[str] = None,
    ) -> TenderBid:
        actor = require_actor(db, principal)
        if actor.user_type != UserType.contractor.value:
            raise NotAuthorized("Only contractors may bid on tenders.")

        tender = self._get_tender(db, tender_id)
        if tender.status != TenderStatus.available.value:
            raise InvalidTransition(
                f"Tender is {tender.status}; bidding is closed.",
                details={"tender_id": str(tender.id), "status": tender.status},
            )
        if _aware(tender.submission_deadline) <= _now():
            raise InvalidTransition("Tender submission deadline has passed.")

        value = _money(amount, "amount")
        if value <= 0:
            raise ValidationError("Bid amount must be positive.")
        if not proposal or len(proposal.strip()) < PROPOSAL_MIN_LENGTH:
            raise ValidationError(f"Proposal must be at least {PROPOSAL_MIN_LENGTH} characters.")

        existing = db.execute(
            select(TenderBid).where(
                TenderBid.tender_id == tender.id,
                TenderBid.contractor_id == actor.id,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise ConflictError("Contractor has already bid on this tender.")

        bid = TenderBid(
            tender_id=tender.id,
            contractor_id=actor.id,
            amount=value,
            proposal=proposal.strip(),
            status=BidStatus.pending.value,
        )
        try:
            db.add(bid)
            db.flush()
            self.audit.write(
                db,
                issue_id=tender.source_issue_id,
                actor_profile_id=actor.id,
                actor_role=actor.user_type,
                action=AuditAction.TENDER_BID_PLACED,
                request_id=request_id,
                details={"tender_id": str(tender.id), "bid_id": str(bid.id), "amount": str(value)},
            )
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("Contractor has already bid on this tender.") from e
        except Exception:
            db.rollback()
            raise

        db.refresh(bid)
        return bid

    def award_tender(
        self,
        db: Session,
        *,
        principal: Principal,
        tender_id: uuid.UUID,
        bid_id: uuid.UUID,
        contract_amount=None,
        notes: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Tender:
        try:
            tender = self._get_tender(db, tender_id, lock=True)
            if tender.status != TenderStatus.available.value:
                raise InvalidTransition(
                    f"Tender is already {tender.status}.",
                    details={"tender_id": str(tender.id), "status": tender.status},
                )

            bids = (
                db.execute(select(TenderBid).where(TenderBid.tender_id == tender.id))
                .scalars()
                .all()
            )
            winner = next((b for b in bids if b.id == bid_id), None)
            if winner is None:
                raise NotFound("Bid not found for this tender.", details={"bid_id": str(bid_id)})

            awarded_amount = (
                _money(contract_amount, "contract_amount") if contract_amount is not None else winner.amount
            )
            if awarded_amount <= 0:
                raise ValidationError("Contract amount must be positive.")

            # staged only; committed by the engine together with the transition
            tender.status = TenderStatus.awarded.value
            tender.awarded_to = winner.contractor_id
            tender.awarded_amount = awarded_amount
            tender.awarded_at = _now()
            for b in bids:
                b.status = BidStatus.accepted.value if b.id == winner.id else BidStatus.rejected.value
        except Exception:
            db.rollback()
            raise

        self.engine.award_contractor(
            db,
            issue_id=tender.source_issue_id,
            principal=principal,
            contractor_id=winner.contractor_id,
            tender_id=tender.id,
            notes=notes,
            request_id=request_id,
        )
        db.refresh(tender)
        logger.info(
            "tender awarded",
            extra={"tender_id": str(tender.id), "contractor_id": str(tender.awarded_to)},
        )
        return tender

    def list_tenders(
        self,
        db: Session,
        *,
        status: Optional[str] = None,
        issue_id: Optional[uuid.UUID] = None,
    ) -> List[Tender]:
        stmt = select(Tender).order_by(Tender.created_at.desc())
        if status is not None:
            stmt = stmt.where(Tender.status == status)
        if issue_id is not None:
            stmt = stmt.where(Tender.source_issue_id == issue_id)
        return db.execute(stmt).scalars().all()

    def list_bids(self, db: Session, *, tender_id: uuid.UUID) -> List[TenderBid]:
        self._get_tender(db, tender_id)
        return (
            db.execute(
                select(TenderBid)
                .where(TenderBid.tender_id == tender_id)
                .order_by(TenderBid.amount.asc(), TenderBid.created_at.asc())
            )
            .scalars()
            .all()
        )
