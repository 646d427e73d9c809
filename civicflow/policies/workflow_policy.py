#civicflow/policies/workflow_policy.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from civicflow.core.errors import NotAuthorized
from civicflow.core.workflow_graph import TransitionEvent
from civicflow.models.assignment import IssueAssignment
from civicflow.models.enums import AssignmentType, UserType, WorkflowStage
from civicflow.models.issue import Issue
from civicflow.models.location import AdministrativeArea
from civicflow.models.profile import Profile


@dataclass(frozen=True)
class TransitionContext:
    """Everything an authorization rule may look at, read under the issue lock."""
    actor: Profile
    issue: Issue
    issue_area: Optional[AdministrativeArea]
    active_assignment: Optional[IssueAssignment]
    target_area: Optional[AdministrativeArea] = None


STAFF_TYPES = frozenset({
    UserType.area_super_admin.value,
    UserType.department_admin.value,
})


# --- relationship predicates ---

def _is_admin(actor: Profile) -> bool:
    return actor.user_type == UserType.admin.value


def _is_area_admin_of(actor: Profile, area: Optional[AdministrativeArea]) -> bool:
    return (
        area is not None
        and actor.user_type == UserType.area_super_admin.value
        and area.area_super_admin_id == actor.id
    )


def _is_department_admin_of(actor: Profile, issue: Issue) -> bool:
    return (
        actor.user_type == UserType.department_admin.value
        and issue.assigned_department_id is not None
        and actor.assigned_department_id == issue.assigned_department_id
    )


def _is_current_assignee(actor: Profile, issue: Issue) -> bool:
    return issue.current_assignee_id is not None and issue.current_assignee_id == actor.id


def _is_active_assigner(actor: Profile, active: Optional[IssueAssignment]) -> bool:
    return active is not None and active.assigned_by == actor.id


def _holds_active(actor: Profile, ctx: TransitionContext, kind: AssignmentType) -> bool:
    active = ctx.active_assignment
    return (
        active is not None
        and active.assignment_type == kind.value
        and active.assigned_to == actor.id
        and _is_current_assignee(actor, ctx.issue)
    )


# --- per-event rules ---

def _assign_area(ctx: TransitionContext) -> bool:
    if _is_admin(ctx.actor):
        return True
    target = ctx.target_area
    return (
        target is not None
        and ctx.actor.user_type == UserType.area_super_admin.value
        and target.area_super_admin_id == ctx.actor.id
    )


def _assign_department(ctx: TransitionContext) -> bool:
    # after a reassignment the new area admin holds the hand-off
    return (
        _is_admin(ctx.actor)
        or _is_area_admin_of(ctx.actor, ctx.issue_area)
        or (
            ctx.actor.user_type == UserType.area_super_admin.value
            and _holds_active(ctx.actor, ctx, AssignmentType.area_admin)
        )
    )


def _award_contractor(ctx: TransitionContext) -> bool:
    return _is_admin(ctx.actor) or _is_department_admin_of(ctx.actor, ctx.issue)


def _start_work(ctx: TransitionContext) -> bool:
    return (
        _is_admin(ctx.actor)
        or _is_current_assignee(ctx.actor, ctx.issue)
        or _is_active_assigner(ctx.actor, ctx.active_assignment)
    )


def _submit_completion(ctx: TransitionContext) -> bool:
    return _is_current_assignee(ctx.actor, ctx.issue) or _is_active_assigner(
        ctx.actor, ctx.active_assignment
    )


def _forward_for_area_approval(ctx: TransitionContext) -> bool:
    return _is_admin(ctx.actor) or _is_department_admin_of(ctx.actor, ctx.issue)


def _review_completion(ctx: TransitionContext) -> bool:
    if _is_admin(ctx.actor) or _is_area_admin_of(ctx.actor, ctx.issue_area):
        return True
    if ctx.issue.workflow_stage == WorkflowStage.department_review.value:
        return _is_department_admin_of(ctx.actor, ctx.issue)
    return False


RULES: Dict[TransitionEvent, Callable[[TransitionContext], bool]] = {
    TransitionEvent.AUTO_ASSIGN_AREA: lambda ctx: True,  # system routing at intake
    TransitionEvent.ASSIGN_AREA: _assign_area,
    TransitionEvent.ASSIGN_DEPARTMENT: _assign_department,
    TransitionEvent.AWARD_CONTRACTOR: _award_contractor,
    TransitionEvent.START_WORK: _start_work,
    TransitionEvent.SUBMIT_COMPLETION: _submit_completion,
    TransitionEvent.FORWARD_FOR_AREA_APPROVAL: _forward_for_area_approval,
    TransitionEvent.APPROVE_COMPLETION: _review_completion,
    TransitionEvent.REJECT_COMPLETION: _review_completion,
}


def authorize_transition(event: TransitionEvent, ctx: TransitionContext) -> None:
    rule = RULES.get(event)
    if rule is None or not rule(ctx):
        raise NotAuthorized(
            f"{ctx.actor.user_type} {ctx.actor.id} may not {event.value} "
            f"issue {ctx.issue.id} at stage {ctx.issue.workflow_stage}.",
            details={"event": event.value, "stage": ctx.issue.workflow_stage},
        )


def authorize_reassign(ctx: TransitionContext) -> None:
    # intake routing records the reporter as assigner; only staff may hand work on
    if _is_admin(ctx.actor):
        return
    if ctx.actor.user_type in STAFF_TYPES and _is_active_assigner(ctx.actor, ctx.active_assignment):
        return
    raise NotAuthorized(
        f"{ctx.actor.user_type} {ctx.actor.id} may not reassign issue {ctx.issue.id}.",
        details={"stage": ctx.issue.workflow_stage},
    )
