# civicflow/core/workflow_graph.py
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Optional, Set, Tuple

from civicflow.models.enums import WorkflowStage, IssueStatus


class TransitionEvent(str, Enum):
    AUTO_ASSIGN_AREA = "auto_assign_area"
    ASSIGN_AREA = "assign_area"
    ASSIGN_DEPARTMENT = "assign_department"
    AWARD_CONTRACTOR = "award_contractor"
    START_WORK = "start_work"
    SUBMIT_COMPLETION = "submit_completion"
    FORWARD_FOR_AREA_APPROVAL = "forward_for_area_approval"
    APPROVE_COMPLETION = "approve_completion"
    REJECT_COMPLETION = "reject_completion"


S = WorkflowStage
E = TransitionEvent

ALLOWED_TRANSITIONS: Dict[Tuple[WorkflowStage, TransitionEvent], WorkflowStage] = {
    (S.reported, E.AUTO_ASSIGN_AREA): S.area_review,
    (S.reported, E.ASSIGN_AREA): S.area_review,

    (S.area_review, E.ASSIGN_DEPARTMENT): S.department_assigned,

    (S.department_assigned, E.AWARD_CONTRACTOR): S.contractor_assigned,

    (S.department_assigned, E.START_WORK): S.in_progress,
    (S.contractor_assigned, E.START_WORK): S.in_progress,

    (S.in_progress, E.SUBMIT_COMPLETION): S.department_review,

    (S.department_review, E.FORWARD_FOR_AREA_APPROVAL): S.area_approval,

    (S.department_review, E.APPROVE_COMPLETION): S.resolved,
    (S.area_approval, E.APPROVE_COMPLETION): S.resolved,

    # rework loop: a rejected record hands the issue back to the submitter
    (S.department_review, E.REJECT_COMPLETION): S.in_progress,
    (S.area_approval, E.REJECT_COMPLETION): S.in_progress,
}

# Reassignment keeps the stage; only these stages have a hand-off to replace.
REASSIGNABLE_STAGES: FrozenSet[WorkflowStage] = frozenset({
    S.area_review,
    S.department_assigned,
    S.contractor_assigned,
    S.in_progress,
})

STAGE_STATUS: Dict[WorkflowStage, IssueStatus] = {
    S.reported: IssueStatus.pending,
    S.area_review: IssueStatus.pending,
    S.department_assigned: IssueStatus.pending,
    S.contractor_assigned: IssueStatus.pending,
    S.in_progress: IssueStatus.in_progress,
    S.department_review: IssueStatus.in_progress,
    S.area_approval: IssueStatus.in_progress,
    S.resolved: IssueStatus.resolved,
}


def next_stage(current: WorkflowStage, event: TransitionEvent) -> Optional[WorkflowStage]:
    return ALLOWED_TRANSITIONS.get((current, event))


def stage_edges() -> Set[Tuple[WorkflowStage, WorkflowStage]]:
    """Directed (from, to) pairs reachable by some event."""
    return {(src, dst) for (src, _), dst in ALLOWED_TRANSITIONS.items()}
