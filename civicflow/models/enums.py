#civicflow/models/enums.py
from __future__ import annotations
from enum import Enum


class UserType(str, Enum):
    citizen = "citizen"
    area_super_admin = "area_super_admin"
    department_admin = "department_admin"
    contractor = "contractor"
    admin = "admin"


class WorkflowStage(str, Enum):
    reported = "reported"
    area_review = "area_review"
    department_assigned = "department_assigned"
    contractor_assigned = "contractor_assigned"
    in_progress = "in_progress"
    department_review = "department_review"
    area_approval = "area_approval"
    resolved = "resolved"


class IssueStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    resolved = "resolved"


class IssueCategory(str, Enum):
    roads = "roads"
    utilities = "utilities"
    environment = "environment"
    safety = "safety"
    parks = "parks"
    other = "other"


class IssuePriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class DepartmentCategory(str, Enum):
    roads = "roads"
    utilities = "utilities"
    environment = "environment"
    safety = "safety"
    parks = "parks"
    planning = "planning"
    finance = "finance"
    administration = "administration"


class AssignmentType(str, Enum):
    area_admin = "area_admin"
    department_admin = "department_admin"
    contractor = "contractor"


class AssignmentStatus(str, Enum):
    active = "active"
    completed = "completed"
    reassigned = "reassigned"
    cancelled = "cancelled"


class WorkProgressStatus(str, Enum):
    submitted = "submitted"
    under_review = "under_review"
    approved = "approved"
    rejected = "rejected"


class TenderStatus(str, Enum):
    available = "available"
    awarded = "awarded"
    cancelled = "cancelled"


class BidStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class EventType(str, Enum):
    issue_assigned = "issue_assigned"
    issue_resolved = "issue_resolved"
    points_awarded = "points_awarded"
    work_submitted = "work_submitted"
    work_rejected = "work_rejected"
