from civicflow.models.profile import Profile
from civicflow.models.location import State, District, AdministrativeArea
from civicflow.models.department import Department
from civicflow.models.issue import Issue
from civicflow.models.assignment import IssueAssignment
from civicflow.models.work_progress import WorkProgressRecord
from civicflow.models.tender import Tender, TenderBid
from civicflow.models.workflow_event import WorkflowEvent
from civicflow.models.audit_log import AuditLog
from civicflow.models.idempotency_key import IdempotencyKeyRecord
