from civicflow.schemas.auth import LoginRequest, TokenResponse, MeResponse
from civicflow.schemas.issues import IssueCreateRequest, IssueResponse, AssignmentResponse
from civicflow.schemas.work_progress import WorkProgressSubmitRequest, WorkProgressResponse
from civicflow.schemas.tenders import TenderCreateRequest, TenderResponse, BidResponse
from civicflow.schemas.events import WorkflowEventResponse
