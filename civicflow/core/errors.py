# civicflow/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """
    Base of every error the workflow core raises on purpose.

    Each subclass carries the HTTP status the API layer answers with, so
    services stay transport-agnostic and routers never translate by hand.
    """

    status_code: int = 400

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "error": type(self).__name__}
        if self.details:
            body["context"] = self.details
        return body


class ValidationError(WorkflowError):
    """Malformed or missing required input."""

    status_code = 422


class NotAuthorized(WorkflowError):
    """Actor lacks the role or relationship the operation requires."""

    status_code = 403


class InvalidTransition(WorkflowError):
    """Requested stage change is not reachable from the current stage."""

    status_code = 409


class NotFound(WorkflowError):
    status_code = 404


class ConflictError(WorkflowError):
    """A concurrent writer changed the row after it was read."""

    status_code = 409
