# civicflow/core/deps.py
from typing import Optional

from fastapi import Request


def get_request_id(request: Request) -> Optional[str]:
    """Request id assigned by RequestIdMiddleware (absent outside HTTP)."""
    return getattr(request.state, "request_id", None)
