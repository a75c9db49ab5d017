"""
Pydantic schemas for API request/response validation.
"""

from drd.schemas.access import (
    AssignmentRequest,
    AssignmentResponse,
    GrantRequest,
    GrantResponse,
)
from drd.schemas.common import (
    ApiResponse,
    ErrorResponse,
    HealthResponse,
    PaginatedData,
    ok,
)
from drd.schemas.notification import NotificationResponse
from drd.schemas.policy import (
    PolicyCreate,
    PolicyResponse,
    PolicyTermsIn,
    PolicyUpdate,
)
from drd.schemas.submission import (
    AuthorIn,
    AuthorResponse,
    HistoryEntryResponse,
    IncentiveActionRequest,
    IprCreate,
    OverrideRequest,
    ResearchCreate,
    SubmissionBase,
    SubmissionResponse,
    SubmissionUpdate,
    TransitionRequest,
)

__all__ = [
    # Access
    "AssignmentRequest",
    "AssignmentResponse",
    "GrantRequest",
    "GrantResponse",
    # Common
    "ApiResponse",
    "ErrorResponse",
    "HealthResponse",
    "PaginatedData",
    "ok",
    # Notifications
    "NotificationResponse",
    # Policies
    "PolicyCreate",
    "PolicyResponse",
    "PolicyTermsIn",
    "PolicyUpdate",
    # Submissions
    "AuthorIn",
    "AuthorResponse",
    "HistoryEntryResponse",
    "IncentiveActionRequest",
    "IprCreate",
    "OverrideRequest",
    "ResearchCreate",
    "SubmissionBase",
    "SubmissionResponse",
    "SubmissionUpdate",
    "TransitionRequest",
]
