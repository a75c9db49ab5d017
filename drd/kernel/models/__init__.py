"""
Kernel Data Models

SQLAlchemy models for submissions, their review history, incentive
policies, capability grants, reviewer assignments and the audit log.
"""

from drd.kernel.models.base import Base, TimestampMixin, SoftDeleteMixin, generate_uuid, utcnow, coerce_enum
from drd.kernel.models.permission import (
    AssignmentScope,
    Capability,
    CapabilityGrant,
    ReviewerSchoolAssignment,
    ScopedVerb,
    scoped_capability,
)
from drd.kernel.models.policy import IncentivePolicy, PolicyScope
from drd.kernel.models.submission import (
    APPLICATION_PREFIXES,
    AuthorRole,
    IprType,
    PublicationType,
    Submission,
    SubmissionAuthor,
    SubmissionKind,
    SubmissionStatus,
    assignment_scope_for,
)
from drd.kernel.models.review_history import ReviewHistoryEntry
from drd.kernel.models.notification import Notification
from drd.kernel.models.event_log import EventLog, EventType
from drd.kernel.models.counter import Counter, next_value

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "SoftDeleteMixin",
    "generate_uuid",
    "utcnow",
    "coerce_enum",
    # Access
    "AssignmentScope",
    "Capability",
    "CapabilityGrant",
    "ReviewerSchoolAssignment",
    "ScopedVerb",
    "scoped_capability",
    # Policies
    "IncentivePolicy",
    "PolicyScope",
    # Submissions
    "APPLICATION_PREFIXES",
    "AuthorRole",
    "IprType",
    "PublicationType",
    "Submission",
    "SubmissionAuthor",
    "SubmissionKind",
    "SubmissionStatus",
    "assignment_scope_for",
    "ReviewHistoryEntry",
    # Notifications
    "Notification",
    # Event Log
    "EventLog",
    "EventType",
    # Counters
    "Counter",
    "next_value",
]
