"""
Event payload definitions using Pydantic for validation.

Audit payloads are logged to the event store; NotificationEvent is what the
workflow engine hands to the notifier after a transition commits.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """Base event payload structure."""

    model_config = ConfigDict(extra="allow")

    timestamp: datetime = Field(default_factory=_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# Submission events

class SubmissionEvent(BaseEvent):
    application_number: Optional[str] = None
    kind: Optional[str] = None
    sub_type: Optional[str] = None
    school_id: Optional[uuid.UUID] = None


class TransitionEvent(SubmissionEvent):
    """A status change, actor-driven or override."""

    action: str
    from_status: str
    to_status: str
    comments: Optional[str] = None
    history_sequence: int


class IncentiveEvent(SubmissionEvent):
    total_amount: int = 0
    total_points: int = 0
    policy_id: Optional[uuid.UUID] = None
    policy_version: Optional[int] = None
    warnings: List[str] = Field(default_factory=list)


# Policy events

class PolicyEvent(BaseEvent):
    scope: str
    version: int
    is_active: bool
    effective_from: Optional[str] = None
    effective_to: Optional[str] = None
    changed_fields: List[str] = Field(default_factory=list)


# Notifications

class NotificationEvent(BaseModel):
    """Emitted fire-and-forget after every committed transition."""

    event_type: str
    submission_id: uuid.UUID
    application_number: str
    actor_ref: Optional[str] = None
    target_refs: List[str] = Field(default_factory=list)
    from_status: str
    to_status: str
    comments: Optional[str] = None
