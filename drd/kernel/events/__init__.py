"""
Audit event store and event payload types.
"""

from drd.kernel.events.event_store import EventStore
from drd.kernel.events.event_types import (
    BaseEvent,
    IncentiveEvent,
    NotificationEvent,
    PolicyEvent,
    SubmissionEvent,
    TransitionEvent,
)

__all__ = [
    "EventStore",
    "BaseEvent",
    "IncentiveEvent",
    "NotificationEvent",
    "PolicyEvent",
    "SubmissionEvent",
    "TransitionEvent",
]
