"""
Immutable event log for audit trail.

Every state mutation (transitions, policy edits, grants, assignments) is
logged here inside the same unit of work that performs it.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, func, Index, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from drd.kernel.models.base import Base, generate_uuid


class EventType(str, Enum):
    """All event types for the audit log."""

    # Submission events
    SUBMISSION_CREATED = "submission.created"
    SUBMISSION_UPDATED = "submission.updated"
    SUBMISSION_DELETED = "submission.deleted"
    SUBMISSION_STATUS_CHANGED = "submission.status_changed"
    SUBMISSION_STATUS_OVERRIDDEN = "submission.status_overridden"

    # Incentive events
    INCENTIVE_CALCULATED = "incentive.calculated"
    INCENTIVE_CLEARED = "incentive.cleared"
    INCENTIVE_POLICY_MISSING = "incentive.policy_missing"

    # Policy events
    POLICY_CREATED = "policy.created"
    POLICY_UPDATED = "policy.updated"
    POLICY_DEACTIVATED = "policy.deactivated"
    POLICY_DELETED = "policy.deleted"

    # Access events
    CAPABILITY_GRANTED = "access.capability_granted"
    CAPABILITY_REVOKED = "access.capability_revoked"
    SCHOOL_ASSIGNED = "access.school_assigned"
    SCHOOL_UNASSIGNED = "access.school_unassigned"


class EventLog(Base):
    """
    Immutable audit event log.

    This table is append-only - no updates or deletes allowed.
    """

    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )

    event_type: Mapped[EventType] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    # Entity reference
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )

    # Actor
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,  # System events may not have a user
        index=True,
    )

    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_event_logs_entity", "entity_type", "entity_id"),
        Index("ix_event_logs_type_time", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.event_type} {self.entity_type}:{self.entity_id}>"
