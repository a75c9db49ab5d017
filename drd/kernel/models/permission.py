"""
Capability grants and reviewer-to-school assignments.

Capabilities form a closed set. A key either is a member of Capability or it
is ignored; there is no prefix, case-folding or substring matching anywhere.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, func, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from drd.kernel.models.base import Base, generate_uuid, utcnow


class AssignmentScope(str, Enum):
    """Independent reviewer-assignment scopes, one per submission family."""
    IPR = "ipr"
    RESEARCH = "research"
    BOOK = "book"
    CONFERENCE = "conference"
    GRANT = "grant"


class Capability(str, Enum):
    """Every capability key the service understands."""

    IPR_FILE_NEW = "ipr_file_new"
    IPR_REVIEW = "ipr_review"
    IPR_APPROVE = "ipr_approve"
    IPR_ASSIGN_SCHOOL = "ipr_assign_school"

    RESEARCH_FILE_NEW = "research_file_new"
    RESEARCH_REVIEW = "research_review"
    RESEARCH_APPROVE = "research_approve"
    RESEARCH_ASSIGN_SCHOOL = "research_assign_school"

    BOOK_FILE_NEW = "book_file_new"
    BOOK_REVIEW = "book_review"
    BOOK_APPROVE = "book_approve"
    BOOK_ASSIGN_SCHOOL = "book_assign_school"

    CONFERENCE_FILE_NEW = "conference_file_new"
    CONFERENCE_REVIEW = "conference_review"
    CONFERENCE_APPROVE = "conference_approve"
    CONFERENCE_ASSIGN_SCHOOL = "conference_assign_school"

    GRANT_FILE_NEW = "grant_file_new"
    GRANT_REVIEW = "grant_review"
    GRANT_APPROVE = "grant_approve"
    GRANT_ASSIGN_SCHOOL = "grant_assign_school"

    FINANCE_PROCESS = "finance_process"
    INCENTIVE_POLICY_MANAGE = "incentive_policy_manage"
    SYSTEM_OVERRIDE = "system_override"


class ScopedVerb(str, Enum):
    FILE_NEW = "file_new"
    REVIEW = "review"
    APPROVE = "approve"
    ASSIGN_SCHOOL = "assign_school"


_SCOPED: dict[tuple[AssignmentScope, ScopedVerb], Capability] = {
    (scope, verb): Capability(f"{scope.value}_{verb.value}")
    for scope in AssignmentScope
    for verb in ScopedVerb
}


def scoped_capability(scope: AssignmentScope, verb: ScopedVerb) -> Capability:
    """Return the capability for a verb inside an assignment scope."""
    return _SCOPED[(scope, verb)]


class CapabilityGrant(Base):
    """A capability held by an actor. Revocation keeps the row."""

    __tablename__ = "capability_grants"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    actor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )
    capability: Mapped[Capability] = mapped_column(
        String(50),
        nullable=False,
    )
    granted_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        default=utcnow,
        nullable=False,
    )
    revoked: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    revoked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_capability_grants_actor_capability", "actor_id", "capability"),
    )

    def __repr__(self) -> str:
        return f"<CapabilityGrant {self.actor_id} {self.capability}>"


class ReviewerSchoolAssignment(Base):
    """Many-to-many link between a DRD reviewer and the schools they cover, per scope."""

    __tablename__ = "reviewer_school_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    reviewer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )
    scope: Mapped[AssignmentScope] = mapped_column(
        String(50),
        nullable=False,
    )
    school_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
    )
    assigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("reviewer_id", "scope", "school_id", name="uq_reviewer_scope_school"),
        Index("ix_reviewer_assignments_scope_school", "scope", "school_id"),
    )
