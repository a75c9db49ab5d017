"""
Submission models: IPR applications and research contributions.

Both kinds share one table and one shape; the kind decides which workflow
governs `status` and which prefix the application number carries.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, JSON, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from drd.kernel.models.base import Base, TimestampMixin, SoftDeleteMixin, generate_uuid, coerce_enum
from drd.kernel.models.permission import AssignmentScope
from drd.kernel.models.policy import PolicyScope


class SubmissionKind(str, Enum):
    IPR = "ipr"
    RESEARCH = "research"


class SubmissionStatus(str, Enum):
    """Union of the IPR and research workflow states."""

    DRAFT = "draft"
    PENDING_MENTOR_APPROVAL = "pending_mentor_approval"
    SUBMITTED = "submitted"
    CHANGES_REQUIRED = "changes_required"
    RESUBMITTED = "resubmitted"

    # IPR
    UNDER_DRD_REVIEW = "under_drd_review"
    RECOMMENDED_TO_HEAD = "recommended_to_head"
    DRD_HEAD_APPROVED = "drd_head_approved"
    SUBMITTED_TO_GOVT = "submitted_to_govt"
    GOVT_APPLICATION_FILED = "govt_application_filed"
    PUBLISHED = "published"
    DRD_REJECTED = "drd_rejected"

    # Research
    UNDER_REVIEW = "under_review"
    RECOMMENDED = "recommended"
    APPROVED = "approved"

    COMPLETED = "completed"
    REJECTED = "rejected"


class IprType(str, Enum):
    PATENT = "patent"
    COPYRIGHT = "copyright"
    TRADEMARK = "trademark"
    DESIGN = "design"


class PublicationType(str, Enum):
    RESEARCH_PAPER = "research_paper"
    BOOK = "book"
    BOOK_CHAPTER = "book_chapter"
    CONFERENCE_PAPER = "conference_paper"
    GRANT_PROPOSAL = "grant_proposal"


class AuthorRole(str, Enum):
    FIRST_AUTHOR = "first_author"
    CORRESPONDING_AUTHOR = "corresponding_author"
    FIRST_AND_CORRESPONDING_AUTHOR = "first_and_corresponding_author"
    CO_AUTHOR = "co_author"
    SENIOR_AUTHOR = "senior_author"


APPLICATION_PREFIXES = {
    IprType.PATENT.value: "PAT",
    IprType.COPYRIGHT.value: "CPY",
    IprType.TRADEMARK.value: "TRM",
    IprType.DESIGN.value: "DES",
    PublicationType.RESEARCH_PAPER.value: "RP",
    PublicationType.BOOK.value: "BK",
    PublicationType.BOOK_CHAPTER.value: "BC",
    PublicationType.CONFERENCE_PAPER.value: "CP",
    PublicationType.GRANT_PROPOSAL.value: "GP",
}

_PUBLICATION_SCOPES = {
    PublicationType.RESEARCH_PAPER.value: AssignmentScope.RESEARCH,
    PublicationType.BOOK.value: AssignmentScope.BOOK,
    PublicationType.BOOK_CHAPTER.value: AssignmentScope.BOOK,
    PublicationType.CONFERENCE_PAPER.value: AssignmentScope.CONFERENCE,
    PublicationType.GRANT_PROPOSAL.value: AssignmentScope.GRANT,
}


def assignment_scope_for(kind: SubmissionKind, sub_type: str) -> AssignmentScope:
    """Capability/assignment scope for a kind and IPR or publication type."""
    if SubmissionKind(kind) == SubmissionKind.IPR:
        return AssignmentScope.IPR
    return _PUBLICATION_SCOPES.get(sub_type, AssignmentScope.RESEARCH)


class Submission(Base, TimestampMixin, SoftDeleteMixin):
    """
    One IPR application or research contribution.

    `status` is only ever changed through a conditional UPDATE keyed on the
    expected current status (see WorkflowEngine). `incentive_result` is
    written once at approval and only emptied by an explicit clear.
    """

    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    kind: Mapped[SubmissionKind] = mapped_column(String(20), nullable=False, index=True)
    application_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    sub_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Organisation
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False, index=True)
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True)

    # Filer
    filer_id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False, index=True)
    filer_role: Mapped[str] = mapped_column(String(50), nullable=False)
    mentor_uid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Lifecycle
    status: Mapped[SubmissionStatus] = mapped_column(
        String(50),
        nullable=False,
        default=SubmissionStatus.DRAFT,
        index=True,
    )
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status_changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Opaque to the workflow
    indexing_metadata: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    document_paths: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    publication_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    govt_application_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    publication_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Incentive
    incentive_result: Mapped[Optional[dict]] = mapped_column(JSON(none_as_null=True), nullable=True)
    incentive_policy_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("incentive_policies.id", ondelete="RESTRICT"),
        nullable=True,
    )
    incentive_warning: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    incentive_calculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    authors: Mapped[List["SubmissionAuthor"]] = relationship(
        back_populates="submission",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SubmissionAuthor.position",
    )

    __table_args__ = (
        Index("ix_submissions_kind_status", "kind", "status"),
    )

    @property
    def kind_enum(self) -> SubmissionKind:
        return coerce_enum(SubmissionKind, self.kind)

    @property
    def status_enum(self) -> SubmissionStatus:
        return coerce_enum(SubmissionStatus, self.status)

    @property
    def assignment_scope(self) -> AssignmentScope:
        return assignment_scope_for(self.kind_enum, self.sub_type)

    @property
    def policy_scope(self) -> PolicyScope:
        meta = self.indexing_metadata or {}
        variant = ""
        if self.sub_type == PublicationType.CONFERENCE_PAPER.value:
            variant = meta.get("conference_sub_type") or ""
        elif self.sub_type == PublicationType.GRANT_PROPOSAL.value:
            category = meta.get("project_category")
            project_type = meta.get("project_type")
            if category and project_type:
                variant = f"{category}:{project_type}"
        return PolicyScope(self.kind_enum.value, self.sub_type, variant)

    @property
    def reference_date(self) -> Optional[date]:
        """Publication date, else the date of first submission."""
        if self.publication_date is not None:
            return self.publication_date
        if self.submitted_at is not None:
            return self.submitted_at.date()
        return None

    def __repr__(self) -> str:
        return f"<Submission {self.application_number} {self.status}>"


class SubmissionAuthor(Base):
    """An author/inventor on a submission. position is 1-based and unique per submission."""

    __tablename__ = "submission_authors"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    person_ref: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    author_role: Mapped[AuthorRole] = mapped_column(String(50), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_international: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_student: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    designation: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    affiliation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    submission: Mapped[Submission] = relationship(back_populates="authors")
