"""
Submission request/response schemas.
"""

import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from drd.engines.incentives.types import IndexingMetadata
from drd.kernel.models.submission import AuthorRole, IprType, PublicationType, SubmissionStatus


class AuthorIn(BaseModel):
    """An author/inventor as supplied by the filer."""

    person_ref: Optional[uuid.UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    author_role: AuthorRole = AuthorRole.CO_AUTHOR
    position: int = Field(..., ge=1)
    is_internal: bool = True
    is_international: bool = False
    is_student: bool = False
    designation: Optional[str] = Field(None, max_length=100)
    affiliation: Optional[str] = None


class SubmissionBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    school_id: uuid.UUID
    department_id: Optional[uuid.UUID] = None
    mentor_uid: Optional[str] = Field(None, max_length=64)
    publication_date: Optional[date] = None
    indexing_metadata: IndexingMetadata = Field(default_factory=IndexingMetadata)
    document_paths: List[str] = Field(default_factory=list)
    authors: List[AuthorIn] = Field(..., min_length=1)


class IprCreate(SubmissionBase):
    ipr_type: IprType


class ResearchCreate(SubmissionBase):
    publication_type: PublicationType


class SubmissionUpdate(BaseModel):
    """Filer edits; only fields that are set are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    department_id: Optional[uuid.UUID] = None
    mentor_uid: Optional[str] = Field(None, max_length=64)
    publication_date: Optional[date] = None
    indexing_metadata: Optional[IndexingMetadata] = None
    document_paths: Optional[List[str]] = None
    authors: Optional[List[AuthorIn]] = Field(None, min_length=1)


class AuthorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    person_ref: Optional[uuid.UUID]
    name: str
    author_role: str
    position: int
    is_internal: bool
    is_international: bool
    is_student: bool
    designation: Optional[str]
    affiliation: Optional[str]


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: str
    application_number: str
    title: str
    sub_type: str
    school_id: uuid.UUID
    department_id: Optional[uuid.UUID]
    filer_id: uuid.UUID
    filer_role: str
    mentor_uid: Optional[str]
    status: str
    status_changed_at: Optional[datetime]
    submitted_at: Optional[datetime]
    publication_date: Optional[date]
    reference_date: Optional[date]
    indexing_metadata: dict
    document_paths: List[str]
    govt_application_id: Optional[str]
    publication_id: Optional[str]
    incentive_result: Optional[dict]
    incentive_policy_id: Optional[uuid.UUID]
    incentive_warning: Optional[str]
    incentive_calculated_at: Optional[datetime]
    authors: List[AuthorResponse]
    created_at: datetime
    updated_at: datetime


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    action: str
    from_status: str
    to_status: str
    actor_id: Optional[uuid.UUID]
    comments: Optional[str]
    details: dict
    created_at: datetime


class TransitionRequest(BaseModel):
    """Body for any named transition."""

    comments: Optional[str] = None
    # The status the caller last saw; a mismatch is reported as a race
    expected_status: Optional[SubmissionStatus] = None
    govt_application_id: Optional[str] = Field(None, max_length=100)
    publication_id: Optional[str] = Field(None, max_length=100)


class OverrideRequest(BaseModel):
    to_status: SubmissionStatus
    comments: str = Field(..., min_length=1)
    expected_status: Optional[SubmissionStatus] = None


class IncentiveActionRequest(BaseModel):
    comments: Optional[str] = None
