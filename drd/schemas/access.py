"""
Reviewer assignment and capability grant schemas.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from drd.kernel.models.permission import AssignmentScope, Capability


class AssignmentRequest(BaseModel):
    reviewer_id: uuid.UUID
    scope: AssignmentScope
    school_id: uuid.UUID


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    reviewer_id: uuid.UUID
    scope: str
    school_id: uuid.UUID
    assigned_by: Optional[uuid.UUID]
    created_at: datetime


class GrantRequest(BaseModel):
    actor_id: uuid.UUID
    capability: Capability


class GrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    actor_id: uuid.UUID
    capability: str
    granted_by: Optional[uuid.UUID]
    granted_at: datetime
    revoked: bool
