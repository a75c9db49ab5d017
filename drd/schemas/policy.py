"""
Incentive policy request/response schemas.

Term fields are passed through to the repository, which validates them with
PolicyTerms; here they are only shaped.
"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from drd.engines.incentives.types import DistributionMethod
from drd.kernel.models.submission import SubmissionKind

PercentageTable = Union[Dict[str, float], List[Dict[str, Any]]]


class PolicyTermsIn(BaseModel):
    distribution_method: DistributionMethod = DistributionMethod.AUTHOR_ROLE_BASED
    base_amount: int = Field(0, ge=0)
    base_points: int = Field(0, ge=0)
    position_based_distribution: PercentageTable = Field(default_factory=dict)
    role_percentages: PercentageTable = Field(default_factory=dict)
    indexing_bonuses: Dict[str, Any] = Field(default_factory=dict)


class PolicyCreate(PolicyTermsIn):
    policy_name: str = Field(..., min_length=1, max_length=200)
    submission_kind: SubmissionKind
    sub_type: str = Field(..., min_length=1, max_length=50)
    variant: str = Field("", max_length=100)
    effective_from: date
    effective_to: Optional[date] = None
    is_active: bool = True


class PolicyUpdate(BaseModel):
    """Only fields that are set are applied. Scope cannot change."""

    policy_name: Optional[str] = Field(None, min_length=1, max_length=200)
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    is_active: Optional[bool] = None
    distribution_method: Optional[DistributionMethod] = None
    base_amount: Optional[int] = Field(None, ge=0)
    base_points: Optional[int] = Field(None, ge=0)
    position_based_distribution: Optional[PercentageTable] = None
    role_percentages: Optional[PercentageTable] = None
    indexing_bonuses: Optional[Dict[str, Any]] = None


class PolicyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    policy_name: str
    submission_kind: str
    sub_type: str
    variant: str
    version: int
    is_active: bool
    effective_from: date
    effective_to: Optional[date]
    distribution_method: str
    base_amount: int
    base_points: int
    position_based_distribution: Dict[str, Any]
    role_percentages: Dict[str, Any]
    indexing_bonuses: Dict[str, Any]
    created_by: Optional[uuid.UUID]
    updated_by: Optional[uuid.UUID]
    deactivated_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
