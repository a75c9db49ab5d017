"""
Value types for the incentive calculator.

Policy terms are validated here so that a malformed policy is rejected when
it is written, not when a submission is being approved.
"""

import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

POSITION_BUCKETS = ("1", "2", "3", "4", "5", "6+")
HUNDRED = Decimal(100)


class DistributionMethod(str, Enum):
    AUTHOR_POSITION_BASED = "author_position_based"
    AUTHOR_ROLE_BASED = "author_role_based"
    EQUAL_SPLIT = "equal_split"


class Bonus(BaseModel):
    """A flat {amount, points} pair."""

    model_config = ConfigDict(frozen=True)

    amount: int = Field(0, ge=0)
    points: int = Field(0, ge=0)


class CategoryBonus(Bonus):
    """Flat indexing-category bonus, optionally gated on impact factor (strictly above)."""

    min_impact_factor: Optional[float] = None


class SjrRange(Bonus):
    """Inclusive SJR range."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    min_sjr: float = Field(alias="min")
    max_sjr: float = Field(alias="max")

    @model_validator(mode="after")
    def _ordered(self) -> "SjrRange":
        if self.min_sjr > self.max_sjr:
            raise ValueError(f"SJR range min {self.min_sjr} exceeds max {self.max_sjr}")
        return self

    def contains(self, sjr: float) -> bool:
        return self.min_sjr <= sjr <= self.max_sjr


class IndexingBonuses(BaseModel):
    category_bonuses: Dict[str, CategoryBonus] = Field(default_factory=dict)
    quartile_bonuses: Dict[str, Bonus] = Field(default_factory=dict)
    sjr_ranges: List[SjrRange] = Field(default_factory=list)
    # scheme -> tier key -> bonus, e.g. {"naas": {"6": ..., "8": ..., "10": ...}}
    rating_bonuses: Dict[str, Dict[str, Bonus]] = Field(default_factory=dict)
    international_bonus: Optional[Bonus] = None
    best_paper_award_bonus: Optional[Bonus] = None


def _percentage_table(value: Any, key_field: str) -> Any:
    """Accept either {key: pct} or [{key_field: key, "percentage": pct}]."""
    if isinstance(value, list):
        table = {}
        for row in value:
            if not isinstance(row, dict):
                raise ValueError("percentage rows must be objects")
            key = row.get(key_field)
            if key is None:
                raise ValueError(f"percentage row is missing '{key_field}'")
            table[str(key)] = row.get("percentage", 0)
        return table
    return value


class PolicyTerms(BaseModel):
    """The pricing part of an IncentivePolicy, independent of persistence."""

    policy_id: Optional[uuid.UUID] = None
    version: Optional[int] = None
    distribution_method: DistributionMethod = DistributionMethod.AUTHOR_POSITION_BASED
    base_amount: int = Field(0, ge=0)
    base_points: int = Field(0, ge=0)
    position_based_distribution: Dict[str, Decimal] = Field(default_factory=dict)
    role_percentages: Dict[str, Decimal] = Field(default_factory=dict)
    indexing_bonuses: IndexingBonuses = Field(default_factory=IndexingBonuses)

    @field_validator("position_based_distribution", mode="before")
    @classmethod
    def _position_rows(cls, v: Any) -> Any:
        return _percentage_table(v, "position")

    @field_validator("role_percentages", mode="before")
    @classmethod
    def _role_rows(cls, v: Any) -> Any:
        return _percentage_table(v, "role")

    @field_validator("position_based_distribution")
    @classmethod
    def _position_keys(cls, v: Dict[str, Decimal]) -> Dict[str, Decimal]:
        unknown = sorted(set(v) - set(POSITION_BUCKETS))
        if unknown:
            raise ValueError(f"unknown position buckets: {', '.join(unknown)}")
        _check_percentages(v, "position")
        return v

    @field_validator("role_percentages")
    @classmethod
    def _role_values(cls, v: Dict[str, Decimal]) -> Dict[str, Decimal]:
        _check_percentages(v, "role")
        return v

    @classmethod
    def from_policy(cls, policy: Any) -> "PolicyTerms":
        """Build terms from an IncentivePolicy row."""
        return cls(
            policy_id=policy.id,
            version=policy.version,
            distribution_method=policy.distribution_method,
            base_amount=policy.base_amount or 0,
            base_points=policy.base_points or 0,
            position_based_distribution=policy.position_based_distribution or {},
            role_percentages=policy.role_percentages or {},
            indexing_bonuses=policy.indexing_bonuses or {},
        )


def _check_percentages(table: Dict[str, Decimal], label: str) -> None:
    for key, pct in table.items():
        if pct < 0 or pct > HUNDRED:
            raise ValueError(f"{label} percentage for '{key}' must be between 0 and 100")
    if sum(table.values(), Decimal(0)) > HUNDRED:
        raise ValueError(f"{label} percentages sum to more than 100")


class IndexingMetadata(BaseModel):
    """Publication attributes the calculator prices. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    quartile: Optional[str] = None
    sjr: Optional[float] = Field(None, ge=0)
    impact_factor: Optional[float] = Field(None, ge=0)
    naas_rating: Optional[float] = Field(None, ge=0)
    ratings: Dict[str, Union[float, str]] = Field(default_factory=dict)
    indexing_categories: List[str] = Field(default_factory=list)
    conference_sub_type: Optional[str] = None
    project_category: Optional[str] = None
    project_type: Optional[str] = None
    is_international: bool = False
    best_paper_award: bool = False

    def rating_values(self) -> Dict[str, Union[float, str]]:
        values = dict(self.ratings)
        if self.naas_rating is not None and "naas" not in values:
            values["naas"] = self.naas_rating
        return values


class AuthorInput(BaseModel):
    author_ref: str
    person_ref: Optional[str] = None
    author_role: str = "co_author"
    position: int
    is_internal: bool = True
    is_international: bool = False
    is_student: bool = False


class IncentiveInput(BaseModel):
    authors: List[AuthorInput]
    metadata: IndexingMetadata = Field(default_factory=IndexingMetadata)


class MatchedBonus(BaseModel):
    bucket: str
    key: str
    amount: int
    points: int


class AuthorShare(BaseModel):
    author_ref: str
    person_ref: Optional[str] = None
    position: int
    author_role: str
    percentage: Decimal
    amount_share: int
    points_share: int


class IncentiveResult(BaseModel):
    pool_amount: int
    pool_points: int
    total_amount: int
    total_points: int
    unallocated_amount: int
    unallocated_points: int
    distribution_method: Optional[DistributionMethod] = None
    policy_id: Optional[uuid.UUID] = None
    policy_version: Optional[int] = None
    matched_bonuses: List[MatchedBonus] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    per_author: List[AuthorShare] = Field(default_factory=list)

    def with_warning(self, warning: str) -> "IncentiveResult":
        if warning in self.warnings:
            return self
        return self.model_copy(update={"warnings": [*self.warnings, warning]})
