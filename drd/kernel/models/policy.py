"""
Incentive policy model.

Policies are versioned per scope. For a given scope at most one active policy
may cover any date; the PolicyRepository enforces this on every write.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Integer, String, JSON, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from drd.kernel.models.base import Base, TimestampMixin, generate_uuid


@dataclass(frozen=True)
class PolicyScope:
    """
    What a policy prices.

    submission_kind: "ipr" or "research"
    sub_type: IPR type (patent, copyright, ...) or publication type
    variant: conference sub-type, "project_category:project_type" for grants, else ""
    """

    submission_kind: str
    sub_type: str
    variant: str = ""

    def __str__(self) -> str:
        parts = [self.submission_kind, self.sub_type]
        if self.variant:
            parts.append(self.variant)
        return "/".join(parts)


class IncentivePolicy(Base, TimestampMixin):
    """Time-bound incentive terms for one scope."""

    __tablename__ = "incentive_policies"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    policy_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Scope
    submission_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    sub_type: Mapped[str] = mapped_column(String(50), nullable=False)
    variant: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Validity window, inclusive on both ends; effective_to NULL = open-ended
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Terms
    distribution_method: Mapped[str] = mapped_column(String(50), nullable=False)
    base_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    base_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    position_based_distribution: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    role_percentages: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    indexing_bonuses: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True)
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("submission_kind", "sub_type", "variant", "version", name="uq_policy_scope_version"),
        Index("ix_incentive_policies_scope_active", "submission_kind", "sub_type", "variant", "is_active"),
    )

    @property
    def scope(self) -> PolicyScope:
        return PolicyScope(self.submission_kind, self.sub_type, self.variant or "")

    def covers(self, reference_date: date) -> bool:
        if self.effective_from > reference_date:
            return False
        return self.effective_to is None or self.effective_to >= reference_date

    def __repr__(self) -> str:
        return f"<IncentivePolicy {self.scope} v{self.version}>"
