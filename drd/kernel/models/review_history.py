"""
Review history: the per-submission, append-only transition log.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, JSON, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from drd.kernel.models.base import Base, generate_uuid, utcnow


class ReviewHistoryEntry(Base):
    """
    One applied transition (or incentive maintenance action).

    Rows are inserted and never updated or deleted. `sequence` is the
    append order within a submission, starting at 1.
    """

    __tablename__ = "review_history"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("submissions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    from_status: Mapped[str] = mapped_column(String(50), nullable=False)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("submission_id", "sequence", name="uq_review_history_sequence"),
    )

    def __repr__(self) -> str:
        return f"<ReviewHistoryEntry #{self.sequence} {self.from_status}->{self.to_status}>"
