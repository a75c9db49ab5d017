"""
In-app notifications produced after committed transitions.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text, JSON, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from drd.kernel.models.base import Base, generate_uuid, utcnow


class Notification(Base):
    """
    A message for one recipient.

    recipient_ref is an actor id, or "uid:<university uid>" when only the
    UID is known (mentors).
    """

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    recipient_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    submission_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_notifications_recipient_time", "recipient_ref", "created_at"),
    )
