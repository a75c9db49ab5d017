"""Notification inbox endpoints."""

import uuid
from typing import List

from fastapi import APIRouter, Query
from sqlalchemy import select, and_

from drd.api.deps import CurrentActor, DbSession
from drd.kernel.models.base import utcnow
from drd.kernel.models.notification import Notification
from drd.orchestration.errors import NotFound
from drd.schemas.common import ApiResponse, ok
from drd.schemas.notification import NotificationResponse

router = APIRouter()


def _recipient_refs(actor) -> List[str]:
    # Mentors are addressed by university UID
    return [actor.ref, f"uid:{actor.uid}"]


@router.get("", response_model=ApiResponse[List[NotificationResponse]])
async def list_notifications(
    actor: CurrentActor,
    db: DbSession,
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
):
    """The caller's notifications, newest first."""
    query = select(Notification).where(Notification.recipient_ref.in_(_recipient_refs(actor)))
    if unread_only:
        query = query.where(Notification.read_at.is_(None))
    result = await db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
    return ok([
        NotificationResponse.model_validate(n).model_dump(mode="json")
        for n in result.scalars().all()
    ])


@router.post("/{notification_id}/read", response_model=ApiResponse[NotificationResponse])
async def mark_read(notification_id: uuid.UUID, actor: CurrentActor, db: DbSession):
    result = await db.execute(
        select(Notification).where(
            and_(
                Notification.id == notification_id,
                Notification.recipient_ref.in_(_recipient_refs(actor)),
            )
        )
    )
    notification = result.scalars().first()
    if notification is None:
        raise NotFound("Notification not found")
    if notification.read_at is None:
        notification.read_at = utcnow()
        await db.flush()
    return ok(NotificationResponse.model_validate(notification).model_dump(mode="json"))
