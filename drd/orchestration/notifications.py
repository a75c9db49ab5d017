"""
Notification emission.

The workflow engine hands a NotificationEvent to a Notifier after each
committed transition. Delivery runs in its own unit of work; the engine
logs and swallows any failure, so a transition is never undone by it.
"""

import uuid
from typing import Callable, List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from drd.kernel.events.event_types import NotificationEvent
from drd.kernel.models.notification import Notification
from drd.logging_config import get_logger

logger = get_logger(__name__)

_TITLES = {
    "submit": "Submission received",
    "mentor_approve": "Approved by mentor",
    "mentor_reject": "Returned by mentor",
    "start_review": "DRD review started",
    "recommend": "Recommended for approval",
    "request_changes": "Changes requested",
    "resubmit": "Submission resubmitted",
    "reject": "Submission rejected",
    "approve": "Submission approved",
    "submit_to_govt": "Submitted to government office",
    "record_govt_filing": "Government application filed",
    "publish": "Published",
    "govt_reject": "Rejected by government office",
    "complete": "Incentive processed",
    "override": "Status changed by administrator",
}


class Notifier(Protocol):
    async def emit(self, event: NotificationEvent) -> None:
        ...


class DatabaseNotifier:
    """Stores one Notification row per target in a fresh session."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def emit(self, event: NotificationEvent) -> None:
        if not event.target_refs:
            return
        action = event.event_type.split(".", 1)[-1]
        title = f"{event.application_number}: {_TITLES.get(action, 'Status updated')}"
        message = f"Status changed from {event.from_status} to {event.to_status}."
        if event.comments:
            message = f"{message} Comments: {event.comments}"

        async with self.session_factory() as session:
            try:
                session.add_all([
                    Notification(
                        recipient_ref=target,
                        event_type=event.event_type,
                        submission_id=event.submission_id,
                        actor_id=uuid.UUID(event.actor_ref) if event.actor_ref else None,
                        title=title,
                        message=message,
                        payload=event.model_dump(mode="json"),
                    )
                    for target in event.target_refs
                ])
                await session.commit()
            except Exception:
                await session.rollback()
                logger.error(
                    "Failed to store notifications",
                    extra={"event_type": event.event_type, "submission_id": str(event.submission_id)},
                )
                raise
        logger.debug(
            "Notifications stored",
            extra={"event_type": event.event_type, "recipients": len(event.target_refs)},
        )


class RecordingNotifier:
    """Keeps events in memory. Used where no delivery is wanted."""

    def __init__(self) -> None:
        self.events: List[NotificationEvent] = []

    async def emit(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def last(self) -> Optional[NotificationEvent]:
        return self.events[-1] if self.events else None
