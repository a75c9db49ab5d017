"""Notification schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_type: str
    submission_id: Optional[uuid.UUID]
    actor_id: Optional[uuid.UUID]
    title: str
    message: str
    payload: dict
    read_at: Optional[datetime]
    created_at: datetime
