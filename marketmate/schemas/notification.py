from datetime import datetime

from pydantic import BaseModel


class NotificationOut(BaseModel):
    id: str
    type: str
    metadata: dict
    is_read: bool
    created_at: datetime
