from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    notification_id: str
    recipient_id: str
    recipient_role: str
    message: str
    type: str
    trigger_role: str
    is_read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
