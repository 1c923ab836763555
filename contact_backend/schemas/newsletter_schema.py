from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..models.subscription import SubscriptionStatus


class NewsletterRequest(BaseModel):
    # Se valida a mano (validation.py) para devolver "Invalid email"
    email: str = ""


class SubscriberOut(BaseModel):
    id: int
    email: str
    created_at: Optional[datetime] = None
    subscription_id: Optional[int] = None
    status: Optional[SubscriptionStatus] = None
    subscribed_at: Optional[datetime] = None
    unsubscribed_at: Optional[datetime] = None
