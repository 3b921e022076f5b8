"""Subscription document, written by the payment collaborator and read here."""
import uuid
from datetime import datetime
from enum import Enum

from beanie import Document, Indexed
from pydantic import Field

from .base import utc_now


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class Subscription(Document):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    subscriber_id: Indexed(str)  # type: ignore
    creator_id: Indexed(str)  # type: ignore
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "subscriptions"
