"""Audit log document."""
import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from beanie import Document, Indexed
from pydantic import BaseModel, Field

from .base import utc_now


class AuditAction(str, Enum):
    ILLEGAL_CONTENT_DETECTED = "ILLEGAL_CONTENT_DETECTED"
    VIDEO_APPROVED = "VIDEO_APPROVED"
    VIDEO_REJECTED = "VIDEO_REJECTED"
    VIDEO_DELETED = "VIDEO_DELETED"
    USER_BANNED = "USER_BANNED"


SYSTEM_ACTOR = "SYSTEM"


class AuditEntry(BaseModel):
    action: AuditAction
    entity_type: str
    entity_id: str
    performed_by: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


class AuditLog(Document, AuditEntry):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    entity_id: Indexed(str)  # type: ignore

    class Settings:
        name = "audit_logs"
