"""User document as far as this service needs it.

Accounts are owned by the auth collaborator; the pipeline only reads the role
(creator verification) and downgrades it on an illegal-content ban.
"""
import uuid
from datetime import datetime
from typing import Optional

from beanie import Document
from pydantic import Field

from .base import UserRole


class User(Document):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    username: Optional[str] = Field(default=None, max_length=50)
    role: UserRole = UserRole.USER
    is_active: bool = True
    role_revoked_at: Optional[datetime] = None

    class Settings:
        name = "users"
        use_state_management = True
