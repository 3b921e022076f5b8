"""Base models and shared types."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime.

    Use this instead of datetime.utcnow() so every timestamp we persist or
    compare is timezone-aware.
    """
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    """User permission roles."""
    GUEST = "GUEST"
    USER = "USER"
    CREATOR = "CREATOR"
    MODERATOR = "MODERATOR"
    ADMIN = "ADMIN"


# Generic message
class Message(BaseModel):
    message: str


# Contents of the bearer token issued by the auth collaborator
class TokenPayload(BaseModel):
    sub: Optional[str] = None
    role: UserRole = UserRole.USER
