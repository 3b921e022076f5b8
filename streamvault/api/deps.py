"""Authentication dependencies with RBAC support.

Tokens are issued by the auth service; this service only verifies them.
"""
from dataclasses import dataclass
from typing import Annotated, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError

from streamvault.core.config import settings
from streamvault.core.exceptions import ForbiddenException, UnauthorizedException
from streamvault.models import TokenPayload, UserRole
from streamvault.services.orchestrator import VideoOrchestrator

ALGORITHM = "HS256"

reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login",
    auto_error=False,
)

TokenDep = Annotated[Optional[str], Depends(reusable_oauth2)]


@dataclass(frozen=True)
class Principal:
    id: str
    role: UserRole

    @property
    def is_moderator(self) -> bool:
        return self.role in (UserRole.MODERATOR, UserRole.ADMIN)


def decode_token(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        raise UnauthorizedException(
            error_code="INVALID_TOKEN",
            message="Could not validate credentials",
        )
    if not token_data.sub:
        raise UnauthorizedException(error_code="INVALID_TOKEN", message="Token has no subject")
    return Principal(id=token_data.sub, role=token_data.role)


async def get_current_principal(token: TokenDep) -> Principal:
    """Get the authenticated caller. Raises 401 if not authenticated."""
    if not token:
        raise UnauthorizedException()
    return decode_token(token)


async def get_optional_principal(token: TokenDep) -> Optional[Principal]:
    """
    Get the caller if authenticated, otherwise None.
    Used for endpoints that anonymous viewers may call.
    """
    if not token:
        return None
    try:
        return decode_token(token)
    except UnauthorizedException:
        return None


async def require_moderator(current: "CurrentPrincipal") -> Principal:
    """Require MODERATOR or ADMIN role."""
    if not current.is_moderator:
        raise ForbiddenException(
            error_code="MODERATOR_REQUIRED",
            message="Moderator or Admin privileges required",
        )
    return current


async def require_admin(current: "CurrentPrincipal") -> Principal:
    """Require ADMIN role."""
    if current.role != UserRole.ADMIN:
        raise ForbiddenException(
            error_code="ADMIN_REQUIRED",
            message="Admin privileges required",
        )
    return current


def get_orchestrator(request: Request) -> VideoOrchestrator:
    return request.app.state.orchestrator


# Type aliases for dependency injection
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
OptionalPrincipal = Annotated[Optional[Principal], Depends(get_optional_principal)]
ModeratorPrincipal = Annotated[Principal, Depends(require_moderator)]
AdminPrincipal = Annotated[Principal, Depends(require_admin)]
OrchestratorDep = Annotated[VideoOrchestrator, Depends(get_orchestrator)]
