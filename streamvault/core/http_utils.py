"""
HTTP Utilities

Bridge between the framework-independent exceptions / service results and
FastAPI responses.
"""

from typing import Any, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from streamvault.core.exceptions import BaseAppException, RangeNotSatisfiableException
from streamvault.core.logger import get_correlation_id, get_logger, log_exception
from streamvault.models.base import utc_now
from streamvault.services.object_store import RangeRead
from streamvault.services.signing import SignedCredential

logger = get_logger(__name__)


async def app_exception_handler(request: Request, exc: BaseAppException) -> JSONResponse:
    """
    FastAPI exception handler for BaseAppException.

    Usage:
        app.add_exception_handler(BaseAppException, app_exception_handler)
    """
    log_exception(logger, exc, {"path": request.url.path, "correlation_id": get_correlation_id()})

    response_body: dict[str, Any] = {
        "success": False,
        "error": exc.message,
        "error_code": exc.error_code,
        "detail": exc.to_dict(),
    }
    headers = None
    if isinstance(exc, RangeNotSatisfiableException):
        headers = {"Content-Range": f"bytes */{exc.size}"}

    return JSONResponse(
        status_code=exc.http_status_code,
        content=response_body,
        headers=headers,
    )


def partial_content_response(read: RangeRead) -> Response:
    """206 response carrying exactly the bytes of ``read``."""
    return Response(
        content=read.data,
        status_code=206,
        headers=read.headers,
        media_type=read.content_type,
    )


def set_stream_cookies(
    response: Response,
    credential: SignedCredential,
    domain: Optional[str] = None,
    secure: bool = True,
) -> None:
    """Attach CloudFront signed cookies; they expire with the policy."""
    max_age = max(0, int((credential.expires_at - utc_now()).total_seconds()))
    for name, value in credential.cookies.items():
        response.set_cookie(
            key=name,
            value=value,
            max_age=max_age,
            domain=domain,
            path="/",
            secure=secure,
            httponly=True,
            samesite="none" if secure else "lax",
        )


__all__ = [
    "app_exception_handler",
    "partial_content_response",
    "set_stream_cookies",
]
