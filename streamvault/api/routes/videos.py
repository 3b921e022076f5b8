"""Video API routes.

Provides endpoints for:
- Requesting pre-signed upload URLs and confirming uploads
- Fetching video metadata
- Authorizing a stream (signed cookies) and ranged reads of the source
- Likes and deletion
"""

from typing import Optional, Union

from fastapi import APIRouter, Header, Response

from streamvault.api.deps import CurrentPrincipal, OptionalPrincipal, OrchestratorDep
from streamvault.core.config import settings
from streamvault.core.http_utils import partial_content_response, set_stream_cookies
from streamvault.models import (
    Message,
    StreamAuthorization,
    VideoAdminView,
    VideoPublic,
    VideoUploadRequest,
    VideoUploadResponse,
)

router = APIRouter(prefix="/videos", tags=["videos"])


@router.post("/upload-request", response_model=VideoUploadResponse)
async def request_video_upload(
    request: VideoUploadRequest,
    current: CurrentPrincipal,
    orchestrator: OrchestratorDep,
) -> VideoUploadResponse:
    """
    Request a pre-signed URL for direct video upload to S3.

    Flow:
    1. Client calls this endpoint with filename
    2. Backend creates the video and a pre-signed PUT URL
    3. Client uploads directly to S3 using the URL
    4. Client calls /videos/{video_id}/complete when done
    """
    return await orchestrator.request_upload(current.id, request)


@router.post("/{video_id}/complete", status_code=202, response_model=VideoAdminView)
async def complete_video_upload(
    video_id: str,
    current: CurrentPrincipal,
    orchestrator: OrchestratorDep,
) -> VideoAdminView:
    """Confirm the upload and start processing. Poll GET /videos/{video_id} for progress."""
    await orchestrator.confirm_upload(video_id, current.id)
    return await orchestrator.admin_view(video_id)


@router.get("/{video_id}", response_model=Union[VideoAdminView, VideoPublic])
async def get_video(
    video_id: str,
    current: OptionalPrincipal,
    orchestrator: OrchestratorDep,
) -> Union[VideoAdminView, VideoPublic]:
    return await orchestrator.get(
        video_id,
        viewer_id=current.id if current else None,
        is_admin=bool(current and current.is_moderator),
    )


@router.post("/{video_id}/stream", response_model=StreamAuthorization)
async def authorize_stream(
    video_id: str,
    response: Response,
    current: OptionalPrincipal,
    orchestrator: OrchestratorDep,
) -> StreamAuthorization:
    """
    Authorize playback. Non-public streams get CloudFront signed cookies
    scoped to this video's path only.
    """
    video, grant = await orchestrator.authorize_stream(video_id, current.id if current else None)
    if grant.credential is not None:
        set_stream_cookies(
            response,
            grant.credential,
            domain=settings.COOKIE_DOMAIN,
            secure=settings.ENVIRONMENT != "local",
        )
    return StreamAuthorization(
        video_id=video.id,
        manifest_url=orchestrator.manifest_url(video),
        signed=grant.credential is not None,
        expires_at=grant.credential.expires_at if grant.credential else None,
        view_count=grant.view_count or 0,
    )


@router.get("/{video_id}/source")
async def stream_source(
    video_id: str,
    current: OptionalPrincipal,
    orchestrator: OrchestratorDep,
    range_header: Optional[str] = Header(default=None, alias="Range"),
) -> Response:
    """Ranged read of the original upload (206 Partial Content)."""
    read = await orchestrator.read_source_range(video_id, current.id if current else None, range_header)
    return partial_content_response(read)


@router.post("/{video_id}/like")
async def like_video(
    video_id: str,
    current: CurrentPrincipal,
    orchestrator: OrchestratorDep,
) -> dict[str, int]:
    like_count = await orchestrator.like(video_id, current.id)
    return {"like_count": like_count}


@router.delete("/{video_id}", response_model=Message)
async def delete_video(
    video_id: str,
    current: CurrentPrincipal,
    orchestrator: OrchestratorDep,
) -> Message:
    await orchestrator.delete(video_id, current.id)
    return Message(message="Video deleted")
