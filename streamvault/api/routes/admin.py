"""Moderation and administration routes."""

from fastapi import APIRouter, Query

from streamvault.api.deps import AdminPrincipal, ModeratorPrincipal, OrchestratorDep
from streamvault.models import CreatorBanRequest, VideoAdminView, VideoRejectRequest

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/moderation/queue", response_model=list[VideoAdminView])
async def moderation_queue(
    moderator: ModeratorPrincipal,
    orchestrator: OrchestratorDep,
    limit: int = Query(default=50, ge=1, le=200),
) -> list[VideoAdminView]:
    """READY videos awaiting a human decision, oldest first."""
    return await orchestrator.list_moderation_queue(limit)


@router.get("/videos/{video_id}", response_model=VideoAdminView)
async def video_status(
    video_id: str,
    moderator: ModeratorPrincipal,
    orchestrator: OrchestratorDep,
) -> VideoAdminView:
    return await orchestrator.admin_view(video_id)


@router.post("/videos/{video_id}/approve", response_model=VideoAdminView)
async def approve_video(
    video_id: str,
    moderator: ModeratorPrincipal,
    orchestrator: OrchestratorDep,
) -> VideoAdminView:
    return await orchestrator.approve(video_id, moderator.id)


@router.post("/videos/{video_id}/reject", response_model=VideoAdminView)
async def reject_video(
    video_id: str,
    body: VideoRejectRequest,
    moderator: ModeratorPrincipal,
    orchestrator: OrchestratorDep,
) -> VideoAdminView:
    return await orchestrator.reject(video_id, moderator.id, body.reason)


@router.post("/creators/{creator_id}/ban")
async def ban_creator(
    creator_id: str,
    body: CreatorBanRequest,
    admin: AdminPrincipal,
    orchestrator: OrchestratorDep,
) -> dict[str, int]:
    """Revoke the creator role and remove every video they own."""
    deleted = await orchestrator.ban_creator(creator_id, admin.id, body.reason)
    return {"videos_deleted": deleted}
