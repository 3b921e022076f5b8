"""Video lifecycle orchestrator.

State machine (status/moderation_status):

    PROCESSING/PENDING --transcode ok-----> READY/PENDING --approved--> READY/APPROVED
    PROCESSING/PENDING --transcode failed-> FAILED/PENDING
    READY/PENDING      --rejected---------> FAILED/REJECTED
    READY/APPROVED     --admin reject-----> FAILED/REJECTED

Every transition is a compare-and-set through the repository and is persisted
before the cached copy of the video is invalidated.
"""

import uuid
from pathlib import PurePosixPath
from typing import Awaitable, Callable, NoReturn, Optional, Union

from streamvault.core.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    ServiceUnavailableException,
    ValidationException,
)
from streamvault.core.logger import bind_context, get_logger, log_business_error, log_exception
from streamvault.models import (
    AuditAction,
    ModerationStatus,
    VideoAdminView,
    VideoPublic,
    VideoRecord,
    VideoStatus,
    VideoUploadRequest,
    VideoUploadResponse,
    utc_now,
)
from streamvault.services.access import AccessDecision, AccessGateway, AccessGrant, DenyReason
from streamvault.services.cache import VideoCache
from streamvault.services.collaborators import AuditSink, CreatorDirectory
from streamvault.services.jobs import JobCancelled, JobContext, JobRunner
from streamvault.services.moderation import (
    IllegalContentTransition,
    ModerationEngine,
    ModerationResult,
    ModerationReview,
)
from streamvault.services.object_store import (
    ObjectStore,
    ObjectStoreError,
    RangeRead,
    parse_range_header,
    resolve_byte_range,
)
from streamvault.services.repository import VideoRepository
from streamvault.services.transcode import TranscodeEngine, TranscodeFailure

logger = get_logger(__name__)

ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".mov", ".m4v", ".mkv", ".webm", ".avi"}

_UPLOADABLE = (VideoStatus.PROCESSING, ModerationStatus.PENDING)
_AWAITING_MODERATION = ((VideoStatus.READY, ModerationStatus.PENDING),)


def upload_key(creator_id: str, video_id: str, extension: str) -> str:
    return f"uploads/originals/{creator_id}/{video_id}{extension}"


class VideoOrchestrator:
    def __init__(
        self,
        repository: VideoRepository,
        ingest_store: ObjectStore,
        media_store: ObjectStore,
        transcoder: TranscodeEngine,
        moderator: ModerationEngine,
        illegal_content: IllegalContentTransition,
        review: ModerationReview,
        access: AccessGateway,
        cache: VideoCache,
        creators: CreatorDirectory,
        audit: AuditSink,
        runner: JobRunner,
        media_base_url: str = "",
        upload_url_expire_seconds: int = 3600,
        stream_chunk_size: int = 10**6,
    ):
        self.repository = repository
        self.ingest_store = ingest_store
        self.media_store = media_store
        self.transcoder = transcoder
        self.moderator = moderator
        self.illegal_content = illegal_content
        self.review = review
        self.access = access
        self.cache = cache
        self.creators = creators
        self.audit = audit
        self.runner = runner
        self.media_base_url = media_base_url.rstrip("/")
        self.upload_url_expire_seconds = upload_url_expire_seconds
        self.stream_chunk_size = stream_chunk_size

    # ==================== Helpers ====================

    @staticmethod
    def _not_found(video_id: str) -> NotFoundException:
        return NotFoundException(
            error_code="VIDEO_NOT_FOUND",
            message="Video not found",
            resource_type="Video",
            resource_id=video_id,
        )

    async def _load(self, video_id: str) -> Optional[VideoRecord]:
        """Read-through cache lookup for metadata reads."""
        cached = await self.cache.get_video(video_id)
        if cached is not None:
            return cached
        generation = await self.cache.generation(video_id)
        video = await self.repository.get(video_id)
        if video is not None:
            await self.cache.set_video(video, generation)
        return video

    async def _require_owned(self, video_id: str, caller_id: str) -> VideoRecord:
        video = await self.repository.get(video_id)
        if video is None:
            raise self._not_found(video_id)
        if video.creator_id != caller_id:
            raise ForbiddenException(
                error_code="NOT_VIDEO_OWNER",
                message="Only the creator of this video can do that",
                metadata={"video_id": video_id},
            )
        return video

    def _raise_denied(self, video_id: str, reason: DenyReason) -> NoReturn:
        if reason == DenyReason.SUBSCRIPTION_REQUIRED:
            raise ForbiddenException(
                error_code="SUBSCRIPTION_REQUIRED",
                message="An active subscription to this creator is required",
                metadata={"video_id": video_id},
            )
        if reason == DenyReason.SIGNING_FAILED:
            raise ServiceUnavailableException(
                error_code="STREAM_SIGNING_FAILED",
                message="Stream credentials could not be issued",
                metadata={"video_id": video_id},
            )
        # PRIVATE looks exactly like a missing video from outside
        raise self._not_found(video_id)

    def manifest_url(self, video: VideoRecord) -> str:
        return f"{self.media_base_url}/{video.manifest_key}"

    def job_probe(self, video_id: str) -> Callable[[], Awaitable[bool]]:
        """A job may keep going while its video exists and has not failed."""
        async def probe() -> bool:
            video = await self.repository.get(video_id)
            return video is not None and video.status != VideoStatus.FAILED
        return probe

    async def _counts(self, video: VideoRecord) -> tuple[int, int]:
        return await self.cache.get_counts(video.id)

    async def _admin_view(self, video: VideoRecord) -> VideoAdminView:
        views, likes = await self._counts(video)
        return VideoAdminView(
            **self._public_fields(video, views, likes, has_access=True),
            status=video.status,
            moderation_status=video.moderation_status,
            moderation=video.moderation,
            error_message=video.error_message,
            manifest_key=video.manifest_key,
        )

    @staticmethod
    def _public_fields(video: VideoRecord, views: int, likes: int, has_access: bool) -> dict:
        return {
            "id": video.id,
            "creator_id": video.creator_id,
            "title": video.title,
            "description": video.description,
            "visibility": video.visibility,
            "duration_seconds": video.duration_seconds,
            "qualities": list(video.variant_keys),
            "thumbnail_key": video.thumbnail_key,
            "sprite_key": video.sprite_key,
            "view_count": views,
            "like_count": likes,
            "has_access": has_access,
            "created_at": video.created_at,
            "published_at": video.published_at,
        }

    # ==================== Upload ====================

    async def request_upload(self, creator_id: str, request: VideoUploadRequest) -> VideoUploadResponse:
        """Issue a pre-signed PUT target and create the video in PROCESSING/PENDING."""
        extension = PurePosixPath(request.filename).suffix.lower()
        if extension not in ALLOWED_VIDEO_EXTENSIONS:
            raise ValidationException(
                error_code="UNSUPPORTED_FILE_TYPE",
                message=f"Unsupported video file type: {extension or 'none'}",
                field="filename",
            )
        if not request.content_type.startswith("video/"):
            raise ValidationException(
                error_code="UNSUPPORTED_CONTENT_TYPE",
                message="Content type must be a video type",
                field="content_type",
            )

        if not await self.creators.is_approved_creator(creator_id):
            raise ForbiddenException(
                error_code="CREATOR_NOT_APPROVED",
                message="Only approved creators can upload videos",
            )

        video_id = str(uuid.uuid4())
        key = upload_key(creator_id, video_id, extension)
        upload_url = await self.ingest_store.presigned_put_url(
            key, request.content_type, self.upload_url_expire_seconds
        )

        await self.repository.create(VideoRecord(
            id=video_id,
            creator_id=creator_id,
            title=request.title,
            description=request.description,
            visibility=request.visibility,
            original_key=key,
            content_type=request.content_type,
        ))
        logger.info(f"Upload slot issued for video {video_id}")

        return VideoUploadResponse(
            video_id=video_id,
            upload_url=upload_url,
            s3_key=key,
            expires_in=self.upload_url_expire_seconds,
        )

    async def confirm_upload(self, video_id: str, creator_id: str) -> VideoRecord:
        """Verify the upload landed and hand the video to the pipeline. Returns immediately."""
        video = await self._require_owned(video_id, creator_id)

        if (video.status, video.moderation_status) != _UPLOADABLE:
            raise InvalidTransitionException(
                video_id,
                expected=f"{_UPLOADABLE[0].value}/{_UPLOADABLE[1].value}",
                actual=f"{video.status.value}/{video.moderation_status.value}",
            )

        size = await self.ingest_store.head_size(video.original_key)
        if not size:
            raise ValidationException(
                error_code="UPLOAD_NOT_FOUND",
                message="Video file not found in storage. Upload the file before confirming.",
                field="video_id",
            )

        if not await self.repository.claim_upload(video_id, utc_now()):
            raise ConflictException(
                error_code="UPLOAD_ALREADY_CONFIRMED",
                message="This upload has already been confirmed",
                metadata={"video_id": video_id},
            )

        try:
            await self.runner.submit(video_id)
        except ServiceUnavailableException:
            await self._fail(video_id, "Could not be queued for processing")
            raise

        await self.cache.invalidate(video_id)
        logger.info(f"Upload confirmed for video {video_id} ({size} bytes)")
        return await self.repository.get(video_id) or video

    # ==================== Pipeline ====================

    async def _fail(self, video_id: str, error: str) -> None:
        updated = await self.repository.transition(
            video_id,
            (_UPLOADABLE,),
            VideoStatus.FAILED,
            ModerationStatus.PENDING,
            error_message=error,
            processed_at=utc_now(),
        )
        if updated is not None:
            await self.cache.invalidate(video_id)
            log_business_error(logger, "VIDEO_FAILED", error, {"video_id": video_id})

    async def run_pipeline(self, context: JobContext) -> None:
        """Transcode then moderate one video. Bound to the job runner."""
        with bind_context(video_id=context.video_id):
            try:
                await self._run_pipeline(context)
            except JobCancelled:
                raise
            except Exception as e:
                log_exception(logger, e, {"video_id": context.video_id, "stage": "pipeline"})
                await self._fail(context.video_id, "Processing failed")

    async def _run_pipeline(self, context: JobContext) -> None:
        video = await self.repository.get(context.video_id)
        if video is None:
            logger.warning(f"Video {context.video_id} vanished before processing started")
            return
        await context.ensure_active()

        result = await self.transcoder.transcode(video.id, video.original_key, context)
        if isinstance(result, TranscodeFailure):
            await self._fail(video.id, f"Transcode failed ({result.stage}): {result.error}")
            return

        try:
            await context.ensure_active()
            ready = await self.repository.transition(
                video.id,
                (_UPLOADABLE,),
                VideoStatus.READY,
                ModerationStatus.PENDING,
                manifest_key=result.manifest_key,
                variant_keys=result.variant_keys,
                thumbnail_key=result.thumbnail_key,
                sprite_key=result.sprite_key,
                duration_seconds=result.duration_seconds,
                processed_at=utc_now(),
            )
        except JobCancelled:
            await self.media_store.delete_prefix(video.artifact_prefix)
            raise

        if ready is None:
            # Deleted or force-failed while encoding: the artifacts have no owner
            removed = await self.media_store.delete_prefix(video.artifact_prefix)
            logger.warning(f"Video {video.id} left PROCESSING during transcode; removed {removed} artifacts")
            return
        await self.cache.invalidate(video.id)
        logger.info(f"Video {video.id} is READY, starting moderation")

        # Rekognition works on a container file, not on HLS segments
        moderation = await self.moderator.scan(video.id, video.original_key, context)
        await self.apply_moderation(ready, moderation, context)

    async def apply_moderation(
        self,
        video: VideoRecord,
        result: ModerationResult,
        context: Optional[JobContext] = None,
    ) -> Optional[VideoRecord]:
        if result.is_illegal:
            updated = await self.illegal_content.apply(video, result)
            await self.cache.invalidate(video.id)
            return updated

        if context is not None:
            await context.ensure_active()

        changes: dict = {"moderation": result.to_summary()}
        if result.decision == ModerationStatus.APPROVED:
            changes["published_at"] = utc_now()
        else:
            # Scan failures and flagged content wait for a human
            changes["error_message"] = result.error

        updated = await self.repository.transition(
            video.id,
            _AWAITING_MODERATION,
            VideoStatus.READY,
            result.decision,
            **changes,
        )
        if updated is None:
            logger.warning(f"Moderation result for video {video.id} arrived after another transition")
            return None

        await self.cache.invalidate(video.id)
        logger.info(f"Video {video.id} moderation: {result.decision.value}")
        return updated

    # ==================== Read ====================

    async def get(
        self,
        video_id: str,
        viewer_id: Optional[str] = None,
        is_admin: bool = False,
    ) -> Union[VideoPublic, VideoAdminView]:
        """
        Admins and the owner see the real lifecycle state; everyone else only
        sees approved videos, and gets 404 for anything else.
        """
        video = await self._load(video_id)
        if video is None:
            raise self._not_found(video_id)

        if is_admin or (viewer_id is not None and viewer_id == video.creator_id):
            return await self._admin_view(video)

        if video.moderation_status != ModerationStatus.APPROVED or not video.is_servable:
            raise self._not_found(video_id)

        decision = await self.access.check(viewer_id, video)
        views, likes = await self._counts(video)
        return VideoPublic(**self._public_fields(video, views, likes, has_access=decision.granted))

    async def authorize_stream(self, video_id: str, viewer_id: Optional[str]) -> tuple[VideoRecord, AccessGrant]:
        # Servability comes from the store, never from a cached copy
        video = await self.repository.get(video_id)
        grant = await self.access.authorize(viewer_id, video)
        if not grant.granted:
            self._raise_denied(video_id, grant.reason)
        return video, grant

    async def _require_access(self, video_id: str, viewer_id: Optional[str]) -> tuple[VideoRecord, AccessDecision]:
        video = await self.repository.get(video_id)
        decision = await self.access.check(viewer_id, video)
        if not decision.granted:
            self._raise_denied(video_id, decision.reason)
        return video, decision

    async def read_source_range(
        self,
        video_id: str,
        viewer_id: Optional[str],
        range_header: Optional[str],
    ) -> RangeRead:
        """Serve the original upload with HTTP range semantics."""
        video, _ = await self._require_access(video_id, viewer_id)

        size = await self.ingest_store.head_size(video.original_key)
        if size is None:
            raise self._not_found(video_id)

        if range_header:
            byte_range = parse_range_header(range_header, size, max_chunk=self.stream_chunk_size)
        else:
            byte_range = resolve_byte_range(0, self.stream_chunk_size - 1, size)
        return await self.ingest_store.read(video.original_key, byte_range, video.content_type)

    async def like(self, video_id: str, viewer_id: str) -> int:
        """One like per viewer. Returns the new like count."""
        await self._require_access(video_id, viewer_id)
        added, count = await self.cache.add_like(video_id, viewer_id)
        if not added:
            raise ConflictException(
                error_code="ALREADY_LIKED",
                message="You already liked this video",
                metadata={"video_id": video_id},
            )
        return count

    # ==================== Delete ====================

    async def _remove(self, video: VideoRecord, performed_by: str, reason: str) -> None:
        await self.runner.cancel(video.id)
        await self.repository.delete(video.id)
        await self.cache.purge(video.id)

        # Storage cleanup is best effort; the record is already gone
        try:
            removed = await self.media_store.delete_prefix(video.artifact_prefix)
            await self.ingest_store.delete(video.original_key)
        except ObjectStoreError as e:
            logger.error(f"Artifact cleanup incomplete for video {video.id}: {e}")
        except Exception as e:
            log_exception(logger, e, {"video_id": video.id, "stage": "artifact_cleanup"})
        else:
            logger.info(f"Removed {removed} artifacts for video {video.id}")

        await self.audit.record(
            AuditAction.VIDEO_DELETED,
            entity_type="Video",
            entity_id=video.id,
            performed_by=performed_by,
            metadata={"creator_id": video.creator_id, "reason": reason},
        )

    async def delete(self, video_id: str, caller_id: str) -> None:
        video = await self._require_owned(video_id, caller_id)
        await self._remove(video, caller_id, reason="deleted by creator")
        logger.info(f"Video {video_id} deleted by its creator")

    # ==================== Admin ====================

    async def approve(self, video_id: str, admin_id: str) -> VideoAdminView:
        video = await self.review.approve(video_id, admin_id)
        await self.cache.invalidate(video_id)
        return await self._admin_view(video)

    async def reject(self, video_id: str, admin_id: str, reason: str) -> VideoAdminView:
        video = await self.review.reject(video_id, admin_id, reason)
        # A job still working on this video must not publish anything
        await self.runner.cancel(video_id)
        await self.cache.invalidate(video_id)
        return await self._admin_view(video)

    async def ban_creator(self, creator_id: str, admin_id: str, reason: str) -> int:
        """Revoke the creator role and delete every video they own. Returns how many were deleted."""
        await self.creators.revoke_creator(creator_id)

        videos = await self.repository.list_by_creator(creator_id)
        for video in videos:
            await self._remove(video, admin_id, reason=f"creator banned: {reason}")

        await self.audit.record(
            AuditAction.USER_BANNED,
            entity_type="User",
            entity_id=creator_id,
            performed_by=admin_id,
            metadata={"reason": reason, "videos_deleted": len(videos)},
        )
        logger.warning(f"Creator {creator_id} banned by {admin_id}; {len(videos)} videos removed")
        return len(videos)

    async def list_moderation_queue(self, limit: int = 50) -> list[VideoAdminView]:
        videos = await self.repository.list_pending_moderation(limit)
        return [await self._admin_view(v) for v in videos]

    async def admin_view(self, video_id: str) -> VideoAdminView:
        video = await self.repository.get(video_id)
        if video is None:
            raise self._not_found(video_id)
        return await self._admin_view(video)
