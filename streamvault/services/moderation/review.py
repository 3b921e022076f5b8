"""State changes driven by moderation outcomes.

- IllegalContentTransition: the automatic, irreversible takedown and ban
- ModerationReview: admin approve / reject, audited
"""

from typing import NoReturn, Optional

from streamvault.core.exceptions import InvalidTransitionException, NotFoundException
from streamvault.core.logger import get_logger, log_exception
from streamvault.models import (
    SYSTEM_ACTOR,
    AuditAction,
    ModerationStatus,
    VideoRecord,
    VideoStatus,
    utc_now,
)
from streamvault.services.collaborators import Alerter, AuditSink, CreatorDirectory
from streamvault.services.repository import StateKey, VideoRepository

from .engine import ModerationResult

logger = get_logger(__name__)

# Any state a live video can be in when the verdict arrives
_TAKEDOWN_FROM: tuple[StateKey, ...] = (
    (VideoStatus.PROCESSING, ModerationStatus.PENDING),
    (VideoStatus.READY, ModerationStatus.PENDING),
    (VideoStatus.READY, ModerationStatus.APPROVED),
)

APPROVE_FROM: tuple[StateKey, ...] = (
    (VideoStatus.READY, ModerationStatus.PENDING),
)

REJECT_FROM: tuple[StateKey, ...] = (
    (VideoStatus.PROCESSING, ModerationStatus.PENDING),
    (VideoStatus.READY, ModerationStatus.PENDING),
    (VideoStatus.READY, ModerationStatus.APPROVED),
)


def _describe(states: tuple[StateKey, ...]) -> str:
    return " | ".join(f"{s.value}/{m.value}" for s, m in states)


class IllegalContentTransition:
    """
    Handles an ILLEGAL_CONTENT verdict.

    Forces the video to FAILED/REJECTED, revokes the creator's role, writes one
    ILLEGAL_CONTENT_DETECTED audit entry and sends one critical alert. Each
    side effect is attempted even if an earlier one failed.
    """

    def __init__(
        self,
        repository: VideoRepository,
        creators: CreatorDirectory,
        audit: AuditSink,
        alerter: Alerter,
    ):
        self.repository = repository
        self.creators = creators
        self.audit = audit
        self.alerter = alerter

    async def apply(self, video: VideoRecord, result: ModerationResult) -> Optional[VideoRecord]:
        """Returns the updated record, or None if the video had already left the live states."""
        updated = await self.repository.transition(
            video.id,
            _TAKEDOWN_FROM,
            VideoStatus.FAILED,
            ModerationStatus.REJECTED,
            moderation=result.to_summary(),
            error_message="Removed: illegal content detected",
        )
        if updated is None:
            logger.warning(f"Video {video.id} was no longer live when illegal content was confirmed")

        timestamp = utc_now().isoformat()
        try:
            await self.creators.revoke_creator(video.creator_id)
        except Exception as e:
            log_exception(logger, e, {"video_id": video.id, "step": "revoke_creator"})

        try:
            await self.audit.record(
                AuditAction.ILLEGAL_CONTENT_DETECTED,
                entity_type="Video",
                entity_id=video.id,
                performed_by=SYSTEM_ACTOR,
                metadata={
                    "creator_id": video.creator_id,
                    "action": "AUTO_BANNED",
                    "severity": "CRITICAL",
                    "confidence": result.confidence,
                },
            )
        except Exception as e:
            log_exception(logger, e, {"video_id": video.id, "step": "audit"})

        try:
            await self.alerter.notify_critical({
                "type": "ILLEGAL_CONTENT",
                "video_id": video.id,
                "creator_id": video.creator_id,
                "timestamp": timestamp,
            })
        except Exception as e:
            log_exception(logger, e, {"video_id": video.id, "step": "alert"})

        return updated


class ModerationReview:
    """Admin overrides. Both are compare-and-set and audited."""

    def __init__(self, repository: VideoRepository, audit: AuditSink):
        self.repository = repository
        self.audit = audit

    async def _raise_for_state(self, video_id: str, expected: tuple[StateKey, ...]) -> NoReturn:
        current = await self.repository.get(video_id)
        if current is None:
            raise NotFoundException(
                error_code="VIDEO_NOT_FOUND",
                message="Video not found",
                resource_type="Video",
                resource_id=video_id,
            )
        raise InvalidTransitionException(
            video_id,
            expected=_describe(expected),
            actual=f"{current.status.value}/{current.moderation_status.value}",
        )

    async def approve(self, video_id: str, admin_id: str) -> VideoRecord:
        updated = await self.repository.transition(
            video_id,
            APPROVE_FROM,
            VideoStatus.READY,
            ModerationStatus.APPROVED,
            published_at=utc_now(),
        )
        if updated is None:
            await self._raise_for_state(video_id, APPROVE_FROM)

        await self.audit.record(
            AuditAction.VIDEO_APPROVED,
            entity_type="Video",
            entity_id=video_id,
            performed_by=admin_id,
        )
        logger.info(f"Video {video_id} approved by {admin_id}")
        return updated

    async def reject(self, video_id: str, admin_id: str, reason: str) -> VideoRecord:
        updated = await self.repository.transition(
            video_id,
            REJECT_FROM,
            VideoStatus.FAILED,
            ModerationStatus.REJECTED,
            error_message=f"Rejected by moderator: {reason}",
        )
        if updated is None:
            await self._raise_for_state(video_id, REJECT_FROM)

        await self.audit.record(
            AuditAction.VIDEO_REJECTED,
            entity_type="Video",
            entity_id=video_id,
            performed_by=admin_id,
            metadata={"reason": reason},
        )
        logger.info(f"Video {video_id} rejected by {admin_id}")
        return updated
