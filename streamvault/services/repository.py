"""Video persistence.

Every status / moderation write goes through ``transition``, a compare-and-set
on the (status, moderation_status) pair. A writer that lost the race gets
``None`` back and must not assume its write happened.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

from pydantic import BaseModel
from pymongo import ReturnDocument

from streamvault.core.logger import get_logger
from streamvault.models import ModerationStatus, Video, VideoRecord, VideoStatus

logger = get_logger(__name__)

StateKey = tuple[VideoStatus, ModerationStatus]


def _encode(value: Any) -> Any:
    """Convert enums and nested models into plain BSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return _encode(value.model_dump())
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


class VideoRepository(ABC):
    @abstractmethod
    async def create(self, video: VideoRecord) -> VideoRecord:
        pass

    @abstractmethod
    async def get(self, video_id: str) -> Optional[VideoRecord]:
        pass

    @abstractmethod
    async def transition(
        self,
        video_id: str,
        expected: Sequence[StateKey],
        status: VideoStatus,
        moderation_status: ModerationStatus,
        **changes: Any,
    ) -> Optional[VideoRecord]:
        """
        Move the video to ``(status, moderation_status)`` and apply ``changes``,
        but only if its current state is one of ``expected``.

        Returns the updated record, or None when the video is gone or in
        another state.
        """

    @abstractmethod
    async def claim_upload(self, video_id: str, uploaded_at: datetime) -> bool:
        """Mark the upload confirmed exactly once; False if already claimed."""

    @abstractmethod
    async def delete(self, video_id: str) -> bool:
        pass

    @abstractmethod
    async def list_pending_moderation(self, limit: int = 50) -> list[VideoRecord]:
        """READY/PENDING videos, oldest first."""

    @abstractmethod
    async def list_by_creator(self, creator_id: str) -> list[VideoRecord]:
        pass


class MongoVideoRepository(VideoRepository):
    """Beanie documents for reads, filtered single-document updates for writes."""

    async def create(self, video: VideoRecord) -> VideoRecord:
        document = Video(**video.model_dump())
        await document.insert()
        logger.info(f"Created video {document.id} for creator {document.creator_id}")
        return document

    async def get(self, video_id: str) -> Optional[VideoRecord]:
        return await Video.find_one(Video.id == video_id)

    async def transition(
        self,
        video_id: str,
        expected: Sequence[StateKey],
        status: VideoStatus,
        moderation_status: ModerationStatus,
        **changes: Any,
    ) -> Optional[VideoRecord]:
        query = {
            "_id": video_id,
            "$or": [
                {"status": s.value, "moderation_status": m.value} for s, m in expected
            ],
        }
        update = {
            "$set": {
                "status": status.value,
                "moderation_status": moderation_status.value,
                **_encode(changes),
            }
        }
        raw = await Video.get_motor_collection().find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER
        )
        if raw is None:
            logger.info(
                f"Transition of video {video_id} to {status.value}/{moderation_status.value} "
                f"lost: not in any expected state"
            )
            return None
        return Video.model_validate(raw)

    async def claim_upload(self, video_id: str, uploaded_at: datetime) -> bool:
        result = await Video.get_motor_collection().update_one(
            {
                "_id": video_id,
                "uploaded_at": None,
                "status": VideoStatus.PROCESSING.value,
                "moderation_status": ModerationStatus.PENDING.value,
            },
            {"$set": {"uploaded_at": uploaded_at}},
        )
        return result.modified_count == 1

    async def delete(self, video_id: str) -> bool:
        result = await Video.get_motor_collection().delete_one({"_id": video_id})
        return result.deleted_count == 1

    async def list_pending_moderation(self, limit: int = 50) -> list[VideoRecord]:
        return await Video.find(
            Video.status == VideoStatus.READY,
            Video.moderation_status == ModerationStatus.PENDING,
        ).sort(+Video.created_at).limit(limit).to_list()

    async def list_by_creator(self, creator_id: str) -> list[VideoRecord]:
        return await Video.find(Video.creator_id == creator_id).to_list()
