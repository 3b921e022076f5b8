"""Video models and schemas for the upload → transcode → moderate pipeline."""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field

from .base import utc_now


class VideoStatus(str, Enum):
    """Processing status. Written by the lifecycle orchestrator only."""
    PROCESSING = "PROCESSING"  # Upload slot issued, transcode pending or running
    READY = "READY"            # Transcode artifacts published
    FAILED = "FAILED"          # Terminal


class ModerationStatus(str, Enum):
    """Moderation status. Written by the moderation engine or an admin."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Visibility(str, Enum):
    PUBLIC = "PUBLIC"
    PREMIUM = "PREMIUM"
    PRIVATE = "PRIVATE"


class ModerationFlag(str, Enum):
    """Policy flags raised by the classifier."""
    ILLEGAL_CONTENT = "ILLEGAL_CONTENT"  # never reviewable, never approvable
    EXPLICIT_ADULT = "EXPLICIT_ADULT"
    VIOLENCE = "VIOLENCE"


class ModerationSummary(BaseModel):
    """Outcome of the last automated scan, kept on the video."""
    decision: ModerationStatus
    confidence: float = 0.0
    flags: list[ModerationFlag] = Field(default_factory=list)
    scan_failed: bool = False
    error: Optional[str] = None
    scanned_at: datetime = Field(default_factory=utc_now)


class VideoRecord(BaseModel):
    """Video state as seen by the services; persisted through a repository."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    creator_id: str
    title: str = ""
    description: Optional[str] = None
    visibility: Visibility = Visibility.PUBLIC

    status: VideoStatus = VideoStatus.PROCESSING
    moderation_status: ModerationStatus = ModerationStatus.PENDING

    # Ingest
    original_key: str
    content_type: str = "video/mp4"

    # Transcode artifacts, populated only on success
    manifest_key: Optional[str] = None
    variant_keys: dict[str, str] = Field(default_factory=dict)  # label -> index.m3u8 key
    thumbnail_key: Optional[str] = None
    sprite_key: Optional[str] = None
    duration_seconds: Optional[float] = None

    moderation: Optional[ModerationSummary] = None
    error_message: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
    uploaded_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    published_at: Optional[datetime] = None

    @property
    def is_servable(self) -> bool:
        return (
            self.status == VideoStatus.READY
            and self.moderation_status == ModerationStatus.APPROVED
        )

    @property
    def artifact_prefix(self) -> str:
        """Key prefix covering the manifest, every segment, the thumbnail and the sprite."""
        return artifact_prefix(self.id)


def artifact_prefix(video_id: str) -> str:
    return f"videos/{video_id}/"


class Video(Document, VideoRecord):
    """Video document for MongoDB."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")

    class Settings:
        name = "videos"
        use_state_management = True


class VideoUploadRequest(BaseModel):
    """Request schema for an upload slot."""
    filename: str = Field(..., min_length=1, max_length=255)
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    visibility: Visibility = Visibility.PUBLIC
    content_type: str = Field(default="video/mp4")


class VideoUploadResponse(BaseModel):
    """Pre-signed write target for the direct upload."""
    video_id: str
    upload_url: str
    s3_key: str
    expires_in: int


class VideoRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class CreatorBanRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class VideoPublic(BaseModel):
    """Public video response schema."""
    id: str
    creator_id: str
    title: str
    description: Optional[str] = None
    visibility: Visibility
    duration_seconds: Optional[float] = None
    qualities: list[str] = []
    thumbnail_key: Optional[str] = None
    sprite_key: Optional[str] = None
    view_count: int = 0
    like_count: int = 0
    has_access: bool = False
    created_at: datetime
    published_at: Optional[datetime] = None


class VideoAdminView(VideoPublic):
    """What administrators (and the owner) see: the real lifecycle state."""
    status: VideoStatus
    moderation_status: ModerationStatus
    moderation: Optional[ModerationSummary] = None
    error_message: Optional[str] = None
    manifest_key: Optional[str] = None


class StreamAuthorization(BaseModel):
    """Body of a granted stream request. Cookies travel as Set-Cookie headers."""
    video_id: str
    manifest_url: str
    signed: bool
    expires_at: Optional[datetime] = None
    view_count: int
