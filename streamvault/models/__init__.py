"""
Models package for streamvault.

- base: shared enums, timestamps and token payload
- video: the Video document, lifecycle enums and API schemas
- user: creator role lookups
- audit: audit log entries
- subscription: premium entitlements
"""

from .base import (
    Message,
    TokenPayload,
    UserRole,
    utc_now,
)

from .video import (
    CreatorBanRequest,
    ModerationFlag,
    ModerationStatus,
    ModerationSummary,
    StreamAuthorization,
    Video,
    VideoAdminView,
    VideoPublic,
    VideoRecord,
    VideoRejectRequest,
    VideoStatus,
    VideoUploadRequest,
    VideoUploadResponse,
    Visibility,
    artifact_prefix,
)

from .user import User

from .audit import (
    SYSTEM_ACTOR,
    AuditAction,
    AuditEntry,
    AuditLog,
)

from .subscription import (
    Subscription,
    SubscriptionStatus,
)

__all__ = [
    "Message",
    "TokenPayload",
    "UserRole",
    "utc_now",
    "CreatorBanRequest",
    "ModerationFlag",
    "ModerationStatus",
    "ModerationSummary",
    "StreamAuthorization",
    "Video",
    "VideoAdminView",
    "VideoPublic",
    "VideoRecord",
    "VideoRejectRequest",
    "VideoStatus",
    "VideoUploadRequest",
    "VideoUploadResponse",
    "Visibility",
    "artifact_prefix",
    "User",
    "SYSTEM_ACTOR",
    "AuditAction",
    "AuditEntry",
    "AuditLog",
    "Subscription",
    "SubscriptionStatus",
]
