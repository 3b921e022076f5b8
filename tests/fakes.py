"""In-memory stand-ins for the external systems the services talk to."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence

from streamvault.models import (
    AuditAction,
    AuditEntry,
    ModerationStatus,
    VideoRecord,
    VideoStatus,
)
from streamvault.services.collaborators import (
    Alerter,
    AuditSink,
    CreatorDirectory,
    EntitlementChecker,
)
from streamvault.services.moderation import (
    ClassificationError,
    ClassificationStatus,
    ContentClassifier,
    JobState,
    ModerationLabel,
)
from streamvault.services.object_store import ObjectNotFoundError, ObjectStore, ObjectStoreError
from streamvault.services.repository import StateKey, VideoRepository
from streamvault.services.signing import CookieSigner, SignedCredential, SigningError
from streamvault.services.transcode import TranscodeError


class InMemoryObjectStore(ObjectStore):
    def __init__(self, bucket: str = "test-bucket"):
        self.bucket = bucket
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail_put_suffixes: set[str] = set()
        self.put_keys: list[str] = []

    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        if any(key.endswith(suffix) for suffix in self.fail_put_suffixes):
            raise ObjectStoreError(f"put {key} failed")
        self.objects[key] = (data, content_type)
        self.put_keys.append(key)

    async def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise ObjectNotFoundError(key)
        return self.objects[key][0]

    async def head_size(self, key: str) -> Optional[int]:
        if key not in self.objects:
            return None
        return len(self.objects[key][0])

    async def delete(self, key: str) -> bool:
        self.objects.pop(key, None)
        return True

    async def list_keys(self, prefix: str) -> list[str]:
        return sorted(k for k in self.objects if k.startswith(prefix))

    async def presigned_put_url(self, key: str, content_type: str, expires_in: int) -> str:
        return f"https://uploads.test/{self.bucket}/{key}?expires={expires_in}"

    async def _read_range(self, key: str, start: int, end: int) -> bytes:
        return self.objects[key][0][start:end + 1]


class InMemoryVideoRepository(VideoRepository):
    """Single event loop, no awaits inside a write: each write is atomic."""

    def __init__(self):
        self.videos: dict[str, VideoRecord] = {}

    async def create(self, video: VideoRecord) -> VideoRecord:
        self.videos[video.id] = video.model_copy(deep=True)
        return video

    async def get(self, video_id: str) -> Optional[VideoRecord]:
        video = self.videos.get(video_id)
        return video.model_copy(deep=True) if video else None

    async def transition(
        self,
        video_id: str,
        expected: Sequence[StateKey],
        status: VideoStatus,
        moderation_status: ModerationStatus,
        **changes: Any,
    ) -> Optional[VideoRecord]:
        current = self.videos.get(video_id)
        if current is None or (current.status, current.moderation_status) not in set(expected):
            return None
        updated = current.model_copy(
            update={"status": status, "moderation_status": moderation_status, **changes},
            deep=True,
        )
        self.videos[video_id] = updated
        return updated.model_copy(deep=True)

    async def claim_upload(self, video_id: str, uploaded_at: datetime) -> bool:
        current = self.videos.get(video_id)
        if (
            current is None
            or current.uploaded_at is not None
            or (current.status, current.moderation_status)
            != (VideoStatus.PROCESSING, ModerationStatus.PENDING)
        ):
            return False
        self.videos[video_id] = current.model_copy(update={"uploaded_at": uploaded_at})
        return True

    async def delete(self, video_id: str) -> bool:
        return self.videos.pop(video_id, None) is not None

    async def list_pending_moderation(self, limit: int = 50) -> list[VideoRecord]:
        pending = [
            v for v in self.videos.values()
            if v.status == VideoStatus.READY and v.moderation_status == ModerationStatus.PENDING
        ]
        return sorted(pending, key=lambda v: v.created_at)[:limit]

    async def list_by_creator(self, creator_id: str) -> list[VideoRecord]:
        return [v for v in self.videos.values() if v.creator_id == creator_id]


class FakeFFmpegRunner:
    """Writes plausible output files instead of encoding."""

    def __init__(
        self,
        duration: float = 42.0,
        fail_labels: Sequence[str] = (),
        gate: Optional[asyncio.Event] = None,
    ):
        self.duration = duration
        self.fail_labels = set(fail_labels)
        self.gate = gate
        self.calls: list[list[str]] = []
        self.active = 0
        self.max_active = 0

    async def probe(self, path: Path) -> dict[str, Any]:
        assert path.exists()
        return {"format": {"duration": str(self.duration)}}

    async def run(self, args: list[str]) -> None:
        self.calls.append(args)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)

            output = Path(args[-1])
            if output.name == "index.m3u8":
                label = output.parent.name
                if label in self.fail_labels:
                    raise TranscodeError(f"encoder crashed on {label}")
                output.write_text("#EXTM3U\n#EXTINF:10.0,\nsegment_000.ts\n#EXT-X-ENDLIST\n")
                (output.parent / "segment_000.ts").write_bytes(b"\x47" * 188)
            else:
                output.write_bytes(b"\xff\xd8jpeg")
        finally:
            self.active -= 1


class FakeClassifier(ContentClassifier):
    def __init__(
        self,
        labels: Sequence[ModerationLabel] = (),
        pending_polls: int = 0,
        final_state: JobState = JobState.SUCCEEDED,
        start_error: Optional[str] = None,
        poll_error: Optional[str] = None,
    ):
        self.labels = list(labels)
        self.pending_polls = pending_polls
        self.final_state = final_state
        self.start_error = start_error
        self.poll_error = poll_error
        self.started: list[str] = []
        self.polls = 0

    async def start_job(self, key: str) -> str:
        if self.start_error:
            raise ClassificationError(self.start_error)
        self.started.append(key)
        return f"job-{len(self.started)}"

    async def get_job(self, job_id: str) -> ClassificationStatus:
        self.polls += 1
        if self.poll_error:
            raise ClassificationError(self.poll_error)
        if self.polls <= self.pending_polls:
            return ClassificationStatus(state=JobState.IN_PROGRESS)
        if self.final_state != JobState.SUCCEEDED:
            return ClassificationStatus(state=self.final_state, error="job failed")
        return ClassificationStatus(state=JobState.SUCCEEDED, labels=list(self.labels))


class FakeEntitlements(EntitlementChecker):
    def __init__(self):
        self.grants: set[tuple[str, str]] = set()
        self.calls = 0

    def grant(self, viewer_id: str, creator_id: str) -> None:
        self.grants.add((viewer_id, creator_id))

    async def is_entitled(self, viewer_id: str, creator_id: str) -> bool:
        self.calls += 1
        return (viewer_id, creator_id) in self.grants


class FakeCreatorDirectory(CreatorDirectory):
    def __init__(self, approved: Sequence[str] = ()):
        self.approved = set(approved)
        self.revoked: list[str] = []

    async def is_approved_creator(self, user_id: str) -> bool:
        return user_id in self.approved

    async def revoke_creator(self, user_id: str) -> bool:
        self.revoked.append(user_id)
        self.approved.discard(user_id)
        return True


class RecordingAuditSink(AuditSink):
    def __init__(self, fail: bool = False):
        self.entries: list[AuditEntry] = []
        self.fail = fail

    async def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        performed_by: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        if self.fail:
            raise RuntimeError("audit store down")
        self.entries.append(AuditEntry(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            performed_by=performed_by,
            metadata=metadata or {},
        ))

    def actions(self) -> list[AuditAction]:
        return [e.action for e in self.entries]


class RecordingAlerter(Alerter):
    def __init__(self):
        self.events: list[dict[str, Any]] = []

    async def notify_critical(self, event: dict[str, Any]) -> None:
        self.events.append(event)


class FakeSigner(CookieSigner):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.signed: list[str] = []

    def resource_for_prefix(self, prefix: str) -> str:
        return f"https://media.test/{prefix}*"

    def sign(self, resource: str, expires_at: datetime) -> SignedCredential:
        if self.fail:
            raise SigningError("no key")
        self.signed.append(resource)
        return SignedCredential(
            cookies={
                "CloudFront-Policy": "policy",
                "CloudFront-Signature": "signature",
                "CloudFront-Key-Pair-Id": "KTEST",
            },
            resource=resource,
            expires_at=expires_at,
        )
