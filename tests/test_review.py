import pytest

from streamvault.core.exceptions import InvalidTransitionException, NotFoundException
from streamvault.models import (
    SYSTEM_ACTOR,
    AuditAction,
    ModerationFlag,
    ModerationStatus,
    VideoRecord,
    VideoStatus,
)
from streamvault.services.moderation import IllegalContentTransition, ModerationResult, ModerationReview

from tests.fakes import (
    FakeCreatorDirectory,
    InMemoryVideoRepository,
    RecordingAlerter,
    RecordingAuditSink,
)

ILLEGAL = ModerationResult(
    decision=ModerationStatus.REJECTED,
    confidence=98.4,
    flags=[ModerationFlag.ILLEGAL_CONTENT],
)


async def seed(repository: InMemoryVideoRepository, status: VideoStatus, moderation_status: ModerationStatus) -> VideoRecord:
    video = VideoRecord(
        creator_id="creator-1",
        title="Clip",
        original_key="uploads/originals/creator-1/x.mp4",
        status=status,
        moderation_status=moderation_status,
    )
    await repository.create(video)
    return video


class TestIllegalContentTransition:
    @pytest.fixture
    def parts(self):
        repository = InMemoryVideoRepository()
        creators = FakeCreatorDirectory(approved=["creator-1"])
        audit = RecordingAuditSink()
        alerter = RecordingAlerter()
        return repository, creators, audit, alerter

    @pytest.mark.parametrize("state", [
        (VideoStatus.PROCESSING, ModerationStatus.PENDING),
        (VideoStatus.READY, ModerationStatus.PENDING),
        (VideoStatus.READY, ModerationStatus.APPROVED),
    ])
    async def test_takedown_from_any_live_state(self, parts, state):
        repository, creators, audit, alerter = parts
        video = await seed(repository, *state)

        updated = await IllegalContentTransition(repository, creators, audit, alerter).apply(video, ILLEGAL)

        assert (updated.status, updated.moderation_status) == (VideoStatus.FAILED, ModerationStatus.REJECTED)
        assert updated.moderation.flags == [ModerationFlag.ILLEGAL_CONTENT]
        assert creators.revoked == ["creator-1"]

    async def test_exactly_one_audit_and_one_alert(self, parts):
        repository, creators, audit, alerter = parts
        video = await seed(repository, VideoStatus.READY, ModerationStatus.PENDING)

        await IllegalContentTransition(repository, creators, audit, alerter).apply(video, ILLEGAL)

        assert audit.actions() == [AuditAction.ILLEGAL_CONTENT_DETECTED]
        entry = audit.entries[0]
        assert entry.performed_by == SYSTEM_ACTOR
        assert entry.entity_id == video.id
        assert entry.metadata == {
            "creator_id": "creator-1",
            "action": "AUTO_BANNED",
            "severity": "CRITICAL",
            "confidence": 98.4,
        }

        assert len(alerter.events) == 1
        event = alerter.events[0]
        assert event["type"] == "ILLEGAL_CONTENT"
        assert event["video_id"] == video.id
        assert event["creator_id"] == "creator-1"
        assert "timestamp" in event

    async def test_side_effects_survive_audit_failure(self, parts):
        repository, creators, _, alerter = parts
        audit = RecordingAuditSink(fail=True)
        video = await seed(repository, VideoStatus.READY, ModerationStatus.PENDING)

        updated = await IllegalContentTransition(repository, creators, audit, alerter).apply(video, ILLEGAL)

        assert updated.status == VideoStatus.FAILED
        assert creators.revoked == ["creator-1"]
        assert len(alerter.events) == 1

    async def test_video_already_gone(self, parts):
        repository, creators, audit, alerter = parts
        video = await seed(repository, VideoStatus.READY, ModerationStatus.PENDING)
        await repository.delete(video.id)

        updated = await IllegalContentTransition(repository, creators, audit, alerter).apply(video, ILLEGAL)

        assert updated is None
        assert creators.revoked == ["creator-1"]
        assert audit.actions() == [AuditAction.ILLEGAL_CONTENT_DETECTED]
        assert len(alerter.events) == 1


class TestModerationReview:
    async def test_approve_from_pending(self):
        repository = InMemoryVideoRepository()
        audit = RecordingAuditSink()
        video = await seed(repository, VideoStatus.READY, ModerationStatus.PENDING)

        updated = await ModerationReview(repository, audit).approve(video.id, "admin-1")

        assert updated.is_servable
        assert updated.published_at is not None
        assert audit.actions() == [AuditAction.VIDEO_APPROVED]
        assert audit.entries[0].performed_by == "admin-1"

    @pytest.mark.parametrize("state", [
        (VideoStatus.PROCESSING, ModerationStatus.PENDING),
        (VideoStatus.READY, ModerationStatus.APPROVED),
        (VideoStatus.FAILED, ModerationStatus.REJECTED),
        (VideoStatus.FAILED, ModerationStatus.PENDING),
    ])
    async def test_approve_from_other_states_is_refused(self, state):
        repository = InMemoryVideoRepository()
        audit = RecordingAuditSink()
        video = await seed(repository, *state)

        with pytest.raises(InvalidTransitionException) as exc_info:
            await ModerationReview(repository, audit).approve(video.id, "admin-1")

        assert exc_info.value.http_status_code == 409
        assert exc_info.value.metadata["actual"] == f"{state[0].value}/{state[1].value}"
        assert audit.entries == []
        stored = await repository.get(video.id)
        assert (stored.status, stored.moderation_status) == state

    async def test_approve_unknown_video(self):
        with pytest.raises(NotFoundException):
            await ModerationReview(InMemoryVideoRepository(), RecordingAuditSink()).approve("nope", "admin-1")

    async def test_reject_published_video(self):
        repository = InMemoryVideoRepository()
        audit = RecordingAuditSink()
        video = await seed(repository, VideoStatus.READY, ModerationStatus.APPROVED)

        updated = await ModerationReview(repository, audit).reject(video.id, "admin-1", "spam")

        assert (updated.status, updated.moderation_status) == (VideoStatus.FAILED, ModerationStatus.REJECTED)
        assert "spam" in updated.error_message
        assert audit.actions() == [AuditAction.VIDEO_REJECTED]
        assert audit.entries[0].metadata == {"reason": "spam"}

    async def test_reject_twice(self):
        repository = InMemoryVideoRepository()
        audit = RecordingAuditSink()
        video = await seed(repository, VideoStatus.READY, ModerationStatus.PENDING)
        review = ModerationReview(repository, audit)
        await review.reject(video.id, "admin-1", "spam")

        with pytest.raises(InvalidTransitionException):
            await review.reject(video.id, "admin-1", "spam")
        assert len(audit.entries) == 1
