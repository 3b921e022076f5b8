from dataclasses import dataclass
from typing import Optional

import pytest
from fakeredis import FakeAsyncRedis

from streamvault.models import VideoUploadRequest, Visibility
from streamvault.services.access import AccessGateway
from streamvault.services.cache import VideoCache
from streamvault.services.jobs import LocalJobRunner
from streamvault.services.moderation import (
    IllegalContentTransition,
    ModerationEngine,
    ModerationReview,
)
from streamvault.services.orchestrator import VideoOrchestrator
from streamvault.services.transcode import TranscodeEngine

from tests.fakes import (
    FakeClassifier,
    FakeCreatorDirectory,
    FakeEntitlements,
    FakeFFmpegRunner,
    FakeSigner,
    InMemoryObjectStore,
    InMemoryVideoRepository,
    RecordingAlerter,
    RecordingAuditSink,
)

CREATOR_ID = "creator-1"
SOURCE_BYTES = bytes(range(256)) * 40  # 10240 bytes


@dataclass
class Harness:
    orchestrator: VideoOrchestrator
    repository: InMemoryVideoRepository
    ingest: InMemoryObjectStore
    media: InMemoryObjectStore
    ffmpeg: FakeFFmpegRunner
    classifier: FakeClassifier
    entitlements: FakeEntitlements
    creators: FakeCreatorDirectory
    audit: RecordingAuditSink
    alerter: RecordingAlerter
    signer: FakeSigner
    cache: VideoCache
    runner: LocalJobRunner

    async def upload(
        self,
        visibility: Visibility = Visibility.PUBLIC,
        creator_id: str = CREATOR_ID,
        data: bytes = SOURCE_BYTES,
    ) -> str:
        """Request a slot and put the file where the client would have."""
        response = await self.orchestrator.request_upload(
            creator_id,
            VideoUploadRequest(filename="clip.mp4", title="Clip", visibility=visibility),
        )
        await self.ingest.put(response.s3_key, data, "video/mp4")
        return response.video_id

    async def process(self, video_id: str, creator_id: str = CREATOR_ID) -> None:
        await self.orchestrator.confirm_upload(video_id, creator_id)
        await self.runner.wait(video_id)


@pytest.fixture
async def redis_client():
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def ffmpeg() -> FakeFFmpegRunner:
    return FakeFFmpegRunner()


@pytest.fixture
def harness(tmp_path, redis_client, classifier, ffmpeg) -> Harness:
    return build_harness(tmp_path, redis_client, classifier=classifier, ffmpeg=ffmpeg)


def build_harness(
    tmp_path,
    redis_client,
    classifier: Optional[FakeClassifier] = None,
    ffmpeg: Optional[FakeFFmpegRunner] = None,
    signer: Optional[FakeSigner] = None,
) -> Harness:
    repository = InMemoryVideoRepository()
    ingest = InMemoryObjectStore("ingest")
    media = InMemoryObjectStore("media")
    ffmpeg = ffmpeg or FakeFFmpegRunner()
    classifier = classifier or FakeClassifier()
    entitlements = FakeEntitlements()
    creators = FakeCreatorDirectory(approved=[CREATOR_ID])
    audit = RecordingAuditSink()
    alerter = RecordingAlerter()
    signer = signer or FakeSigner()
    cache = VideoCache(redis_client, ttl_seconds=60)
    runner = LocalJobRunner()

    orchestrator = VideoOrchestrator(
        repository=repository,
        ingest_store=ingest,
        media_store=media,
        transcoder=TranscodeEngine(
            source_store=ingest,
            media_store=media,
            runner=ffmpeg,
            temp_dir=tmp_path / "work",
            max_parallel=2,
        ),
        moderator=ModerationEngine(classifier, poll_interval_seconds=0.0, max_attempts=5),
        illegal_content=IllegalContentTransition(repository, creators, audit, alerter),
        review=ModerationReview(repository, audit),
        access=AccessGateway(entitlements, signer, cache, cookie_ttl_hours=6),
        cache=cache,
        creators=creators,
        audit=audit,
        runner=runner,
        media_base_url="https://media.test",
        stream_chunk_size=1000,
    )
    runner.bind(orchestrator.run_pipeline, orchestrator.job_probe)

    return Harness(
        orchestrator=orchestrator,
        repository=repository,
        ingest=ingest,
        media=media,
        ffmpeg=ffmpeg,
        classifier=classifier,
        entitlements=entitlements,
        creators=creators,
        audit=audit,
        alerter=alerter,
        signer=signer,
        cache=cache,
        runner=runner,
    )
