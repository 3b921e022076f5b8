"""Builds the service graph from settings.

The API process and the worker both go through ``PipelineFactory`` so that
every component gets its collaborators passed in explicitly.
"""

from enum import Enum

import redis.asyncio as redis

from streamvault.core.config import Settings, settings
from streamvault.services.access import AccessGateway
from streamvault.services.cache import VideoCache
from streamvault.services.collaborators import (
    Alerter,
    LoggingAlerter,
    MongoAuditSink,
    SlackWebhookAlerter,
    SubscriptionEntitlementChecker,
    UserCreatorDirectory,
)
from streamvault.services.jobs import JobRunner, LocalJobRunner, QueueJobRunner
from streamvault.services.moderation import (
    IllegalContentTransition,
    ModerationEngine,
    ModerationReview,
    RekognitionClassifier,
)
from streamvault.services.object_store import S3ObjectStore
from streamvault.services.orchestrator import VideoOrchestrator
from streamvault.services.repository import MongoVideoRepository
from streamvault.services.signing import CloudFrontCookieSigner
from streamvault.services.transcode import FFmpegRunner, TranscodeEngine


class JobBackend(str, Enum):
    """Where pipeline jobs run."""
    LOCAL = "local"
    RABBITMQ = "rabbitmq"


class PipelineFactory:
    """Factory for the pipeline's services."""

    @staticmethod
    def create_object_store(bucket: str, config: Settings = settings) -> S3ObjectStore:
        return S3ObjectStore(
            bucket=bucket,
            access_key=config.S3_ACCESS_KEY,
            secret_key=config.S3_SECRET_KEY,
            region=config.S3_REGION,
            endpoint_url=config.S3_INTERNAL_ENDPOINT,
            public_endpoint_url=config.s3_public_endpoint,
        )

    @staticmethod
    def create_alerter(config: Settings = settings) -> Alerter:
        if config.SLACK_WEBHOOK_URL:
            return SlackWebhookAlerter(config.SLACK_WEBHOOK_URL)
        return LoggingAlerter()

    @staticmethod
    def create_job_runner(
        backend: JobBackend | None = None,
        config: Settings = settings,
    ) -> JobRunner:
        """
        Create the runner confirm_upload hands work to.

        Raises:
            ValueError: If the backend is not supported
        """
        backend = JobBackend(backend or config.JOB_BACKEND)
        if backend == JobBackend.LOCAL:
            return LocalJobRunner()
        if backend == JobBackend.RABBITMQ:
            return QueueJobRunner(config.RABBITMQ_URL, config.PIPELINE_QUEUE)

        raise ValueError(f"Unknown job backend: {backend}")

    @staticmethod
    def create_orchestrator(
        redis_client: redis.Redis,
        runner: JobRunner,
        config: Settings = settings,
    ) -> VideoOrchestrator:
        ingest_store = PipelineFactory.create_object_store(config.S3_INGEST_BUCKET, config)
        media_store = PipelineFactory.create_object_store(config.S3_MEDIA_BUCKET, config)

        repository = MongoVideoRepository()
        cache = VideoCache(redis_client, ttl_seconds=config.VIDEO_CACHE_TTL_SECONDS)
        creators = UserCreatorDirectory()
        audit = MongoAuditSink()

        transcoder = TranscodeEngine(
            source_store=ingest_store,
            media_store=media_store,
            runner=FFmpegRunner(config.FFMPEG_BINARY, config.FFPROBE_BINARY),
            temp_dir=config.TRANSCODE_TEMP_DIR,
            max_parallel=config.TRANSCODE_MAX_PARALLEL,
            segment_seconds=config.HLS_SEGMENT_SECONDS,
            sprite_interval_seconds=config.SPRITE_INTERVAL_SECONDS,
            sprite_columns=config.SPRITE_TILE_COLUMNS,
            sprite_rows=config.SPRITE_TILE_ROWS,
        )
        moderator = ModerationEngine(
            RekognitionClassifier(
                bucket=config.S3_INGEST_BUCKET,
                region=config.AWS_REGION,
                min_confidence=config.MODERATION_MIN_CONFIDENCE,
                access_key=config.AWS_ACCESS_KEY_ID,
                secret_key=config.AWS_SECRET_ACCESS_KEY,
            ),
            poll_interval_seconds=config.MODERATION_POLL_INTERVAL_SECONDS,
            max_attempts=config.MODERATION_MAX_POLL_ATTEMPTS,
        )
        access = AccessGateway(
            entitlements=SubscriptionEntitlementChecker(),
            signer=CloudFrontCookieSigner(
                key_pair_id=config.CLOUDFRONT_KEY_PAIR_ID,
                domain=config.CLOUDFRONT_DOMAIN,
                private_key_path=config.CLOUDFRONT_PRIVATE_KEY_PATH,
            ),
            counters=cache,
            cookie_ttl_hours=config.STREAM_COOKIE_TTL_HOURS,
        )

        orchestrator = VideoOrchestrator(
            repository=repository,
            ingest_store=ingest_store,
            media_store=media_store,
            transcoder=transcoder,
            moderator=moderator,
            illegal_content=IllegalContentTransition(
                repository, creators, audit, PipelineFactory.create_alerter(config)
            ),
            review=ModerationReview(repository, audit),
            access=access,
            cache=cache,
            creators=creators,
            audit=audit,
            runner=runner,
            media_base_url=config.CLOUDFRONT_DOMAIN,
            upload_url_expire_seconds=config.UPLOAD_URL_EXPIRE_SECONDS,
            stream_chunk_size=config.STREAM_CHUNK_SIZE,
        )

        if isinstance(runner, LocalJobRunner):
            runner.bind(orchestrator.run_pipeline, orchestrator.job_probe)
        return orchestrator
