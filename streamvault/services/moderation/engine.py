"""Moderation scan: start a classification job, poll it on a bounded budget, decide."""

from dataclasses import dataclass, field
from typing import Optional

from streamvault.core.logger import get_logger, log_business_error
from streamvault.models import ModerationFlag, ModerationStatus, ModerationSummary
from streamvault.services.jobs import JobContext

from .classifier import ClassificationError, ContentClassifier, JobState
from .policy import decide, map_labels

logger = get_logger(__name__)


@dataclass
class ModerationResult:
    decision: ModerationStatus
    confidence: float = 0.0
    flags: list[ModerationFlag] = field(default_factory=list)
    scan_failed: bool = False
    error: Optional[str] = None

    @property
    def is_illegal(self) -> bool:
        return ModerationFlag.ILLEGAL_CONTENT in self.flags

    @classmethod
    def failed(cls, error: str) -> "ModerationResult":
        # A scan that could not finish always lands in human review
        return cls(decision=ModerationStatus.PENDING, scan_failed=True, error=error)

    def to_summary(self) -> ModerationSummary:
        return ModerationSummary(
            decision=self.decision,
            confidence=self.confidence,
            flags=list(self.flags),
            scan_failed=self.scan_failed,
            error=self.error,
        )


class ModerationEngine:
    def __init__(
        self,
        classifier: ContentClassifier,
        poll_interval_seconds: float = 5.0,
        max_attempts: int = 60,
    ):
        self.classifier = classifier
        self.poll_interval_seconds = poll_interval_seconds
        self.max_attempts = max_attempts

    async def scan(self, video_id: str, encoded_key: str, context: JobContext) -> ModerationResult:
        """
        Classify the asset at ``encoded_key``.

        Never raises for classifier trouble: timeouts, transport errors,
        malformed answers and FAILED jobs all come back as a PENDING result
        with ``scan_failed`` set. JobCancelled propagates.
        """
        await context.ensure_active()
        try:
            job_id = await self.classifier.start_job(encoded_key)
        except ClassificationError as e:
            logger.error(f"Moderation scan could not start for video {video_id}: {e}")
            return ModerationResult.failed(str(e))

        for attempt in range(1, self.max_attempts + 1):
            await context.ensure_active()
            try:
                status = await self.classifier.get_job(job_id)
            except ClassificationError as e:
                logger.error(f"Moderation job {job_id} unreadable for video {video_id}: {e}")
                return ModerationResult.failed(str(e))

            if status.state == JobState.SUCCEEDED:
                flags, confidence = map_labels(status.labels)
                result = ModerationResult(
                    decision=decide(flags),
                    confidence=confidence,
                    flags=flags,
                )
                logger.info(
                    f"Moderation finished for video {video_id}: {result.decision.value}",
                    extra={"extra_data": {
                        "flags": [f.value for f in flags],
                        "confidence": confidence,
                        "attempts": attempt,
                    }},
                )
                return result

            if status.state == JobState.FAILED:
                logger.error(f"Moderation job {job_id} failed for video {video_id}: {status.error}")
                return ModerationResult.failed(status.error or "Moderation job failed")

            if attempt < self.max_attempts:
                await context.sleep(self.poll_interval_seconds)

        log_business_error(
            logger,
            "MODERATION_TIMEOUT",
            f"Moderation job {job_id} timed out after {self.max_attempts} polls",
            {"video_id": video_id, "job_id": job_id},
        )
        return ModerationResult.failed("Moderation job timeout")
