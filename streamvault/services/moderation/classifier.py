"""Asynchronous content classification backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from streamvault.core.logger import get_logger

logger = get_logger(__name__)


class ClassificationError(Exception):
    """The classifier could not be reached or answered with something unusable."""


class JobState(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ModerationLabel:
    name: str
    confidence: float
    parent_name: Optional[str] = None


@dataclass
class ClassificationStatus:
    state: JobState
    labels: list[ModerationLabel] = field(default_factory=list)
    error: Optional[str] = None


class ContentClassifier(ABC):
    @abstractmethod
    async def start_job(self, key: str) -> str:
        """Submit the object at ``key`` for classification and return the job id."""

    @abstractmethod
    async def get_job(self, job_id: str) -> ClassificationStatus:
        """Current state of the job; labels are only filled in once it SUCCEEDED."""


class RekognitionClassifier(ContentClassifier):
    """AWS Rekognition video content moderation (StartContentModeration / GetContentModeration)."""

    def __init__(
        self,
        bucket: str,
        region: str,
        min_confidence: float = 60.0,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
    ):
        self.bucket = bucket
        self.min_confidence = min_confidence
        self._session = aioboto3.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    def _client(self):
        return self._session.client("rekognition")

    async def start_job(self, key: str) -> str:
        try:
            async with self._client() as rekognition:
                response = await rekognition.start_content_moderation(
                    Video={"S3Object": {"Bucket": self.bucket, "Name": key}},
                    MinConfidence=self.min_confidence,
                )
        except (BotoCoreError, ClientError) as e:
            raise ClassificationError(f"StartContentModeration failed: {e}") from e

        job_id = response.get("JobId")
        if not job_id:
            raise ClassificationError("StartContentModeration returned no JobId")
        logger.info(f"Started moderation job {job_id} for s3://{self.bucket}/{key}")
        return job_id

    async def get_job(self, job_id: str) -> ClassificationStatus:
        labels: list[ModerationLabel] = []
        next_token: Optional[str] = None
        try:
            async with self._client() as rekognition:
                while True:
                    params = {"JobId": job_id, "SortBy": "TIMESTAMP"}
                    if next_token:
                        params["NextToken"] = next_token
                    response = await rekognition.get_content_moderation(**params)

                    raw_state = response.get("JobStatus")
                    try:
                        state = JobState(raw_state)
                    except ValueError as e:
                        raise ClassificationError(f"Unknown job status {raw_state!r}") from e

                    if state != JobState.SUCCEEDED:
                        return ClassificationStatus(state=state, error=response.get("StatusMessage"))

                    for item in response.get("ModerationLabels", []):
                        label = item.get("ModerationLabel") or {}
                        try:
                            labels.append(ModerationLabel(
                                name=label.get("Name", ""),
                                confidence=float(label.get("Confidence", 0.0)),
                                parent_name=label.get("ParentName") or None,
                            ))
                        except (TypeError, ValueError) as e:
                            raise ClassificationError(f"Malformed moderation label: {label!r}") from e

                    next_token = response.get("NextToken")
                    if not next_token:
                        break
        except (BotoCoreError, ClientError) as e:
            raise ClassificationError(f"GetContentModeration failed: {e}") from e

        return ClassificationStatus(state=JobState.SUCCEEDED, labels=labels)
