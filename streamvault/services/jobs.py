"""Background job execution for the video pipeline.

- JobContext: cancellation token handed to the engines, tied to one video
- LocalJobRunner: asyncio tasks, one in-flight job per video id
- QueueJobRunner: hands the job to the worker process over RabbitMQ
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import aio_pika
from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractChannel, AbstractRobustConnection
from aio_pika.exceptions import AMQPError

from streamvault.core.exceptions import ConflictException, ServiceUnavailableException
from streamvault.core.logger import bind_context, get_logger

logger = get_logger(__name__)


class JobCancelled(Exception):
    """The owning video was deleted or force-failed while its job was running."""


class JobContext:
    """
    Cancellation handle for one video's job.

    ``probe`` re-reads the stored record and returns False once the video is
    gone or terminal; this is how a worker in another process notices a delete.
    """

    def __init__(
        self,
        video_id: str,
        probe: Optional[Callable[[], Awaitable[bool]]] = None,
    ):
        self.video_id = video_id
        self._probe = probe
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def ensure_active(self) -> None:
        """Raise JobCancelled if the job must stop. Called before every side effect."""
        if self._cancelled.is_set():
            raise JobCancelled(self.video_id)
        if self._probe is not None and not await self._probe():
            self._cancelled.set()
            raise JobCancelled(self.video_id)

    async def sleep(self, seconds: float) -> None:
        """Suspend without busy-waiting; wakes early and raises on cancellation."""
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise JobCancelled(self.video_id)


PipelineJob = Callable[[JobContext], Awaitable[None]]


class JobRunner(ABC):
    @abstractmethod
    async def submit(self, video_id: str) -> None:
        """Start (or enqueue) the pipeline for ``video_id``; returns immediately."""

    @abstractmethod
    async def cancel(self, video_id: str) -> bool:
        """Stop the job for ``video_id`` if this runner can reach it."""


class LocalJobRunner(JobRunner):
    """Runs each video's pipeline as an asyncio task with a per-video slot."""

    def __init__(
        self,
        job: Optional[PipelineJob] = None,
        probe_factory: Optional[Callable[[str], Callable[[], Awaitable[bool]]]] = None,
    ):
        self._job = job
        self._probe_factory = probe_factory
        self._tasks: dict[str, asyncio.Task] = {}
        self._contexts: dict[str, JobContext] = {}

    def bind(
        self,
        job: PipelineJob,
        probe_factory: Optional[Callable[[str], Callable[[], Awaitable[bool]]]] = None,
    ) -> None:
        self._job = job
        if probe_factory is not None:
            self._probe_factory = probe_factory

    def is_running(self, video_id: str) -> bool:
        task = self._tasks.get(video_id)
        return task is not None and not task.done()

    async def submit(self, video_id: str) -> None:
        if self._job is None:
            raise RuntimeError("LocalJobRunner has no pipeline bound")
        if self.is_running(video_id):
            raise ConflictException(
                error_code="JOB_IN_FLIGHT",
                message="Video is already being processed",
                metadata={"video_id": video_id},
            )

        probe = self._probe_factory(video_id) if self._probe_factory else None
        context = JobContext(video_id, probe=probe)
        self._contexts[video_id] = context
        task = asyncio.create_task(self._run(context), name=f"pipeline:{video_id}")
        self._tasks[video_id] = task
        task.add_done_callback(lambda _t, vid=video_id: self._forget(vid))
        logger.info(f"Pipeline job submitted for video {video_id}")

    async def _run(self, context: JobContext) -> None:
        with bind_context(video_id=context.video_id, job="pipeline"):
            try:
                await self._job(context)
            except (JobCancelled, asyncio.CancelledError):
                logger.info(f"Pipeline job cancelled for video {context.video_id}")
            except Exception as e:
                logger.exception(f"Pipeline job crashed for video {context.video_id}: {e}")

    def _forget(self, video_id: str) -> None:
        self._tasks.pop(video_id, None)
        self._contexts.pop(video_id, None)

    async def cancel(self, video_id: str) -> bool:
        context = self._contexts.get(video_id)
        task = self._tasks.get(video_id)
        if context is None or task is None:
            return False
        context.cancel()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Cancelled pipeline job for video {video_id}")
        return True

    async def wait(self, video_id: str) -> None:
        """Wait for the job of ``video_id`` to finish (used by the worker and tests)."""
        task = self._tasks.get(video_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        for video_id in list(self._tasks):
            await self.cancel(video_id)


class QueueJobRunner(JobRunner):
    """Publishes pipeline jobs to the durable RabbitMQ queue the worker consumes."""

    def __init__(self, rabbitmq_url: str, queue_name: str):
        self.rabbitmq_url = rabbitmq_url
        self.queue_name = queue_name
        self._connection: Optional[AbstractRobustConnection] = None
        self._channel: Optional[AbstractChannel] = None

    async def _get_channel(self) -> AbstractChannel:
        if self._connection is None or self._connection.is_closed:
            self._connection = await aio_pika.connect_robust(self.rabbitmq_url)
            logger.info("Connected to RabbitMQ")
        if self._channel is None or self._channel.is_closed:
            self._channel = await self._connection.channel()
            await self._channel.declare_queue(self.queue_name, durable=True)
            logger.info(f"Declared queue: {self.queue_name}")
        return self._channel

    async def submit(self, video_id: str) -> None:
        try:
            channel = await self._get_channel()
            message = Message(
                body=json.dumps({"video_id": video_id}).encode(),
                delivery_mode=DeliveryMode.PERSISTENT,
                content_type="application/json",
            )
            await channel.default_exchange.publish(message, routing_key=self.queue_name)
        except (AMQPError, ConnectionError) as e:
            raise ServiceUnavailableException(
                error_code="QUEUE_UNAVAILABLE",
                message="Failed to queue video for processing",
                debug_message=str(e),
            ) from e
        logger.info(f"Published pipeline job for video {video_id} to {self.queue_name}")

    async def cancel(self, video_id: str) -> bool:
        # The worker notices the delete through JobContext.ensure_active
        return False

    async def close(self) -> None:
        if self._connection and not self._connection.is_closed:
            await self._connection.close()
        self._connection = None
        self._channel = None
