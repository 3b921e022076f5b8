"""Pipeline worker entry point.

RabbitMQ consumer that:
1. Listens for pipeline jobs on the durable queue
2. Runs transcode -> moderation for the video through a LocalJobRunner
3. Acks once the job has finished, whatever its outcome (no automatic retry)

Run with ``python -m streamvault.worker``.
"""

import asyncio
import json
import signal
from typing import Optional

import aio_pika
from aio_pika import IncomingMessage
from aio_pika.abc import AbstractQueue, AbstractRobustConnection

from streamvault.core.config import settings
from streamvault.core.db import close_mongodb_connection, connect_to_mongodb
from streamvault.core.exceptions import ConflictException
from streamvault.core.logger import bind_context, get_logger
from streamvault.services.cache import RedisService
from streamvault.services.factory import PipelineFactory
from streamvault.services.jobs import LocalJobRunner

logger = get_logger(__name__)


class PipelineWorker:
    """Consumes ``video.pipeline`` and runs each job to completion."""

    def __init__(self, runner: LocalJobRunner, rabbitmq_url: str, queue_name: str, prefetch: int = 1):
        self.runner = runner
        self.rabbitmq_url = rabbitmq_url
        self.queue_name = queue_name
        self.prefetch = prefetch
        self._connection: Optional[AbstractRobustConnection] = None
        self._queue: Optional[AbstractQueue] = None
        self._consumer_tag: Optional[str] = None

    async def start(self) -> None:
        self._connection = await aio_pika.connect_robust(self.rabbitmq_url)
        channel = await self._connection.channel()
        await channel.set_qos(prefetch_count=self.prefetch)

        self._queue = await channel.declare_queue(self.queue_name, durable=True)
        self._consumer_tag = await self._queue.consume(self._process_message)
        logger.info(f"Waiting for jobs on '{self.queue_name}'...")

    async def stop(self) -> None:
        if self._queue and self._consumer_tag:
            await self._queue.cancel(self._consumer_tag)
        await self.runner.shutdown()
        if self._connection and not self._connection.is_closed:
            await self._connection.close()
        logger.info("Worker stopped")

    async def _process_message(self, message: IncomingMessage) -> None:
        async with message.process(requeue=False):
            try:
                video_id = json.loads(message.body.decode())["video_id"]
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Dropping malformed pipeline job: {e}")
                return

            with bind_context(video_id=video_id):
                logger.info(f"Received pipeline job for video {video_id}")
                try:
                    await self.runner.submit(video_id)
                except ConflictException:
                    logger.warning(f"Pipeline already running for video {video_id}, dropping duplicate")
                    return
                await self.runner.wait(video_id)
                logger.info(f"Pipeline job finished for video {video_id}")


async def run() -> None:
    await connect_to_mongodb()
    redis_service = RedisService(settings.REDIS_URL)
    await redis_service.connect()

    runner = LocalJobRunner()
    PipelineFactory.create_orchestrator(redis_service.client, runner)

    worker = PipelineWorker(
        runner,
        settings.RABBITMQ_URL,
        settings.PIPELINE_QUEUE,
        prefetch=settings.TRANSCODE_MAX_PARALLEL,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, stop.set)

    try:
        await worker.start()
        await stop.wait()
        logger.info("Shutdown signal received")
    finally:
        await worker.stop()
        await redis_service.disconnect()
        await close_mongodb_connection()


def main() -> None:
    logger.info("Starting pipeline worker...")
    asyncio.run(run())


if __name__ == "__main__":
    main()
