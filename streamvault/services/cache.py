"""Redis-backed hot metadata cache and view / like counters.

Keys:
- video:{id}             cached VideoRecord JSON (TTL)
- video:{id}:gen         generation, bumped on every invalidate / purge
- views:{id}             view counter, INCR only
- likes:{id}:users       set of viewer ids who liked the video

A fill only lands if the generation it read before loading the record is
still current, so a slow reader can never write back a copy older than the
last invalidation.
"""

from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import WatchError

from streamvault.core.logger import get_logger
from streamvault.models import VideoRecord

logger = get_logger(__name__)


class RedisService:
    """Owns the Redis connection for one process."""

    def __init__(self, url: str):
        self.url = url
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Connect to Redis server."""
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=10.0,
                health_check_interval=30,
            )
            await self._client.ping()
            logger.info("Connected to Redis")

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis")

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raise error if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._client


class VideoCache:
    """Metadata cache plus atomic counters. The client must use decode_responses=True."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = 3600):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _video_key(video_id: str) -> str:
        return f"video:{video_id}"

    @staticmethod
    def _generation_key(video_id: str) -> str:
        return f"video:{video_id}:gen"

    @staticmethod
    def _views_key(video_id: str) -> str:
        return f"views:{video_id}"

    @staticmethod
    def _likes_key(video_id: str) -> str:
        return f"likes:{video_id}:users"

    # ==================== Metadata ====================

    async def get_video(self, video_id: str) -> Optional[VideoRecord]:
        data = await self.client.get(self._video_key(video_id))
        if data is None:
            return None
        try:
            return VideoRecord.model_validate_json(data)
        except ValidationError:
            logger.warning(f"Dropping unreadable cache entry for video {video_id}")
            await self.client.delete(self._video_key(video_id))
            return None

    async def generation(self, video_id: str) -> int:
        """Read before loading the record that will be passed to ``set_video``."""
        return int(await self.client.get(self._generation_key(video_id)) or 0)

    async def set_video(self, video: VideoRecord, generation: int) -> bool:
        """Store ``video`` unless the entry was invalidated after ``generation`` was read."""
        payload = VideoRecord.model_validate(video.model_dump()).model_dump_json()
        generation_key = self._generation_key(video.id)
        async with self.client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(generation_key)
                current = int(await pipe.get(generation_key) or 0)
                if current != generation:
                    logger.debug(f"Skipped stale cache fill for video {video.id}")
                    return False
                pipe.multi()
                pipe.setex(self._video_key(video.id), self.ttl_seconds, payload)
                await pipe.execute()
            except WatchError:
                logger.debug(f"Cache fill for video {video.id} raced an invalidation")
                return False
        return True

    async def invalidate(self, video_id: str) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(self._generation_key(video_id))
            pipe.delete(self._video_key(video_id))
            await pipe.execute()
        logger.debug(f"Invalidated cache for video {video_id}")

    async def purge(self, video_id: str) -> None:
        """Forget everything about a deleted video, counters included."""
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(self._generation_key(video_id))
            pipe.expire(self._generation_key(video_id), self.ttl_seconds)
            pipe.delete(
                self._video_key(video_id),
                self._views_key(video_id),
                self._likes_key(video_id),
            )
            await pipe.execute()

    # ==================== Counters ====================

    async def increment_views(self, video_id: str) -> int:
        """Atomic INCR; concurrent callers each observe a distinct value."""
        return await self.client.incr(self._views_key(video_id))

    async def add_like(self, video_id: str, viewer_id: str) -> tuple[bool, int]:
        """Record one like per viewer. Returns (newly_added, like_count)."""
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.sadd(self._likes_key(video_id), viewer_id)
            pipe.scard(self._likes_key(video_id))
            added, count = await pipe.execute()
        return bool(added), int(count)

    async def get_counts(self, video_id: str) -> tuple[int, int]:
        """(view_count, like_count)."""
        async with self.client.pipeline(transaction=False) as pipe:
            pipe.get(self._views_key(video_id))
            pipe.scard(self._likes_key(video_id))
            views, likes = await pipe.execute()
        return int(views or 0), int(likes or 0)
