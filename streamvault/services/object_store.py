"""S3-compatible object store gateway.

Provides:
- put / get / ranged get / head / delete against one bucket
- Byte-range resolution with HTTP 206 semantics (open-ended ranges, end clamping)
- Pre-signed PUT URLs so clients upload straight to the ingest bucket
- File transfer helpers used by the transcode engine
"""

import mimetypes
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from streamvault.core.exceptions import RangeNotSatisfiableException
from streamvault.core.logger import get_logger

logger = get_logger(__name__)

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")

_CONTENT_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/MP2T",
    ".jpg": "image/jpeg",
    ".mp4": "video/mp4",
}


class ObjectStoreError(Exception):
    """The store could not complete an operation."""


class ObjectNotFoundError(ObjectStoreError):
    pass


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive
    size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"


@dataclass(frozen=True)
class RangeRead:
    data: bytes
    byte_range: ByteRange
    content_type: str = "application/octet-stream"

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Range": self.byte_range.content_range,
            "Accept-Ranges": "bytes",
            "Content-Length": str(len(self.data)),
            "Content-Type": self.content_type,
        }


def resolve_byte_range(start: int, end: Optional[int], size: int) -> ByteRange:
    """Clamp ``start..end`` (inclusive, ``end=None`` for open-ended) to an object of ``size`` bytes."""
    if start < 0 or start >= size or (end is not None and end < start):
        raise RangeNotSatisfiableException(size=size, range_header=f"bytes={start}-{'' if end is None else end}")
    last = size - 1 if end is None else min(end, size - 1)
    return ByteRange(start=start, end=last, size=size)


def parse_range_header(header: str, size: int, max_chunk: Optional[int] = None) -> ByteRange:
    """
    Parse a single-range ``Range`` header.

    ``bytes=0-999`` and ``bytes=9500-`` are supported, as is the suffix form
    ``bytes=-500``. Every form is capped to ``max_chunk`` bytes
    when given; the response carries the shortened Content-Range.
    """
    match = _RANGE_RE.match(header.strip())
    if not match or match.groups() == ("", ""):
        raise RangeNotSatisfiableException(size=size, range_header=header)

    first, last = match.groups()
    if first == "":
        suffix = int(last)
        if suffix == 0:
            raise RangeNotSatisfiableException(size=size, range_header=header)
        start, end = max(size - suffix, 0), None
    else:
        start = int(first)
        end = int(last) if last else None

    if max_chunk:
        cap = start + max_chunk - 1
        end = cap if end is None else min(end, cap)
    return resolve_byte_range(start, end, size)


def guess_content_type(path: str) -> str:
    content_type, _ = mimetypes.guess_type(path)
    if content_type is None or path.endswith((".m3u8", ".ts")):
        content_type = _CONTENT_TYPES.get(Path(path).suffix, "application/octet-stream")
    return content_type


class ObjectStore(ABC):
    """A single bucket of blobs addressed by key."""

    bucket: str

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        """Store ``data`` under ``key``; raises ObjectStoreError on failure."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Read a whole object; raises ObjectNotFoundError when missing."""

    @abstractmethod
    async def head_size(self, key: str) -> Optional[int]:
        """Object size in bytes, or None when the key does not exist."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete one key. Returns False instead of raising."""

    @abstractmethod
    async def list_keys(self, prefix: str) -> list[str]:
        pass

    @abstractmethod
    async def presigned_put_url(self, key: str, content_type: str, expires_in: int) -> str:
        pass

    @abstractmethod
    async def _read_range(self, key: str, start: int, end: int) -> bytes:
        """Read bytes ``start..end`` inclusive; the range is already validated."""

    async def get_range(
        self,
        key: str,
        start: int,
        end: Optional[int] = None,
        content_type: Optional[str] = None,
    ) -> RangeRead:
        size = await self.head_size(key)
        if size is None:
            raise ObjectNotFoundError(key)
        byte_range = resolve_byte_range(start, end, size)
        return await self.read(key, byte_range, content_type)

    async def read(self, key: str, byte_range: ByteRange, content_type: Optional[str] = None) -> RangeRead:
        data = await self._read_range(key, byte_range.start, byte_range.end)
        return RangeRead(
            data=data,
            byte_range=byte_range,
            content_type=content_type or guess_content_type(key),
        )

    async def delete_prefix(self, prefix: str) -> int:
        """Best-effort removal of every key under ``prefix``. Returns how many were deleted."""
        deleted = 0
        for key in await self.list_keys(prefix):
            if await self.delete(key):
                deleted += 1
        return deleted

    async def download_file(self, key: str, local_path: Path) -> Path:
        data = await self.get(key)
        local_path.write_bytes(data)
        logger.info(f"Downloaded {self.bucket}/{key} ({len(data)} bytes)")
        return local_path

    async def upload_file(self, local_path: Path, key: str) -> None:
        await self.put(key, local_path.read_bytes(), guess_content_type(str(local_path)))


class S3ObjectStore(ObjectStore):
    """aioboto3-backed store; path-style addressing for S3-compatible providers."""

    def __init__(
        self,
        bucket: str,
        access_key: Optional[str],
        secret_key: Optional[str],
        region: str,
        endpoint_url: Optional[str] = None,
        public_endpoint_url: Optional[str] = None,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.public_endpoint_url = public_endpoint_url or endpoint_url
        self._session = aioboto3.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )
        self._config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
        )

    def _client(self, public: bool = False):
        endpoint = self.public_endpoint_url if public else self.endpoint_url
        return self._session.client("s3", endpoint_url=endpoint, config=self._config)

    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        try:
            async with self._client() as s3:
                await s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"put {self.bucket}/{key} failed: {e}") from e
        logger.debug(f"Uploaded s3://{self.bucket}/{key}")

    async def get(self, key: str) -> bytes:
        try:
            async with self._client() as s3:
                response = await s3.get_object(Bucket=self.bucket, Key=key)
                return await response["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise ObjectNotFoundError(key) from e
            raise ObjectStoreError(f"get {self.bucket}/{key} failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"get {self.bucket}/{key} failed: {e}") from e

    async def _read_range(self, key: str, start: int, end: int) -> bytes:
        try:
            async with self._client() as s3:
                response = await s3.get_object(Bucket=self.bucket, Key=key, Range=f"bytes={start}-{end}")
                return await response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"ranged get {self.bucket}/{key} failed: {e}") from e

    async def head_size(self, key: str) -> Optional[int]:
        try:
            async with self._client() as s3:
                response = await s3.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return None
            raise ObjectStoreError(f"head {self.bucket}/{key} failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"head {self.bucket}/{key} failed: {e}") from e
        return int(response["ContentLength"])

    async def delete(self, key: str) -> bool:
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=self.bucket, Key=key)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 delete failed for {self.bucket}/{key}: {e}")
            return False

    async def list_keys(self, prefix: str) -> list[str]:
        keys: list[str] = []
        try:
            async with self._client() as s3:
                paginator = s3.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                    keys.extend(item["Key"] for item in page.get("Contents", []))
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"list {self.bucket}/{prefix} failed: {e}") from e
        return keys

    async def presigned_put_url(self, key: str, content_type: str, expires_in: int) -> str:
        async with self._client(public=True) as s3:
            url = await s3.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        logger.info(f"Generated pre-signed PUT URL for key: {key}")
        return url

    async def download_file(self, key: str, local_path: Path) -> Path:
        try:
            async with self._client() as s3:
                await s3.download_file(self.bucket, key, str(local_path))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                raise ObjectNotFoundError(key) from e
            raise ObjectStoreError(f"download {self.bucket}/{key} failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"download {self.bucket}/{key} failed: {e}") from e
        logger.info(f"Downloaded s3://{self.bucket}/{key} -> {local_path}")
        return local_path

    async def upload_file(self, local_path: Path, key: str) -> None:
        try:
            async with self._client() as s3:
                await s3.upload_file(
                    str(local_path),
                    self.bucket,
                    key,
                    ExtraArgs={"ContentType": guess_content_type(str(local_path))},
                )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"upload {self.bucket}/{key} failed: {e}") from e
