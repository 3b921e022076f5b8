"""Transcode engine: one source file in, an HLS ladder plus preview images out.

Handles:
- Encoding every preset to its own segmented rendition (bounded concurrency)
- master.m3u8, written only once every rendition has succeeded
- Thumbnail (10% into the video) and a tiled scrub sprite
- Uploading under videos/<id>/ with the master manifest last
"""

import asyncio
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Union

from streamvault.core.logger import get_logger
from streamvault.models.video import artifact_prefix
from streamvault.services.jobs import JobCancelled, JobContext
from streamvault.services.object_store import ObjectStore, ObjectStoreError

from .ffmpeg import (
    FFmpegRunner,
    TranscodeError,
    hls_variant_args,
    master_playlist,
    probe_duration,
    sprite_args,
    thumbnail_args,
)
from .presets import DEFAULT_PRESETS, QualityPreset, validate_presets

logger = get_logger(__name__)

MASTER_MANIFEST = "master.m3u8"
THUMBNAIL_FILE = "thumbnail.jpg"
SPRITE_FILE = "sprite.jpg"


@dataclass
class TranscodeArtifacts:
    manifest_key: str
    variant_keys: dict[str, str]
    thumbnail_key: str
    sprite_key: str
    duration_seconds: float
    uploaded_keys: list[str] = field(default_factory=list)


@dataclass
class TranscodeFailure:
    error: str
    stage: str


TranscodeResult = Union[TranscodeArtifacts, TranscodeFailure]


class TranscodeEngine:
    """Drives ffmpeg for a single video at a time; safe to share between jobs."""

    def __init__(
        self,
        source_store: ObjectStore,
        media_store: ObjectStore,
        runner: FFmpegRunner,
        temp_dir: Union[str, Path],
        presets: Sequence[QualityPreset] = DEFAULT_PRESETS,
        max_parallel: int = 2,
        segment_seconds: int = 10,
        sprite_interval_seconds: int = 10,
        sprite_columns: int = 10,
        sprite_rows: int = 10,
    ):
        validate_presets(presets)
        self.source_store = source_store
        self.media_store = media_store
        self.runner = runner
        self.temp_dir = Path(temp_dir)
        self.presets = tuple(presets)
        self.max_parallel = max(1, max_parallel)
        self.segment_seconds = segment_seconds
        self.sprite_interval_seconds = sprite_interval_seconds
        self.sprite_columns = sprite_columns
        self.sprite_rows = sprite_rows

    async def transcode(
        self,
        video_id: str,
        source_key: str,
        context: JobContext,
        presets: Optional[Sequence[QualityPreset]] = None,
    ) -> TranscodeResult:
        """
        Produce and publish every artifact for ``video_id``.

        Returns TranscodeFailure on any encode or upload error; nothing is left
        behind in the media store in that case. Raises JobCancelled when the job
        is cancelled, after removing whatever was already uploaded.
        """
        ladder = tuple(presets) if presets is not None else self.presets
        validate_presets(ladder)

        work_dir = self.temp_dir / video_id
        output_dir = work_dir / "output"
        stage = "download"
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created work directory: {work_dir}")

            await context.ensure_active()
            source_path = await self.source_store.download_file(
                source_key, work_dir / f"source{Path(source_key).suffix or '.mp4'}"
            )

            stage = "probe"
            duration = probe_duration(await self.runner.probe(source_path))
            logger.info(f"Source duration: {duration:.2f}s")

            stage = "encode"
            await self._encode_variants(source_path, output_dir, ladder, context)
            (output_dir / MASTER_MANIFEST).write_text(master_playlist(ladder))

            stage = "thumbnail"
            await context.ensure_active()
            await self.runner.run(thumbnail_args(source_path, duration * 0.1, output_dir / THUMBNAIL_FILE))

            stage = "sprite"
            await context.ensure_active()
            await self.runner.run(sprite_args(
                source_path,
                output_dir / SPRITE_FILE,
                self.sprite_interval_seconds,
                self.sprite_columns,
                self.sprite_rows,
            ))

            stage = "upload"
            uploaded = await self._upload_outputs(video_id, output_dir, context)
        except (TranscodeError, ObjectStoreError, OSError) as e:
            logger.error(f"Transcode failed at {stage} for video {video_id}: {e}")
            return TranscodeFailure(error=str(e), stage=stage)
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
            logger.info(f"Cleaned up work directory: {work_dir}")

        prefix = artifact_prefix(video_id)
        logger.info(f"Transcode complete for video {video_id}: {len(uploaded)} objects")
        return TranscodeArtifacts(
            manifest_key=f"{prefix}{MASTER_MANIFEST}",
            variant_keys={p.label: f"{prefix}{p.label}/index.m3u8" for p in ladder},
            thumbnail_key=f"{prefix}{THUMBNAIL_FILE}",
            sprite_key=f"{prefix}{SPRITE_FILE}",
            duration_seconds=duration,
            uploaded_keys=uploaded,
        )

    async def _encode_variants(
        self,
        source_path: Path,
        output_dir: Path,
        ladder: tuple[QualityPreset, ...],
        context: JobContext,
    ) -> None:
        semaphore = asyncio.Semaphore(self.max_parallel)

        async def encode(preset: QualityPreset) -> None:
            async with semaphore:
                await context.ensure_active()
                variant_dir = output_dir / preset.label
                variant_dir.mkdir(parents=True, exist_ok=True)
                logger.info(f"Transcoding to {preset.label}...")
                await self.runner.run(
                    hls_variant_args(source_path, preset, variant_dir, self.segment_seconds)
                )
                if not (variant_dir / "index.m3u8").exists():
                    raise TranscodeError(f"{preset.label} produced no playlist")
                logger.info(f"Transcoded to {preset.label} successfully")

        tasks = [asyncio.create_task(encode(p), name=f"encode:{p.label}") for p in ladder]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _upload_outputs(self, video_id: str, output_dir: Path, context: JobContext) -> list[str]:
        prefix = artifact_prefix(video_id)
        files = sorted(
            (p for p in output_dir.rglob("*") if p.is_file() and p.name != MASTER_MANIFEST),
            key=lambda p: str(p.relative_to(output_dir)),
        )
        # The master manifest goes last; until it exists the video has no entry point
        files.append(output_dir / MASTER_MANIFEST)

        uploaded: list[str] = []
        try:
            for path in files:
                await context.ensure_active()
                key = f"{prefix}{path.relative_to(output_dir).as_posix()}"
                await self.media_store.upload_file(path, key)
                uploaded.append(key)
        except (JobCancelled, ObjectStoreError, OSError, asyncio.CancelledError):
            await self._discard(uploaded)
            raise
        return uploaded

    async def _discard(self, keys: list[str]) -> None:
        for key in keys:
            await self.media_store.delete(key)
        if keys:
            logger.warning(f"Removed {len(keys)} partially uploaded artifacts")
