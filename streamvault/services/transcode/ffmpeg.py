"""FFmpeg / ffprobe invocation.

Builds the command lines for HLS variants, thumbnails and scrub sprites and
runs them as subprocesses without blocking the event loop.
"""

import asyncio
import json
from pathlib import Path
from typing import Any

from streamvault.core.logger import get_logger

from .presets import QualityPreset

logger = get_logger(__name__)

_STDERR_TAIL = 2000


class TranscodeError(Exception):
    """An ffmpeg/ffprobe invocation failed or produced unusable output."""


class FFmpegRunner:
    """Runs ffmpeg and ffprobe binaries."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg", ffprobe_binary: str = "ffprobe"):
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary

    async def _exec(self, cmd: list[str]) -> str:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            tail = stderr.decode(errors="replace")[-_STDERR_TAIL:]
            raise TranscodeError(f"{Path(cmd[0]).name} exited with {process.returncode}: {tail}")
        return stdout.decode(errors="replace")

    async def run(self, args: list[str]) -> None:
        """Run ffmpeg with ``args`` (everything after the binary name)."""
        await self._exec([self.ffmpeg_binary, "-hide_banner", "-y", *args])

    async def probe(self, path: Path) -> dict[str, Any]:
        """Return ffprobe's JSON description of ``path``."""
        output = await self._exec([
            self.ffprobe_binary, "-v", "quiet",
            "-print_format", "json",
            "-show_format", "-show_streams",
            str(path),
        ])
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise TranscodeError(f"ffprobe returned malformed JSON: {e}") from e


def probe_duration(info: dict[str, Any]) -> float:
    try:
        duration = float(info.get("format", {}).get("duration", 0))
    except (TypeError, ValueError) as e:
        raise TranscodeError("ffprobe reported a non-numeric duration") from e
    if duration <= 0:
        raise TranscodeError("Source has no measurable duration")
    return duration


def hls_variant_args(
    source: Path,
    preset: QualityPreset,
    variant_dir: Path,
    segment_seconds: int,
) -> list[str]:
    """One independently segmented rendition with its own index.m3u8."""
    w, h = preset.width, preset.height
    return [
        "-i", str(source),
        # Video settings
        "-vf", f"scale={w}:{h}:force_original_aspect_ratio=decrease,pad={w}:{h}:(ow-iw)/2:(oh-ih)/2",
        "-c:v", "libx264",
        "-profile:v", "baseline",
        "-level", "3.0",
        "-preset", "fast",
        "-b:v", preset.video_bitrate,
        "-maxrate", preset.video_bitrate,
        "-bufsize", preset.bufsize,
        # Audio settings
        "-c:a", "aac",
        "-b:a", preset.audio_bitrate,
        "-ar", "44100",
        # HLS settings
        "-f", "hls",
        "-start_number", "0",
        "-hls_time", str(segment_seconds),
        "-hls_list_size", "0",
        "-hls_segment_filename", str(variant_dir / "segment_%03d.ts"),
        str(variant_dir / "index.m3u8"),
    ]


def thumbnail_args(source: Path, at_seconds: float, output: Path) -> list[str]:
    return [
        "-ss", f"{at_seconds:.3f}",
        "-i", str(source),
        "-vframes", "1",
        "-vf", "scale=1280:720:force_original_aspect_ratio=decrease",
        "-q:v", "2",
        str(output),
    ]


def sprite_args(
    source: Path,
    output: Path,
    interval_seconds: int,
    columns: int,
    rows: int,
) -> list[str]:
    """Scrub preview: one 160x90 frame every ``interval_seconds`` tiled into a grid."""
    return [
        "-i", str(source),
        "-vf", f"fps=1/{interval_seconds},scale=160:90,tile={columns}x{rows}",
        "-frames:v", "1",
        "-q:v", "5",
        str(output),
    ]


def master_playlist(presets: list[QualityPreset] | tuple[QualityPreset, ...]) -> str:
    """Top-level manifest listing each variant in preset order."""
    lines = ["#EXTM3U", "#EXT-X-VERSION:3"]
    for preset in presets:
        lines.append(
            f"#EXT-X-STREAM-INF:BANDWIDTH={preset.bandwidth},RESOLUTION={preset.resolution}"
        )
        lines.append(f"{preset.label}/index.m3u8")
    return "\n".join(lines) + "\n"
