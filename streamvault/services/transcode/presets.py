"""HLS quality ladder."""

import re
from dataclasses import dataclass
from typing import Sequence

from streamvault.core.exceptions import ValidationException

_BITRATE_RE = re.compile(r"^[1-9]\d*k$")


@dataclass(frozen=True)
class QualityPreset:
    label: str
    width: int
    height: int
    video_bitrate: str  # e.g. "2800k"
    audio_bitrate: str  # e.g. "128k"

    @property
    def bandwidth(self) -> int:
        """Bits per second advertised in the master playlist."""
        return int(self.video_bitrate[:-1]) * 1000

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def bufsize(self) -> str:
        return f"{int(self.video_bitrate[:-1]) * 2}k"


DEFAULT_PRESETS: tuple[QualityPreset, ...] = (
    QualityPreset("1080p", 1920, 1080, "5000k", "192k"),
    QualityPreset("720p", 1280, 720, "2800k", "128k"),
    QualityPreset("480p", 854, 480, "1400k", "128k"),
    QualityPreset("360p", 640, 360, "800k", "96k"),
)


def validate_presets(presets: Sequence[QualityPreset]) -> None:
    """Reject an empty, duplicated or malformed ladder before any work starts."""
    if not presets:
        raise ValidationException(
            error_code="INVALID_PRESETS",
            message="At least one quality preset is required",
            field="presets",
        )

    seen: set[str] = set()
    for preset in presets:
        if not preset.label or "/" in preset.label or preset.label in seen:
            raise ValidationException(
                error_code="INVALID_PRESETS",
                message=f"Preset label {preset.label!r} is empty, duplicated or not path-safe",
                field="presets",
            )
        seen.add(preset.label)

        if preset.width <= 0 or preset.height <= 0:
            raise ValidationException(
                error_code="INVALID_PRESETS",
                message=f"Preset {preset.label} has a non-positive resolution",
                field="presets",
            )
        for bitrate in (preset.video_bitrate, preset.audio_bitrate):
            if not _BITRATE_RE.match(bitrate):
                raise ValidationException(
                    error_code="INVALID_PRESETS",
                    message=f"Preset {preset.label} bitrate {bitrate!r} must look like '2800k'",
                    field="presets",
                )
