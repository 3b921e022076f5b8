"""HLS transcoding."""

from .engine import TranscodeArtifacts, TranscodeEngine, TranscodeFailure, TranscodeResult
from .ffmpeg import FFmpegRunner, TranscodeError
from .presets import DEFAULT_PRESETS, QualityPreset, validate_presets

__all__ = [
    "DEFAULT_PRESETS",
    "FFmpegRunner",
    "QualityPreset",
    "TranscodeArtifacts",
    "TranscodeEngine",
    "TranscodeError",
    "TranscodeFailure",
    "TranscodeResult",
    "validate_presets",
]
