"""Automated content moderation and admin review."""

from .classifier import (
    ClassificationError,
    ClassificationStatus,
    ContentClassifier,
    JobState,
    ModerationLabel,
    RekognitionClassifier,
)
from .engine import ModerationEngine, ModerationResult
from .policy import decide, map_labels
from .review import IllegalContentTransition, ModerationReview

__all__ = [
    "ClassificationError",
    "ClassificationStatus",
    "ContentClassifier",
    "IllegalContentTransition",
    "JobState",
    "ModerationEngine",
    "ModerationLabel",
    "ModerationResult",
    "ModerationReview",
    "RekognitionClassifier",
    "decide",
    "map_labels",
]
