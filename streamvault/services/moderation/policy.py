"""Maps classifier labels to policy flags and flags to a moderation decision."""

from typing import Iterable, Optional

from streamvault.models import ModerationFlag, ModerationStatus

from .classifier import ModerationLabel


def flag_for_label(label: ModerationLabel) -> Optional[ModerationFlag]:
    names = " / ".join(n for n in (label.name, label.parent_name) if n)
    if "Child" in names or "Minor" in names:
        return ModerationFlag.ILLEGAL_CONTENT
    if "Explicit Nudity" in names:
        return ModerationFlag.EXPLICIT_ADULT
    if "Violence" in names:
        return ModerationFlag.VIOLENCE
    return None


def map_labels(labels: Iterable[ModerationLabel]) -> tuple[list[ModerationFlag], float]:
    """Distinct flags in first-seen order, and the highest label confidence."""
    flags: list[ModerationFlag] = []
    confidence = 0.0
    for label in labels:
        confidence = max(confidence, label.confidence)
        flag = flag_for_label(label)
        if flag is not None and flag not in flags:
            flags.append(flag)
    return flags, confidence


def decide(flags: Iterable[ModerationFlag]) -> ModerationStatus:
    """
    ILLEGAL_CONTENT rejects outright; any other flag goes to human review;
    a clean scan is approved.
    """
    flags = list(flags)
    if ModerationFlag.ILLEGAL_CONTENT in flags:
        return ModerationStatus.REJECTED
    if flags:
        return ModerationStatus.PENDING
    return ModerationStatus.APPROVED
