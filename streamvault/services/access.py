"""Access control gateway.

``evaluate_access`` is the whole decision table and has no side effects.
``AccessGateway.authorize`` adds the entitlement lookup, mints the signed
cookies for non-public streams and counts the view.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional

from streamvault.core.logger import get_logger
from streamvault.models import VideoRecord, Visibility, utc_now
from streamvault.services.cache import VideoCache
from streamvault.services.collaborators import EntitlementChecker
from streamvault.services.signing import CookieSigner, SignedCredential, SigningError

logger = get_logger(__name__)


class DenyReason(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    SUBSCRIPTION_REQUIRED = "SUBSCRIPTION_REQUIRED"
    PRIVATE = "PRIVATE"
    SIGNING_FAILED = "SIGNING_FAILED"


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    reason: Optional[DenyReason] = None
    requires_credential: bool = False


@dataclass(frozen=True)
class AccessGrant:
    granted: bool
    reason: Optional[DenyReason] = None
    credential: Optional[SignedCredential] = None
    view_count: Optional[int] = None


def needs_entitlement_check(video: Optional[VideoRecord], viewer_id: Optional[str]) -> bool:
    return (
        video is not None
        and video.is_servable
        and video.visibility == Visibility.PREMIUM
        and viewer_id is not None
        and viewer_id != video.creator_id
    )


def evaluate_access(
    video: Optional[VideoRecord],
    viewer_id: Optional[str],
    entitled: bool = False,
) -> AccessDecision:
    """
    Decision table, first match wins:

    1. missing or not READY/APPROVED -> NOT_FOUND
    2. PUBLIC                         -> granted, no credential
    3. viewer owns the video          -> granted
    4. PREMIUM                        -> granted iff entitled
    5. PRIVATE                        -> PRIVATE
    """
    if video is None or not video.is_servable:
        return AccessDecision(granted=False, reason=DenyReason.NOT_FOUND)
    if video.visibility == Visibility.PUBLIC:
        return AccessDecision(granted=True)
    if viewer_id is not None and viewer_id == video.creator_id:
        return AccessDecision(granted=True, requires_credential=True)
    if video.visibility == Visibility.PREMIUM:
        if viewer_id is not None and entitled:
            return AccessDecision(granted=True, requires_credential=True)
        return AccessDecision(granted=False, reason=DenyReason.SUBSCRIPTION_REQUIRED)
    return AccessDecision(granted=False, reason=DenyReason.PRIVATE)


class AccessGateway:
    def __init__(
        self,
        entitlements: EntitlementChecker,
        signer: CookieSigner,
        counters: VideoCache,
        cookie_ttl_hours: int = 6,
    ):
        self.entitlements = entitlements
        self.signer = signer
        self.counters = counters
        self.cookie_ttl = timedelta(hours=cookie_ttl_hours)

    async def check(self, viewer_id: Optional[str], video: Optional[VideoRecord]) -> AccessDecision:
        """The decision alone: no credential, no view counted."""
        entitled = False
        if needs_entitlement_check(video, viewer_id):
            entitled = await self.entitlements.is_entitled(viewer_id, video.creator_id)
        return evaluate_access(video, viewer_id, entitled)

    async def authorize(self, viewer_id: Optional[str], video: Optional[VideoRecord]) -> AccessGrant:
        decision = await self.check(viewer_id, video)
        if not decision.granted:
            logger.info(
                f"Stream denied for video {video.id if video else '-'}: {decision.reason.value}"
            )
            return AccessGrant(granted=False, reason=decision.reason)

        credential = None
        if decision.requires_credential:
            resource = self.signer.resource_for_prefix(video.artifact_prefix)
            try:
                credential = self.signer.sign(resource, utc_now() + self.cookie_ttl)
            except SigningError as e:
                logger.error(f"Could not sign stream cookies for video {video.id}: {e}")
                return AccessGrant(granted=False, reason=DenyReason.SIGNING_FAILED)

        view_count = await self.counters.increment_views(video.id)
        return AccessGrant(granted=True, credential=credential, view_count=view_count)
