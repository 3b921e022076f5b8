import pytest

from streamvault.models import ModerationStatus, VideoRecord, VideoStatus, Visibility
from streamvault.services.access import AccessGateway, DenyReason, evaluate_access
from streamvault.services.cache import VideoCache

from tests.fakes import FakeEntitlements, FakeSigner

CREATOR = "creator-1"
VIEWER = "viewer-1"


def make_video(
    visibility: Visibility = Visibility.PUBLIC,
    status: VideoStatus = VideoStatus.READY,
    moderation_status: ModerationStatus = ModerationStatus.APPROVED,
) -> VideoRecord:
    return VideoRecord(
        id="v1",
        creator_id=CREATOR,
        title="Clip",
        visibility=visibility,
        status=status,
        moderation_status=moderation_status,
        original_key="uploads/originals/creator-1/v1.mp4",
        manifest_key="videos/v1/master.m3u8",
    )


class TestDecisionTable:
    def test_missing_video(self):
        assert evaluate_access(None, VIEWER).reason == DenyReason.NOT_FOUND

    @pytest.mark.parametrize("status,moderation_status", [
        (VideoStatus.PROCESSING, ModerationStatus.PENDING),
        (VideoStatus.READY, ModerationStatus.PENDING),
        (VideoStatus.FAILED, ModerationStatus.REJECTED),
    ])
    def test_not_servable_is_not_found_even_for_owner(self, status, moderation_status):
        video = make_video(status=status, moderation_status=moderation_status)
        for viewer in (None, VIEWER, CREATOR):
            decision = evaluate_access(video, viewer, entitled=True)
            assert not decision.granted
            assert decision.reason == DenyReason.NOT_FOUND

    @pytest.mark.parametrize("viewer", [None, VIEWER, CREATOR])
    def test_public_needs_no_credential(self, viewer):
        decision = evaluate_access(make_video(Visibility.PUBLIC), viewer)
        assert decision.granted
        assert not decision.requires_credential

    @pytest.mark.parametrize("visibility", [Visibility.PREMIUM, Visibility.PRIVATE])
    def test_owner_always_granted(self, visibility):
        decision = evaluate_access(make_video(visibility), CREATOR)
        assert decision.granted
        assert decision.requires_credential

    def test_premium_entitled(self):
        decision = evaluate_access(make_video(Visibility.PREMIUM), VIEWER, entitled=True)
        assert decision.granted
        assert decision.requires_credential

    def test_premium_not_entitled(self):
        decision = evaluate_access(make_video(Visibility.PREMIUM), VIEWER, entitled=False)
        assert decision.reason == DenyReason.SUBSCRIPTION_REQUIRED

    def test_premium_anonymous(self):
        decision = evaluate_access(make_video(Visibility.PREMIUM), None, entitled=True)
        assert decision.reason == DenyReason.SUBSCRIPTION_REQUIRED

    def test_private_other_viewer(self):
        decision = evaluate_access(make_video(Visibility.PRIVATE), VIEWER, entitled=True)
        assert decision.reason == DenyReason.PRIVATE


@pytest.fixture
def gateway_parts(redis_client):
    entitlements = FakeEntitlements()
    signer = FakeSigner()
    cache = VideoCache(redis_client)
    return entitlements, signer, cache


async def test_public_stream_counts_a_view(gateway_parts):
    entitlements, signer, cache = gateway_parts
    gateway = AccessGateway(entitlements, signer, cache)

    grant = await gateway.authorize(None, make_video())

    assert grant.granted
    assert grant.credential is None
    assert grant.view_count == 1
    assert signer.signed == []
    assert entitlements.calls == 0


async def test_premium_stream_signs_cookies_for_video_prefix(gateway_parts):
    entitlements, signer, cache = gateway_parts
    entitlements.grant(VIEWER, CREATOR)
    gateway = AccessGateway(entitlements, signer, cache, cookie_ttl_hours=6)

    grant = await gateway.authorize(VIEWER, make_video(Visibility.PREMIUM))

    assert grant.granted
    assert grant.credential.resource == "https://media.test/videos/v1/*"
    assert set(grant.credential.cookies) == {
        "CloudFront-Policy",
        "CloudFront-Signature",
        "CloudFront-Key-Pair-Id",
    }
    assert grant.view_count == 1


async def test_denied_stream_counts_nothing(gateway_parts):
    entitlements, signer, cache = gateway_parts
    gateway = AccessGateway(entitlements, signer, cache)

    grant = await gateway.authorize(VIEWER, make_video(Visibility.PREMIUM))

    assert not grant.granted
    assert grant.reason == DenyReason.SUBSCRIPTION_REQUIRED
    assert await cache.get_counts("v1") == (0, 0)
    assert signer.signed == []


async def test_signing_failure_denies(redis_client):
    cache = VideoCache(redis_client)
    gateway = AccessGateway(FakeEntitlements(), FakeSigner(fail=True), cache)

    grant = await gateway.authorize(CREATOR, make_video(Visibility.PRIVATE))

    assert not grant.granted
    assert grant.reason == DenyReason.SIGNING_FAILED
    assert await cache.get_counts("v1") == (0, 0)


async def test_check_is_idempotent(gateway_parts):
    entitlements, signer, cache = gateway_parts
    entitlements.grant(VIEWER, CREATOR)
    gateway = AccessGateway(entitlements, signer, cache)
    video = make_video(Visibility.PREMIUM)

    first = await gateway.check(VIEWER, video)
    second = await gateway.check(VIEWER, video)

    assert first == second
    assert first.granted
    assert signer.signed == []
    assert await cache.get_counts("v1") == (0, 0)


async def test_entitlements_only_consulted_for_premium(gateway_parts):
    entitlements, signer, cache = gateway_parts
    gateway = AccessGateway(entitlements, signer, cache)

    await gateway.check(VIEWER, make_video(Visibility.PUBLIC))
    await gateway.check(VIEWER, make_video(Visibility.PRIVATE))
    await gateway.check(CREATOR, make_video(Visibility.PREMIUM))
    await gateway.check(None, make_video(Visibility.PREMIUM))
    assert entitlements.calls == 0

    await gateway.check(VIEWER, make_video(Visibility.PREMIUM))
    assert entitlements.calls == 1
