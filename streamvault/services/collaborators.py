"""Interfaces to the systems around the pipeline, with their production implementations.

- EntitlementChecker: premium access (Subscription documents)
- CreatorDirectory: who may upload, and revoking that right (User.role)
- AuditSink: append-only audit trail (AuditLog documents)
- Alerter: critical notifications (Slack webhook, or the log)
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from streamvault.core.logger import get_logger
from streamvault.models import (
    AuditAction,
    AuditLog,
    Subscription,
    SubscriptionStatus,
    User,
    UserRole,
    utc_now,
)

logger = get_logger(__name__)


class EntitlementChecker(ABC):
    @abstractmethod
    async def is_entitled(self, viewer_id: str, creator_id: str) -> bool:
        """True when ``viewer_id`` may watch ``creator_id``'s premium videos."""


class CreatorDirectory(ABC):
    @abstractmethod
    async def is_approved_creator(self, user_id: str) -> bool:
        pass

    @abstractmethod
    async def revoke_creator(self, user_id: str) -> bool:
        """Drop the creator role. Returns False if the user is unknown."""


class AuditSink(ABC):
    @abstractmethod
    async def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        performed_by: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        pass


class Alerter(ABC):
    @abstractmethod
    async def notify_critical(self, event: dict[str, Any]) -> None:
        pass


class SubscriptionEntitlementChecker(EntitlementChecker):
    """An active, unexpired subscription to the creator grants access."""

    async def is_entitled(self, viewer_id: str, creator_id: str) -> bool:
        subscription = await Subscription.find_one(
            Subscription.subscriber_id == viewer_id,
            Subscription.creator_id == creator_id,
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.expires_at > utc_now(),
        )
        return subscription is not None


class UserCreatorDirectory(CreatorDirectory):
    async def is_approved_creator(self, user_id: str) -> bool:
        user = await User.find_one(User.id == user_id)
        return user is not None and user.is_active and user.role == UserRole.CREATOR

    async def revoke_creator(self, user_id: str) -> bool:
        user = await User.find_one(User.id == user_id)
        if not user:
            logger.warning(f"Cannot revoke creator role, user {user_id} not found")
            return False

        await User.find_one(User.id == user_id).update(
            {"$set": {"role": UserRole.GUEST, "role_revoked_at": utc_now()}}
        )
        logger.warning(f"Creator role revoked for user {user_id}")
        return True


class MongoAuditSink(AuditSink):
    async def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        performed_by: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            performed_by=performed_by,
            metadata=metadata or {},
        )
        await entry.insert()
        logger.info(f"Audit: {action.value} {entity_type}/{entity_id} by {performed_by}")


class LoggingAlerter(Alerter):
    """Used when no webhook is configured; the alert still lands in the logs."""

    async def notify_critical(self, event: dict[str, Any]) -> None:
        logger.critical(
            f"CRITICAL ALERT: {event.get('type', 'UNKNOWN')}",
            extra={"extra_data": event},
        )


class SlackWebhookAlerter(Alerter):
    """Posts critical events to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def _payload(self, event: dict[str, Any]) -> dict[str, Any]:
        fields = [
            {"title": "Video ID", "value": event.get("video_id", "-"), "short": True},
            {"title": "Creator ID", "value": event.get("creator_id", "-"), "short": True},
            {"title": "Timestamp", "value": event.get("timestamp", "-"), "short": False},
        ]
        return {
            "text": f":rotating_light: CRITICAL: {event.get('type', 'UNKNOWN')} detected",
            "attachments": [{"color": "danger", "fields": fields}],
        }

    async def notify_critical(self, event: dict[str, Any]) -> None:
        # Always leave a trace locally, the webhook may be down
        logger.critical(
            f"CRITICAL ALERT: {event.get('type', 'UNKNOWN')}",
            extra={"extra_data": event},
        )
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.webhook_url, json=self._payload(event))
            response.raise_for_status()
