"""
notifications.py — Push fan-out for one alert.

═══════════════════════════════════════════════════════════════════════════
DISPATCH FLOW
═══════════════════════════════════════════════════════════════════════════

    AlertRecord
        │
        ▼
    1. Resolve recipients      UserDirectory.find_alert_recipients(states, cities)
        │                      (opted in, active, holding a subscription)
        │  none → DispatchResult(0, 0), nothing else touched
        ▼
    2. Build one payload       "🚨 HIGH ALERT: FLOOD", requireInteraction
        │                      only for critical alerts
        ▼
    3. Deliver concurrently    PushTransport.send(subscription, payload)
        │                        SUCCESS           → sent += 1
        │                        TRANSIENT_FAILURE → failed += 1
        │                        GONE              → failed += 1, clear subscription
        ▼
    4. Write back              AlertStore.set_notifications_sent(alert_id, sent)

One recipient's failure never aborts the others. Dispatching the same
alert twice is allowed; nothing is deduplicated.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from backend.app.alerts.models import (
    AlertRecord,
    DeliveryOutcome,
    DispatchResult,
    NotificationPayload,
    Recipient,
    Severity,
)
from backend.app.core.errors import NotificationDeliveryError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Collaborator Contracts
# ═══════════════════════════════════════════════════════════════════════════

class AlertStore(Protocol):
    async def get(self, alert_id: str) -> Optional[AlertRecord]: ...

    async def set_notifications_sent(self, alert_id: str, sent: int) -> bool: ...


class UserDirectory(Protocol):
    async def find_alert_recipients(
        self, states: Sequence[str], cities: Sequence[str],
    ) -> List[Recipient]: ...

    async def clear_subscription(self, user_id: str) -> None: ...


class PushTransport(Protocol):
    async def send(
        self, subscription: Dict[str, Any], payload: NotificationPayload,
    ) -> DeliveryOutcome: ...


# ═══════════════════════════════════════════════════════════════════════════
# Payload
# ═══════════════════════════════════════════════════════════════════════════

def build_payload(alert: AlertRecord) -> NotificationPayload:
    return NotificationPayload(
        title=f"🚨 {alert.severity.value.upper()} ALERT: {alert.type.value.upper()}",
        body=alert.title,
        data={
            "alertId": alert.alert_id,
            "type": alert.type.value,
            "severity": alert.severity.value,
            "url": f"/alerts/{alert.alert_id}",
        },
        require_interaction=alert.severity is Severity.CRITICAL,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Dispatcher
# ═══════════════════════════════════════════════════════════════════════════

class NotificationDispatcher:
    """Resolves recipients for an alert and fans out web push messages."""

    def __init__(
        self,
        users: UserDirectory,
        store: AlertStore,
        transport: PushTransport,
    ):
        self.users = users
        self.store = store
        self.transport = transport

    @property
    def configured(self) -> bool:
        return getattr(self.transport, "configured", True)

    async def _deliver(self, recipient: Recipient, payload: NotificationPayload) -> DeliveryOutcome:
        try:
            return await self.transport.send(recipient.subscription, payload)
        except NotificationDeliveryError as exc:
            return DeliveryOutcome.GONE if exc.gone else DeliveryOutcome.TRANSIENT_FAILURE
        except Exception as exc:
            logger.warning("Push to user %s raised: %s", recipient.user_id, exc)
            return DeliveryOutcome.TRANSIENT_FAILURE

    async def _clear(self, recipient: Recipient) -> bool:
        """Drop an expired subscription; a directory failure is logged, not raised."""
        try:
            await self.users.clear_subscription(recipient.user_id)
        except Exception:
            logger.exception("Could not clear expired subscription for user %s", recipient.user_id)
            return False
        logger.info("Cleared expired subscription for user %s", recipient.user_id)
        return True

    async def dispatch(self, alert: AlertRecord) -> DispatchResult:
        result = DispatchResult()
        if not self.configured:
            logger.warning(
                "Push notifications not configured, skipping alert %s", alert.alert_id,
                extra={"alert_id": alert.alert_id},
            )
            return result

        recipients = await self.users.find_alert_recipients(alert.states, alert.cities)
        if not recipients:
            logger.info(
                "No recipients for alert %s", alert.alert_id,
                extra={"alert_id": alert.alert_id, "recipient_count": 0},
            )
            return result

        payload = build_payload(alert)
        outcomes = await asyncio.gather(*(self._deliver(r, payload) for r in recipients))

        for recipient, outcome in zip(recipients, outcomes):
            if outcome is DeliveryOutcome.SUCCESS:
                result.sent += 1
                continue
            result.failed += 1
            if outcome is DeliveryOutcome.GONE and await self._clear(recipient):
                result.cleared += 1

        try:
            updated = await self.store.set_notifications_sent(alert.alert_id, result.sent)
        except Exception:
            logger.exception(
                "Could not record notificationsSent for alert %s", alert.alert_id,
                extra={"alert_id": alert.alert_id},
            )
        else:
            if not updated:
                logger.warning(
                    "Alert %s not in durable store, notificationsSent not recorded",
                    alert.alert_id, extra={"alert_id": alert.alert_id},
                )

        logger.info(
            "Alert %s notifications: %d sent, %d failed",
            alert.alert_id, result.sent, result.failed,
            extra={
                "alert_id": alert.alert_id,
                "recipient_count": len(recipients),
                "sent": result.sent,
                "failed": result.failed,
            },
        )
        return result
