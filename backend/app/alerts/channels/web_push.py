"""
web_push.py — Web push notification channel.

Delivery mechanism:
    • Web Push Protocol (RFC 8030) with VAPID authentication via pywebpush
    • Payload: JSON with title, body, icon, badge, data and actions
    • The subscription is the browser-issued {endpoint, keys} object

pywebpush is synchronous (it uses requests), so each send runs in a
worker thread to keep the event loop free.

═══════════════════════════════════════════════════════════════════════════
OUTCOME CLASSIFICATION
═══════════════════════════════════════════════════════════════════════════

    push service answer           outcome              subscription
    ───────────────────────────   ──────────────────   ────────────
    2xx                           SUCCESS              kept
    404 Not Found / 410 Gone      GONE                 cleared
    any other error / timeout     TRANSIENT_FAILURE    kept
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from pywebpush import WebPushException, webpush

from backend.app.alerts.models import DeliveryOutcome, NotificationPayload

logger = logging.getLogger(__name__)

GONE_STATUS_CODES = frozenset({404, 410})


def classify_push_error(exc: WebPushException) -> DeliveryOutcome:
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if status in GONE_STATUS_CODES:
        return DeliveryOutcome.GONE
    return DeliveryOutcome.TRANSIENT_FAILURE


class WebPushTransport:
    """Send one NotificationPayload to one browser push subscription."""

    def __init__(
        self,
        *,
        public_key: Optional[str],
        private_key: Optional[str],
        email: Optional[str],
        timeout_seconds: float = 10.0,
    ):
        self.public_key = public_key
        self.private_key = private_key
        self.email = email
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.public_key and self.private_key and self.email)

    def _claims(self) -> Dict[str, str]:
        sub = self.email if self.email.startswith("mailto:") else f"mailto:{self.email}"
        return {"sub": sub}

    def _send_sync(self, subscription: Dict[str, Any], payload: NotificationPayload) -> DeliveryOutcome:
        try:
            webpush(
                subscription_info=subscription,
                data=json.dumps(payload.to_dict()),
                vapid_private_key=self.private_key,
                vapid_claims=self._claims(),
                timeout=self.timeout_seconds,
            )
        except WebPushException as exc:
            outcome = classify_push_error(exc)
            logger.warning("[WEB_PUSH] delivery failed (%s): %s", outcome.value, exc)
            return outcome
        return DeliveryOutcome.SUCCESS

    async def send(
        self,
        subscription: Dict[str, Any],
        payload: NotificationPayload,
    ) -> DeliveryOutcome:
        if not self.configured:
            logger.warning("[WEB_PUSH] VAPID keys not configured, not sending")
            return DeliveryOutcome.TRANSIENT_FAILURE
        return await asyncio.to_thread(self._send_sync, subscription, payload)
