"""
test_notifications.py — Tests for push notification fan-out.

Collaborators are in-memory fakes; the pywebpush call is monkeypatched.

Covers:
    • Payload construction
    • Success / transient / gone accounting and subscription clearing
    • No recipients → nothing touched
    • Unconfigured transport
    • Write-back to the alert store
    • Push service error classification

Run with:
    pytest tests/test_notifications.py -v
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Dict, List

import pytest
from pywebpush import WebPushException

from backend.app.alerts.channels import web_push
from backend.app.alerts.channels.web_push import WebPushTransport, classify_push_error
from backend.app.alerts.models import (
    AffectedArea,
    AlertRecord,
    AlertType,
    DeliveryOutcome,
    Recipient,
    Severity,
)
from backend.app.alerts.notifications import NotificationDispatcher, build_payload
from backend.app.core.errors import NotificationDeliveryError


def _make_alert(severity: Severity = Severity.HIGH, alert_id: str = "a1") -> AlertRecord:
    return AlertRecord(
        alert_id=alert_id,
        title="Flood warning for Guwahati",
        description="Brahmaputra above danger mark",
        type=AlertType.FLOOD,
        severity=severity,
        source="Manual",
        source_url="",
        affected_areas=(AffectedArea("Assam", "Guwahati"),),
        issued_at=datetime(2024, 7, 1, tzinfo=timezone.utc),
    )


def _recipient(user_id: str) -> Recipient:
    return Recipient(user_id=user_id, subscription={"endpoint": f"https://push.example/{user_id}"})


class FakeUsers:

    def __init__(self, recipients: List[Recipient]):
        self.recipients = recipients
        self.queries = []
        self.cleared: List[str] = []

    async def find_alert_recipients(self, states, cities):
        self.queries.append((list(states), list(cities)))
        return list(self.recipients)

    async def clear_subscription(self, user_id):
        self.cleared.append(user_id)


class FakeStore:

    def __init__(self, known=("a1",)):
        self.known = set(known)
        self.writes: List[tuple] = []

    async def get(self, alert_id):
        return None

    async def set_notifications_sent(self, alert_id, sent):
        self.writes.append((alert_id, sent))
        return alert_id in self.known


class FakeTransport:
    """Outcome per endpoint; an Exception value is raised instead."""

    configured = True

    def __init__(self, outcomes: Dict[str, object]):
        self.outcomes = outcomes
        self.sent: List[tuple] = []

    async def send(self, subscription, payload):
        self.sent.append((subscription["endpoint"], payload))
        outcome = self.outcomes.get(subscription["endpoint"], DeliveryOutcome.SUCCESS)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _endpoint(user_id: str) -> str:
    return f"https://push.example/{user_id}"


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Payload
# ═══════════════════════════════════════════════════════════════════════════

class TestBuildPayload:

    def test_high(self):
        payload = build_payload(_make_alert(Severity.HIGH))
        assert payload.title == "🚨 HIGH ALERT: FLOOD"
        assert payload.body == "Flood warning for Guwahati"
        assert payload.data == {
            "alertId": "a1", "type": "flood", "severity": "high", "url": "/alerts/a1",
        }
        assert payload.require_interaction is False

    def test_critical_requires_interaction(self):
        payload = build_payload(_make_alert(Severity.CRITICAL))
        assert payload.require_interaction is True
        assert payload.to_dict()["requireInteraction"] is True


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Dispatch
# ═══════════════════════════════════════════════════════════════════════════

class TestDispatch:

    def test_mixed_outcomes(self):
        users = FakeUsers([_recipient("u1"), _recipient("u2"), _recipient("u3")])
        store = FakeStore()
        transport = FakeTransport({
            _endpoint("u2"): DeliveryOutcome.TRANSIENT_FAILURE,
            _endpoint("u3"): DeliveryOutcome.GONE,
        })
        result = asyncio.run(NotificationDispatcher(users, store, transport).dispatch(_make_alert()))

        assert (result.sent, result.failed, result.cleared) == (1, 2, 1)
        assert users.cleared == ["u3"]
        assert store.writes == [("a1", 1)]
        assert users.queries == [(["Assam"], ["Guwahati"])]

    def test_single_payload_for_all_recipients(self):
        users = FakeUsers([_recipient("u1"), _recipient("u2")])
        transport = FakeTransport({})
        asyncio.run(NotificationDispatcher(users, FakeStore(), transport).dispatch(_make_alert()))
        payloads = {id(p) for _, p in transport.sent}
        assert len(payloads) == 1

    def test_no_recipients_touches_nothing(self):
        users = FakeUsers([])
        store = FakeStore()
        transport = FakeTransport({})
        result = asyncio.run(NotificationDispatcher(users, store, transport).dispatch(_make_alert()))

        assert result.to_dict() == {"sent": 0, "failed": 0, "cleared": 0}
        assert transport.sent == []
        assert store.writes == []

    def test_transport_exception_is_transient(self):
        users = FakeUsers([_recipient("u1"), _recipient("u2")])
        transport = FakeTransport({_endpoint("u1"): ConnectionError("reset")})
        result = asyncio.run(NotificationDispatcher(users, FakeStore(), transport).dispatch(_make_alert()))

        assert (result.sent, result.failed, result.cleared) == (1, 1, 0)
        assert users.cleared == []

    def test_gone_delivery_error_clears(self):
        users = FakeUsers([_recipient("u1")])
        transport = FakeTransport({_endpoint("u1"): NotificationDeliveryError("u1", "410", gone=True)})
        result = asyncio.run(NotificationDispatcher(users, FakeStore(), transport).dispatch(_make_alert()))

        assert result.cleared == 1
        assert users.cleared == ["u1"]

    def test_missing_store_record_does_not_raise(self):
        users = FakeUsers([_recipient("u1")])
        store = FakeStore(known=())
        result = asyncio.run(
            NotificationDispatcher(users, store, FakeTransport({})).dispatch(_make_alert()),
        )
        assert result.sent == 1
        assert store.writes == [("a1", 1)]

    def test_redispatch_is_allowed(self):
        users = FakeUsers([_recipient("u1")])
        store = FakeStore()
        dispatcher = NotificationDispatcher(users, store, FakeTransport({}))

        async def twice():
            await dispatcher.dispatch(_make_alert())
            await dispatcher.dispatch(_make_alert())

        asyncio.run(twice())
        assert store.writes == [("a1", 1), ("a1", 1)]

    def test_failed_clear_does_not_abort_dispatch(self):
        users = FakeUsers([_recipient("u1"), _recipient("u2")])

        async def broken_clear(user_id):
            raise RuntimeError("db down")

        users.clear_subscription = broken_clear
        store = FakeStore()
        transport = FakeTransport({_endpoint("u1"): DeliveryOutcome.GONE})
        result = asyncio.run(NotificationDispatcher(users, store, transport).dispatch(_make_alert()))

        assert (result.sent, result.failed, result.cleared) == (1, 1, 0)
        assert store.writes == [("a1", 1)]

    def test_failed_write_back_still_returns_counts(self):
        store = FakeStore()

        async def broken_write(alert_id, sent):
            raise RuntimeError("db down")

        store.set_notifications_sent = broken_write
        users = FakeUsers([_recipient("u1")])
        result = asyncio.run(
            NotificationDispatcher(users, store, FakeTransport({})).dispatch(_make_alert()),
        )
        assert result.sent == 1

    def test_unconfigured_transport(self):
        users = FakeUsers([_recipient("u1")])
        store = FakeStore()
        transport = FakeTransport({})
        transport.configured = False
        result = asyncio.run(NotificationDispatcher(users, store, transport).dispatch(_make_alert()))

        assert (result.sent, result.failed) == (0, 0)
        assert users.queries == []
        assert store.writes == []


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Web Push Transport
# ═══════════════════════════════════════════════════════════════════════════

def _push_error(status: int) -> WebPushException:
    return WebPushException("push failed", response=SimpleNamespace(status_code=status))


class TestClassifyPushError:

    @pytest.mark.parametrize("status,expected", [
        (404, DeliveryOutcome.GONE),
        (410, DeliveryOutcome.GONE),
        (429, DeliveryOutcome.TRANSIENT_FAILURE),
        (500, DeliveryOutcome.TRANSIENT_FAILURE),
    ])
    def test_status_codes(self, status, expected):
        assert classify_push_error(_push_error(status)) is expected

    def test_no_response(self):
        assert classify_push_error(WebPushException("timeout")) is DeliveryOutcome.TRANSIENT_FAILURE


class TestWebPushTransport:

    def _transport(self, **overrides):
        kwargs = dict(public_key="pub", private_key="priv", email="ops@example.in")
        kwargs.update(overrides)
        return WebPushTransport(**kwargs)

    def test_success_sends_json_with_vapid_claims(self, monkeypatch):
        calls = []
        monkeypatch.setattr(web_push, "webpush", lambda **kw: calls.append(kw))

        subscription = {"endpoint": "https://push.example/u1", "keys": {}}
        outcome = asyncio.run(self._transport().send(subscription, build_payload(_make_alert())))

        assert outcome is DeliveryOutcome.SUCCESS
        (call,) = calls
        assert call["subscription_info"] == subscription
        assert call["vapid_private_key"] == "priv"
        assert call["vapid_claims"] == {"sub": "mailto:ops@example.in"}
        assert json.loads(call["data"])["title"] == "🚨 HIGH ALERT: FLOOD"

    def test_gone(self, monkeypatch):
        def fail(**kw):
            raise _push_error(410)
        monkeypatch.setattr(web_push, "webpush", fail)
        outcome = asyncio.run(self._transport().send({"endpoint": "x"}, build_payload(_make_alert())))
        assert outcome is DeliveryOutcome.GONE

    def test_unconfigured_does_not_call(self, monkeypatch):
        calls = []
        monkeypatch.setattr(web_push, "webpush", lambda **kw: calls.append(kw))
        transport = self._transport(private_key=None)

        assert transport.configured is False
        outcome = asyncio.run(transport.send({"endpoint": "x"}, build_payload(_make_alert())))
        assert outcome is DeliveryOutcome.TRANSIENT_FAILURE
        assert calls == []

    def test_mailto_prefix_not_doubled(self):
        assert self._transport(email="mailto:ops@example.in")._claims() == {
            "sub": "mailto:ops@example.in",
        }
