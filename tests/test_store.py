"""
test_store.py — Tests for the durable alert store and user directory.

Each test runs against a fresh SQLite file in pytest's tmp_path.

Covers:
    • Alert round trip (timezone-aware datetimes, JSON columns)
    • notificationsSent write-back, verify, deactivate
    • Recipient filtering (location, opt-in, active, subscription)
    • Subscription clearing
    • End-to-end dispatch against the SQL store

Run with:
    pytest tests/test_store.py -v
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from backend.app.alerts.models import (
    AffectedArea,
    AlertRecord,
    AlertType,
    DeliveryOutcome,
    Severity,
)
from backend.app.alerts.notifications import NotificationDispatcher
from backend.app.core.database import Database
from backend.app.store.repositories import SqlAlertStore, SqlUserDirectory

ISSUED = datetime(2024, 7, 1, 6, 30, tzinfo=timezone.utc)
SUB = {"endpoint": "https://push.example/abc", "keys": {"p256dh": "k", "auth": "a"}}


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path}/store.db"


def _run(db_url, scenario):
    """Open a database, run ``scenario(db)``, close it."""
    async def go():
        db = Database(db_url)
        await db.init()
        try:
            return await scenario(db)
        finally:
            await db.close()
    return asyncio.run(go())


def _make_record(alert_id: str = "m1", **overrides) -> AlertRecord:
    values = dict(
        alert_id=alert_id,
        title="Cyclone warning for Odisha coast",
        description="Evacuate low-lying areas",
        type=AlertType.CYCLONE,
        severity=Severity.CRITICAL,
        source="Manual",
        source_url="https://sachet.ndma.gov.in/",
        affected_areas=(AffectedArea("Odisha", "Puri"), AffectedArea("Odisha", "Bhubaneswar")),
        issued_at=ISSUED,
        expires_at=ISSUED + timedelta(days=1),
        instructions=("Move to shelters",),
        tags=("cyclone", "coastal"),
        priority=7,
        is_verified=True,
    )
    values.update(overrides)
    return AlertRecord(**values)


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Alert Store
# ═══════════════════════════════════════════════════════════════════════════

class TestAlertStore:

    def test_round_trip(self, db_url):
        async def scenario(db):
            store = SqlAlertStore(db)
            await store.create(_make_record())
            return await store.get("m1")

        record = _run(db_url, scenario)
        assert record == _make_record()
        assert record.issued_at.tzinfo is not None
        assert record.expires_at == ISSUED + timedelta(days=1)
        assert record.emergency_contacts[0].phone == "108"

    def test_missing(self, db_url):
        assert _run(db_url, lambda db: SqlAlertStore(db).get("nope")) is None

    def test_notifications_sent_assigned(self, db_url):
        async def scenario(db):
            store = SqlAlertStore(db)
            await store.create(_make_record())
            first = await store.set_notifications_sent("m1", 5)
            second = await store.set_notifications_sent("m1", 2)
            missing = await store.set_notifications_sent("nope", 1)
            return first, second, missing, await store.get("m1")

        first, second, missing, record = _run(db_url, scenario)
        assert (first, second, missing) == (True, True, False)
        assert record.notifications_sent == 2

    def test_verify_and_deactivate(self, db_url):
        async def scenario(db):
            store = SqlAlertStore(db)
            await store.create(_make_record(is_verified=False))
            await store.verify("m1")
            await store.deactivate("m1")
            return await store.get("m1")

        record = _run(db_url, scenario)
        assert record.is_verified is True
        assert record.is_active is False


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: User Directory
# ═══════════════════════════════════════════════════════════════════════════

async def _seed_users(users: SqlUserDirectory):
    return {
        "state_match": await users.add_user(email="a@x.in", state="Odisha", city="Cuttack", push_subscription=SUB),
        "city_match": await users.add_user(email="b@x.in", state="Other", city="Puri", push_subscription=SUB),
        "opted_out": await users.add_user(email="c@x.in", state="Odisha", push_subscription=SUB, notify_alerts=False),
        "inactive": await users.add_user(email="d@x.in", state="Odisha", push_subscription=SUB, is_active=False),
        "no_subscription": await users.add_user(email="e@x.in", state="Odisha"),
        "elsewhere": await users.add_user(email="f@x.in", state="Kerala", city="Kochi", push_subscription=SUB),
    }


class TestUserDirectory:

    def test_recipient_filtering(self, db_url):
        async def scenario(db):
            users = SqlUserDirectory(db)
            ids = await _seed_users(users)
            found = await users.find_alert_recipients(["Odisha"], ["Puri", "Bhubaneswar"])
            return ids, found

        ids, found = _run(db_url, scenario)
        assert {r.user_id for r in found} == {ids["state_match"], ids["city_match"]}
        assert all(r.subscription == SUB for r in found)

    def test_empty_location(self, db_url):
        async def scenario(db):
            users = SqlUserDirectory(db)
            await _seed_users(users)
            return await users.find_alert_recipients([], [])

        assert _run(db_url, scenario) == []

    def test_clear_subscription(self, db_url):
        async def scenario(db):
            users = SqlUserDirectory(db)
            ids = await _seed_users(users)
            await users.clear_subscription(ids["state_match"])
            found = await users.find_alert_recipients(["Odisha"], [])
            return ids, found, await users.get_subscription(ids["state_match"])

        ids, found, subscription = _run(db_url, scenario)
        assert subscription is None
        assert ids["state_match"] not in {r.user_id for r in found}


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Dispatch Against SQL
# ═══════════════════════════════════════════════════════════════════════════

class GoneForEndpoint:
    configured = True

    def __init__(self, gone_endpoint):
        self.gone_endpoint = gone_endpoint

    async def send(self, subscription, payload):
        if subscription["endpoint"] == self.gone_endpoint:
            return DeliveryOutcome.GONE
        return DeliveryOutcome.SUCCESS


class TestDispatchEndToEnd:

    def test_dispatch_updates_store_and_clears(self, db_url):
        gone_sub = {"endpoint": "https://push.example/gone", "keys": {}}

        async def scenario(db):
            store = SqlAlertStore(db)
            users = SqlUserDirectory(db)
            ok = await users.add_user(email="a@x.in", state="Odisha", push_subscription=SUB)
            gone = await users.add_user(email="b@x.in", city="Puri", push_subscription=gone_sub)
            await store.create(_make_record())

            dispatcher = NotificationDispatcher(users, store, GoneForEndpoint(gone_sub["endpoint"]))
            result = await dispatcher.dispatch(_make_record())
            return (
                result,
                await store.get("m1"),
                await users.get_subscription(ok),
                await users.get_subscription(gone),
            )

        result, record, ok_sub, gone_sub_after = _run(db_url, scenario)
        assert (result.sent, result.failed, result.cleared) == (1, 1, 1)
        assert record.notifications_sent == 1
        assert ok_sub == SUB
        assert gone_sub_after is None
