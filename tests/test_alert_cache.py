"""
test_alert_cache.py — Tests for the live alert snapshot cache.

Covers:
    • Filters: type, severity, city (city OR state), state
    • Ordering: priority desc, then issued_at desc
    • Pagination and page/limit clamping
    • Snapshot swap atomicity under concurrent readers
    • Statistics

Run with:
    pytest tests/test_alert_cache.py -v
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

from backend.app.alerts.cache import AlertCache, AlertQuery, sort_records
from backend.app.alerts.models import AffectedArea, AlertRecord, AlertType, Severity

T0 = datetime(2024, 7, 1, tzinfo=timezone.utc)


def _make_record(
    alert_id: str,
    *,
    type: AlertType = AlertType.GENERAL,
    severity: Severity = Severity.LOW,
    areas=(("Maharashtra", "Pune"),),
    priority: int = 2,
    minutes: int = 0,
    source: str = "NDMA",
    is_active: bool = True,
) -> AlertRecord:
    return AlertRecord(
        alert_id=alert_id,
        title=f"Alert {alert_id}",
        description="",
        type=type,
        severity=severity,
        source=source,
        source_url="https://ndma.gov.in/",
        affected_areas=tuple(AffectedArea(state, city) for state, city in areas),
        issued_at=T0 + timedelta(minutes=minutes),
        priority=priority,
        is_active=is_active,
    )


def _five_records():
    return [
        _make_record("a", type=AlertType.FLOOD, severity=Severity.HIGH, priority=6,
                     areas=(("Maharashtra", "Mumbai"),)),
        _make_record("b", type=AlertType.FLOOD, severity=Severity.MEDIUM, priority=5,
                     areas=(("Assam", "Guwahati"),)),
        _make_record("c", type=AlertType.WEATHER, severity=Severity.CRITICAL, priority=5,
                     areas=(("Mumbai Suburban", "Andheri"),), source="IMD"),
        _make_record("d", type=AlertType.EARTHQUAKE, priority=4,
                     areas=(("Delhi", "New Delhi"),)),
        _make_record("e", priority=2, areas=(("Karnataka", "Bangalore"),), is_active=False),
    ]


def _ids(result):
    return [r.alert_id for r in result.records]


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Filtering
# ═══════════════════════════════════════════════════════════════════════════

class TestFiltering:

    def setup_method(self):
        self.cache = AlertCache()
        self.cache.replace(_five_records(), now=T0)

    def test_no_filter_returns_everything(self):
        assert self.cache.query().total == 5

    def test_type_filter(self):
        result = self.cache.query(AlertQuery(type="flood"))
        assert result.total == 2
        assert all(r.type is AlertType.FLOOD for r in result.records)

    def test_severity_filter(self):
        assert _ids(self.cache.query(AlertQuery(severity="critical"))) == ["c"]

    def test_city_matches_city_or_state(self):
        # "a" has city Mumbai, "c" has state Mumbai Suburban
        result = self.cache.query(AlertQuery(city="mumbai"))
        assert sorted(_ids(result)) == ["a", "c"]

    def test_state_filter(self):
        assert _ids(self.cache.query(AlertQuery(state="assam"))) == ["b"]

    def test_combined_filters(self):
        result = self.cache.query(AlertQuery(type="flood", city="Mumbai"))
        assert _ids(result) == ["a"]

    def test_no_match(self):
        result = self.cache.query(AlertQuery(city="Srinagar"))
        assert result.total == 0
        assert result.total_pages == 0
        assert result.records == ()


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Ordering & Pagination
# ═══════════════════════════════════════════════════════════════════════════

class TestOrdering:

    def test_priority_then_recency(self):
        records = [
            _make_record("t1", priority=3, minutes=50),
            _make_record("t2", priority=8, minutes=10),
            _make_record("t3", priority=8, minutes=20),
        ]
        assert [r.alert_id for r in sort_records(records)] == ["t3", "t2", "t1"]

    def test_query_is_sorted(self):
        cache = AlertCache()
        cache.replace(_five_records())
        assert _ids(cache.query())[0] == "a"


class TestPagination:

    def setup_method(self):
        self.cache = AlertCache()
        self.cache.replace(
            [_make_record(str(i), priority=1, minutes=i) for i in range(7)],
        )

    def test_pages(self):
        first = self.cache.query(AlertQuery(page=1, limit=3))
        last = self.cache.query(AlertQuery(page=3, limit=3))
        assert first.total == 7
        assert first.total_pages == 3
        assert _ids(first) == ["6", "5", "4"]
        assert _ids(last) == ["0"]
        assert last.current_page == 3

    def test_page_past_the_end(self):
        result = self.cache.query(AlertQuery(page=9, limit=3))
        assert result.records == ()
        assert result.total == 7

    def test_clamped_to_at_least_one(self):
        result = self.cache.query(AlertQuery(page=0, limit=-5))
        assert result.current_page == 1
        assert len(result.records) == 1
        assert result.total_pages == 7

    def test_to_dict(self):
        body = self.cache.query(AlertQuery(limit=2)).to_dict()
        assert set(body) == {"alerts", "total", "totalPages", "currentPage", "lastUpdate"}
        assert body["totalPages"] == 4
        assert body["alerts"][0]["_id"] == "6"


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Snapshot Semantics
# ═══════════════════════════════════════════════════════════════════════════

class TestSnapshot:

    def test_empty_cache(self):
        cache = AlertCache()
        assert len(cache) == 0
        assert cache.last_update is None
        assert cache.query().to_dict()["lastUpdate"] is None

    def test_replace_installs_new_generation(self):
        cache = AlertCache()
        old = cache.replace(_five_records(), now=T0)
        new = cache.replace(_five_records()[:1], now=T0 + timedelta(hours=1))

        assert cache.snapshot is new
        assert len(old) == 5
        assert len(cache) == 1
        assert cache.last_update == T0 + timedelta(hours=1)

    def test_replace_copies_input(self):
        cache = AlertCache()
        records = _five_records()
        cache.replace(records)
        records.clear()
        assert len(cache) == 5

    def test_readers_never_see_a_partial_generation(self):
        cache = AlertCache()
        small = [_make_record(f"s{i}") for i in range(3)]
        large = [_make_record(f"l{i}") for i in range(7)]
        cache.replace(small)

        seen = set()
        stop = threading.Event()

        def writer():
            for i in range(500):
                cache.replace(large if i % 2 else small)
            stop.set()

        def reader():
            while not stop.is_set():
                seen.add(cache.query(AlertQuery(limit=100)).total)

        threads = [threading.Thread(target=writer)] + [
            threading.Thread(target=reader) for _ in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert seen <= {3, 7}


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Statistics
# ═══════════════════════════════════════════════════════════════════════════

class TestStats:

    def test_overview(self):
        cache = AlertCache()
        cache.replace(_five_records(), now=T0)
        stats = cache.stats()

        assert stats["overview"] == {
            "totalAlerts": 5,
            "activeAlerts": 4,
            "criticalAlerts": 1,
            "highAlerts": 1,
            "mediumAlerts": 1,
            "lowAlerts": 2,
        }
        assert {"_id": "flood", "count": 2} in stats["byType"]
        assert stats["bySource"][0] == {"_id": "NDMA", "count": 4}
        assert stats["lastUpdate"] == T0.isoformat()
