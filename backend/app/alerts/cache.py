"""
cache.py — In-memory live alert cache.

One AlertCacheSnapshot (a tuple of records + lastUpdate) is visible at a
time. ``replace()`` builds the new snapshot completely, then installs it
with a single reference assignment under a lock. Readers take the current
reference once and work on that generation only, so a query concurrent
with a refresh sees either the whole old set or the whole new set.

Query semantics:
    type, severity  — exact match
    city            — substring of any area's city OR state (case-insensitive)
    state           — substring of any area's state (case-insensitive)
    order           — priority desc, then issued_at desc
    page / limit    — applied after filtering and sorting, both clamped ≥ 1
"""

from __future__ import annotations

import logging
import math
import threading
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from backend.app.alerts.models import AlertRecord, Severity

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20


@dataclass(frozen=True)
class AlertCacheSnapshot:
    """One complete, immutable generation of the cache."""
    records: Tuple[AlertRecord, ...] = ()
    last_update: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class AlertQuery:
    type: Optional[str] = None
    severity: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT


@dataclass(frozen=True)
class QueryResult:
    records: Tuple[AlertRecord, ...]
    total: int
    total_pages: int
    current_page: int
    last_update: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alerts": [r.to_dict() for r in self.records],
            "total": self.total,
            "totalPages": self.total_pages,
            "currentPage": self.current_page,
            "lastUpdate": self.last_update.isoformat() if self.last_update else None,
        }


def sort_records(records: Iterable[AlertRecord]) -> List[AlertRecord]:
    """Priority descending, most recent first within a priority."""
    return sorted(records, key=lambda r: (r.priority, r.issued_at), reverse=True)


def matches_query(record: AlertRecord, query: AlertQuery) -> bool:
    if query.type and record.type.value != query.type:
        return False
    if query.severity and record.severity.value != query.severity:
        return False
    if query.city and not record.matches_location(query.city):
        return False
    if query.state:
        needle = query.state.lower()
        if not any(needle in a.state.lower() for a in record.affected_areas):
            return False
    return True


class AlertCache:
    """Holds the current snapshot; safe for concurrent readers and one writer."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = AlertCacheSnapshot()

    @property
    def snapshot(self) -> AlertCacheSnapshot:
        return self._snapshot

    @property
    def last_update(self) -> Optional[datetime]:
        return self._snapshot.last_update

    def __len__(self) -> int:
        return len(self._snapshot)

    def replace(
        self,
        records: Iterable[AlertRecord],
        *,
        now: Optional[datetime] = None,
    ) -> AlertCacheSnapshot:
        """Install a brand-new generation. The old one is never modified."""
        snapshot = AlertCacheSnapshot(
            records=tuple(records),
            last_update=now or datetime.now(timezone.utc),
        )
        with self._lock:
            self._snapshot = snapshot
        logger.info(
            "Alert cache replaced with %d records", len(snapshot),
            extra={"alert_count": len(snapshot)},
        )
        return snapshot

    def query(self, query: Optional[AlertQuery] = None) -> QueryResult:
        query = query or AlertQuery()
        snapshot = self._snapshot  # one generation for the whole query

        page = max(1, query.page or DEFAULT_PAGE)
        limit = max(1, query.limit or DEFAULT_LIMIT)

        filtered = sort_records(r for r in snapshot.records if matches_query(r, query))
        total = len(filtered)
        start = (page - 1) * limit

        return QueryResult(
            records=tuple(filtered[start:start + limit]),
            total=total,
            total_pages=math.ceil(total / limit),
            current_page=page,
            last_update=snapshot.last_update,
        )

    def stats(self) -> Dict[str, Any]:
        """Counts by severity, type and source over the current snapshot."""
        snapshot = self._snapshot
        records = snapshot.records
        severities = Counter(r.severity for r in records)
        by_type = Counter(r.type.value for r in records)
        by_source = Counter(r.source for r in records)

        return {
            "overview": {
                "totalAlerts": len(records),
                "activeAlerts": sum(1 for r in records if r.is_active),
                "criticalAlerts": severities[Severity.CRITICAL],
                "highAlerts": severities[Severity.HIGH],
                "mediumAlerts": severities[Severity.MEDIUM],
                "lowAlerts": severities[Severity.LOW],
            },
            "byType": [{"_id": k, "count": n} for k, n in by_type.most_common()],
            "bySource": [{"_id": k, "count": n} for k, n in by_source.most_common()],
            "lastUpdate": snapshot.last_update.isoformat() if snapshot.last_update else None,
        }
