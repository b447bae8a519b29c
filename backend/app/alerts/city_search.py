"""
city_search.py — On-demand alert search for one city.

Runs the same adapters as the scheduled refresh, adds the synthetic
per-city alerts, normalizes everything, and keeps only records whose
affected areas mention the city in their city or state. Results are
returned directly and never written to the shared AlertCache.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from backend.app.alerts.cache import sort_records
from backend.app.alerts.classifier import normalize_all
from backend.app.alerts.models import AlertRecord
from backend.app.core.errors import ValidationError
from backend.app.ingestion.demo_alerts import generate_city_alerts
from backend.app.ingestion.sources import SourceAdapter, fetch_all

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CitySearchResult:
    city: str
    records: Tuple[AlertRecord, ...]
    searched_at: datetime
    sources_queried: Tuple[str, ...]

    @property
    def total(self) -> int:
        return len(self.records)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "city": self.city,
            "alerts": [r.to_dict() for r in self.records],
            "total": self.total,
            "searchedAt": self.searched_at.isoformat(),
            "sourcesQueried": list(self.sources_queried),
            "isRealTime": True,
        }


class CitySearchPipeline:
    """Fetch → classify → filter for a single city, independent of the cache."""

    def __init__(self, adapters: Sequence[SourceAdapter]):
        self.adapters = list(adapters)

    @property
    def source_names(self) -> Tuple[str, ...]:
        return tuple(a.name for a in self.adapters if a.enabled)

    async def search(
        self,
        city_name: str,
        *,
        now: Optional[datetime] = None,
    ) -> CitySearchResult:
        city = (city_name or "").strip()
        if not city:
            raise ValidationError("City name is required", field="city")

        searched_at = now or datetime.now(timezone.utc)
        start = time.perf_counter()

        pairs = await fetch_all(self.adapters)
        pairs.extend(generate_city_alerts(city, searched_at))
        records: List[AlertRecord] = [
            r for r in normalize_all(pairs, ingested_at=searched_at)
            if r.matches_location(city)
        ]

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "City search '%s': %d alerts in %.0fms", city, len(records), duration_ms,
            extra={"city": city, "alert_count": len(records), "duration_ms": duration_ms},
        )
        return CitySearchResult(
            city=city,
            records=tuple(sort_records(records)),
            searched_at=searched_at,
            sources_queried=self.source_names,
        )
