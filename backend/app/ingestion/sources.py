"""
sources.py — One adapter per upstream alert source.

Sources
=======
    NDMA    ndma.gov.in alerts & warnings listing     general, 10 s
    IMD     mausam.imd.gov.in warnings page           weather, 15 s
    SACHET  sachet.ndma.gov.in CAP alert feed         cap,     15 s
    ISRO    isro.gov.in press releases                general, 15 s

Contract
========
``await adapter.fetch()`` returns a list of RawAlertCandidate and never
raises. Failures are recovered in layers:

    Level 1 — network error / timeout / HTTP ≥ 400  → SourceFetchError
              → alternate URL where the source has one
              → source fallback list (IMD, SACHET) or []
    Level 2 — one malformed item                    → ParseError
              → that item skipped, the rest kept
    Level 3 — relevance predicate
              general: title+description mentions a disaster keyword
              weather: title contains warning / alert / forecast
              cap:     any item with a title

The adapters only fetch and extract. Classification happens later in
``backend.app.alerts.classifier``; the fetch mechanism (plain HTTP GET
today) can be swapped without touching it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from backend.app.alerts.classifier import weather_instructions
from backend.app.alerts.models import AlertSourceConfig, RawAlertCandidate
from backend.app.core.errors import ParseError, SourceFetchError
from backend.app.ingestion import demo_alerts
from backend.app.ingestion.parsing import (
    FieldSelectors,
    clean_text,
    extract_candidates,
    truncate,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

DISASTER_KEYWORDS = (
    "earthquake", "flood", "cyclone", "hurricane", "tsunami", "fire",
    "drought", "landslide", "avalanche", "storm", "warning", "alert",
    "disaster", "emergency", "evacuation", "rescue", "relief",
)

WEATHER_TITLE_KEYWORDS = ("warning", "alert", "forecast")

DEFAULT_SOURCES: Sequence[AlertSourceConfig] = (
    AlertSourceConfig(
        source_id="ndma",
        name="NDMA",
        url="https://ndma.gov.in/en/alerts-warnings.html",
        alternate_url="https://ndma.gov.in/",
        selector=".content-area .news-item, .alert-item, .warning-item",
        strategy="general",
        timeout_seconds=10.0,
    ),
    AlertSourceConfig(
        source_id="imd",
        name="IMD",
        url="https://mausam.imd.gov.in/responsive/warnings.php",
        alternate_url="https://mausam.imd.gov.in/",
        selector=".warning-content, .alert-content, .weather-warning, .warning-box, .alert-box",
        strategy="weather",
    ),
    AlertSourceConfig(
        source_id="sachet",
        name="SACHET",
        url="https://sachet.ndma.gov.in/",
        alternate_url="https://sachet.ndma.gov.in/cap_public_website/FetchAllAlerts",
        selector=".alert-item, .cap-alert, .warning-item",
        strategy="cap",
    ),
    AlertSourceConfig(
        source_id="isro",
        name="ISRO",
        url="https://www.isro.gov.in/news.html",
        selector=".news-item, .news-content, .press-release",
        strategy="general",
    ),
)


# ---------------------------------------------------------------------------
# Relevance predicates
# ---------------------------------------------------------------------------

def is_disaster_related(candidate: RawAlertCandidate) -> bool:
    text = candidate.text.lower()
    return any(k in text for k in DISASTER_KEYWORDS)


def is_weather_warning(candidate: RawAlertCandidate) -> bool:
    title = candidate.title.lower()
    return any(k in title for k in WEATHER_TITLE_KEYWORDS)


def has_title(candidate: RawAlertCandidate) -> bool:
    return bool(candidate.title.strip())


RELEVANCE: Dict[str, Callable[[RawAlertCandidate], bool]] = {
    "general": is_disaster_related,
    "weather": is_weather_warning,
    "cap": has_title,
}


# ---------------------------------------------------------------------------
# Base adapter
# ---------------------------------------------------------------------------

class SourceAdapter:
    """
    Fetch and extract candidates from one source.

    Subclasses override ``fields`` for their markup, ``_fetch_candidates``
    when they need more than one GET, and ``fallback`` when they ship a
    continuity list. An ``httpx.AsyncClient`` may be injected; otherwise a
    short-lived client is opened per fetch.
    """

    fields = FieldSelectors()

    def __init__(
        self,
        config: AlertSourceConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.config = config
        self._client = client
        self._headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }

    @property
    def source_id(self) -> str:
        return self.config.source_id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.source_id!r})"

    # ── Public contract ──

    async def fetch(self) -> List[RawAlertCandidate]:
        """Relevant candidates from this source; never raises."""
        start = time.perf_counter()
        try:
            candidates = await self._fetch_candidates()
            relevant = [c for c in candidates if self.is_relevant(c)]
        except SourceFetchError as exc:
            logger.warning(
                "%s unavailable: %s", self.name, exc.message,
                extra={"source_id": self.source_id},
            )
            candidates = relevant = self.fallback()
        except Exception:
            logger.exception(
                "%s adapter failed unexpectedly", self.name,
                extra={"source_id": self.source_id},
            )
            candidates = relevant = self.fallback()

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s: %d candidates (%d extracted) in %.0fms",
            self.name, len(relevant), len(candidates), duration_ms,
            extra={
                "source_id": self.source_id,
                "alert_count": len(relevant),
                "duration_ms": duration_ms,
            },
        )
        return relevant

    def is_relevant(self, candidate: RawAlertCandidate) -> bool:
        return RELEVANCE.get(self.config.strategy, is_disaster_related)(candidate)

    def fallback(self) -> List[RawAlertCandidate]:
        return []

    # ── Fetching ──

    async def _get(self, url: str, *, accept: Optional[str] = None) -> httpx.Response:
        """GET with the source timeout; any failure becomes SourceFetchError."""
        headers = dict(self._headers)
        if accept:
            headers["Accept"] = accept
        timeout = self.config.timeout_seconds

        try:
            if self._client is not None:
                response = await self._client.get(url, headers=headers, timeout=timeout)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await client.get(url, headers=headers, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise SourceFetchError(self.source_id, f"timed out after {timeout}s", url=url) from exc
        except httpx.HTTPError as exc:
            raise SourceFetchError(
                self.source_id, str(exc) or type(exc).__name__, url=url,
            ) from exc

        if response.status_code >= 400:
            raise SourceFetchError(
                self.source_id, f"HTTP {response.status_code}",
                url=url, status_code=response.status_code,
            )
        return response

    async def _fetch_candidates(self) -> List[RawAlertCandidate]:
        response = await self._get(self.config.url)
        return self.parse_html(response.text, self.config.url)

    def parse_html(self, html: str, base_url: str) -> List[RawAlertCandidate]:
        return extract_candidates(
            html,
            selector=self.config.selector,
            source_id=self.source_id,
            base_url=base_url,
            fields=self.fields,
        )


# ---------------------------------------------------------------------------
# Concrete adapters
# ---------------------------------------------------------------------------

class ListingAdapter(SourceAdapter):
    """News / alert listing pages (NDMA, ISRO)."""

    fields = FieldSelectors(
        title="h3, h4, .title, .headline",
        description="p, .description, .content",
        date=".date, .published-date, .published",
    )


class WeatherWarningAdapter(SourceAdapter):
    """IMD warnings page: tries the alternate URL, then the monsoon fallback."""

    fields = FieldSelectors(
        title="h3, h4, .title, .warning-title",
        description="p, .description, .content",
        date=".date, .issued, .time",
        validity=".validity, .valid-till, .expires",
    )

    async def _fetch_candidates(self) -> List[RawAlertCandidate]:
        try:
            response = await self._get(self.config.url)
            base_url = self.config.url
        except SourceFetchError:
            if not self.config.alternate_url:
                raise
            logger.info(
                "%s primary failed, trying alternate URL", self.name,
                extra={"source_id": self.source_id},
            )
            response = await self._get(self.config.alternate_url)
            base_url = self.config.alternate_url

        candidates = self.parse_html(response.text, base_url)
        for candidate in candidates:
            candidate.hints.setdefault("instructions", weather_instructions(candidate.text))
        return candidates

    def fallback(self) -> List[RawAlertCandidate]:
        return demo_alerts.imd_fallback()


class CapFeedAdapter(SourceAdapter):
    """
    SACHET CAP feed.

    The alert feed endpoint is tried first and may answer with a JSON array
    of CAP-like objects; HTML answers are scraped with the item selector.
    The public home page is the second attempt.
    """

    fields = FieldSelectors(
        title="h3, h4, .title, .headline",
        description="p, .description, .instruction",
        date=".date, .sent, .effective",
    )

    async def _fetch_candidates(self) -> List[RawAlertCandidate]:
        urls = [u for u in (self.config.alternate_url, self.config.url) if u]
        last_error: Optional[SourceFetchError] = None
        for url in urls:
            try:
                response = await self._get(url, accept="application/json, text/html, */*")
            except SourceFetchError as exc:
                last_error = exc
                continue
            return self.parse_response(response)
        raise last_error or SourceFetchError(self.source_id, "no URL configured")

    def parse_response(self, response: httpx.Response) -> List[RawAlertCandidate]:
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                payload = response.json()
            except ValueError as exc:
                raise SourceFetchError(self.source_id, f"invalid JSON: {exc}") from exc
            return self.parse_json(payload)
        return self.parse_html(response.text, self.config.url)

    def parse_json(self, payload: Any) -> List[RawAlertCandidate]:
        if not isinstance(payload, list):
            return []
        candidates: List[RawAlertCandidate] = []
        for item in payload:
            try:
                candidates.append(self._cap_item(item))
            except ParseError as exc:
                logger.debug("Skipping CAP item: %s", exc.message, extra={"source_id": self.source_id})
        return candidates

    def _cap_item(self, item: Any) -> RawAlertCandidate:
        if not isinstance(item, dict):
            raise ParseError(self.source_id, "CAP item is not an object")
        title = clean_text(item.get("title") or item.get("headline"))
        if not title:
            raise ParseError(self.source_id, "CAP item has no headline")

        severity = item.get("severity")
        if severity is not None and not isinstance(severity, str):
            raise ParseError(self.source_id, f"CAP severity is not text: {severity!r}")

        instruction = clean_text(item.get("instruction"))
        hints: Dict[str, Any] = {"cap_severity": severity, "original": item}
        areas = _cap_areas(item.get("area"))
        if areas:
            hints["areas"] = areas
        if instruction:
            hints["instructions"] = [instruction]

        return RawAlertCandidate(
            title=title,
            description=truncate(clean_text(item.get("description")) or instruction),
            date_text=str(item.get("sent") or item.get("effective") or ""),
            validity_text=str(item.get("expires") or ""),
            link=self.config.url,
            source_id=self.source_id,
            hints=hints,
        )

    def fallback(self) -> List[RawAlertCandidate]:
        return demo_alerts.sachet_fallback()


def _cap_areas(area: Any) -> List[Dict[str, str]]:
    """CAP ``area`` (object or list) → [{state, city}] using areaDesc for both.

    Entries without a textual areaDesc are dropped.
    """
    if not area:
        return []
    entries = area if isinstance(area, list) else [area]
    areas = []
    for entry in entries:
        desc = clean_text(entry.get("areaDesc")) if isinstance(entry, dict) else ""
        if not desc:
            continue
        areas.append({"state": desc, "city": desc})
    return areas


async def fetch_all(
    adapters: Sequence[SourceAdapter],
) -> List[Tuple[RawAlertCandidate, str]]:
    """Fetch from all enabled adapters concurrently → (candidate, source name) pairs."""
    enabled = [a for a in adapters if a.enabled]
    results = await asyncio.gather(*(a.fetch() for a in enabled), return_exceptions=True)

    pairs: List[Tuple[RawAlertCandidate, str]] = []
    for adapter, result in zip(enabled, results):
        if isinstance(result, BaseException):
            # fetch() does not raise; this is a bug in the adapter
            logger.error(
                "%s fetch raised %r", adapter.name, result,
                extra={"source_id": adapter.source_id},
            )
            continue
        pairs.extend((candidate, adapter.name) for candidate in result)
    return pairs


ADAPTER_TYPES = {
    "ndma": ListingAdapter,
    "imd": WeatherWarningAdapter,
    "sachet": CapFeedAdapter,
    "isro": ListingAdapter,
}

STRATEGY_ADAPTERS = {
    "general": ListingAdapter,
    "weather": WeatherWarningAdapter,
    "cap": CapFeedAdapter,
}


def build_adapters(
    configs: Sequence[AlertSourceConfig] = DEFAULT_SOURCES,
    *,
    client: Optional[httpx.AsyncClient] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> List[SourceAdapter]:
    """One adapter per config, chosen by source id then by strategy."""
    adapters: List[SourceAdapter] = []
    for config in configs:
        adapter_cls = ADAPTER_TYPES.get(config.source_id) or STRATEGY_ADAPTERS.get(
            config.strategy, ListingAdapter,
        )
        adapters.append(adapter_cls(config, client=client, user_agent=user_agent))
    return adapters
