"""
classifier.py — Raw candidate → canonical AlertRecord.

═══════════════════════════════════════════════════════════════════════════
RULE TABLES
═══════════════════════════════════════════════════════════════════════════

Every heuristic is an ordered table of (keywords, label) rows evaluated
top-down against the lowercased title + description. The first row with
any keyword present wins, so precedence is the row order:

    Type                                Severity
    ────────────────────────────        ─────────────────────────────────
    earthquake, seismic  → earthquake   critical, extreme, red alert → critical
    flood, inundation    → flood        high, severe, orange alert  → high
    cyclone, hurricane   → cyclone      moderate, yellow alert      → medium
    fire, wildfire       → fire         (no match)                  → low
    weather, rain, storm → weather
    (no match)           → general

Text mentioning both an earthquake and a flood is an earthquake alert.

═══════════════════════════════════════════════════════════════════════════
PRIORITY SCORE (1–10)
═══════════════════════════════════════════════════════════════════════════

    priority = 1 + severity weight (critical 4, high 3, medium 2, low 1)
                 + 2 for earthquake / cyclone / flood
    capped at 10

═══════════════════════════════════════════════════════════════════════════
DETERMINISM
═══════════════════════════════════════════════════════════════════════════

normalize() depends only on its arguments. The ingestion time is passed in
(default: now) and is used only when the raw date text cannot be parsed.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from dateutil import parser as date_parser

from backend.app.alerts.gazetteer import extract_affected_areas
from backend.app.alerts.models import (
    AffectedArea,
    AlertRecord,
    AlertType,
    DEFAULT_EMERGENCY_CONTACTS,
    MANUAL_SOURCE,
    MULTIPLE_AREAS,
    RawAlertCandidate,
    Severity,
)

logger = logging.getLogger(__name__)

L = TypeVar("L")
Rule = Tuple[Tuple[str, ...], L]


# ═══════════════════════════════════════════════════════════════════════════
# Tables
# ═══════════════════════════════════════════════════════════════════════════

TYPE_RULES: Tuple[Rule, ...] = (
    (("earthquake", "seismic"), AlertType.EARTHQUAKE),
    (("flood", "inundation"), AlertType.FLOOD),
    (("cyclone", "hurricane"), AlertType.CYCLONE),
    (("fire", "wildfire"), AlertType.FIRE),
    (("weather", "rain", "storm"), AlertType.WEATHER),
)

SEVERITY_RULES: Tuple[Rule, ...] = (
    (("critical", "extreme", "red alert"), Severity.CRITICAL),
    (("high", "severe", "orange alert"), Severity.HIGH),
    (("moderate", "yellow alert"), Severity.MEDIUM),
)

# CAP <severity> vocabulary used by SACHET feeds
CAP_SEVERITY_RULES: Tuple[Rule, ...] = (
    (("extreme",), Severity.CRITICAL),
    (("severe",), Severity.HIGH),
    (("moderate",), Severity.MEDIUM),
    (("minor",), Severity.LOW),
)

WEATHER_INSTRUCTION_RULES: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...] = (
    (("rain", "flood"), (
        "Avoid waterlogged areas and underpasses",
        "Stay indoors unless absolutely necessary",
        "Keep emergency supplies ready",
    )),
    (("cyclone", "storm"), (
        "Secure loose objects around your property",
        "Stock up on food, water, and medical supplies",
        "Stay away from windows and doors",
    )),
    (("heat", "temperature"), (
        "Stay hydrated and avoid direct sunlight",
        "Wear light-colored, loose-fitting clothing",
        "Avoid outdoor activities during peak hours",
    )),
)

HIGH_IMPACT_TYPES = frozenset({AlertType.EARTHQUAKE, AlertType.CYCLONE, AlertType.FLOOD})
MAX_PRIORITY = 10

DEFAULT_TITLE = "Alert Notification"
DEFAULT_DESCRIPTION = "Please check official sources for details"
DEFAULT_INSTRUCTION = "Stay alert and follow official guidelines"
WEATHER_MONITOR_INSTRUCTION = "Monitor official weather updates regularly"

_DMY_RE = re.compile(r"(\d{1,2})[-/](\d{1,2})[-/](\d{4})")


# ═══════════════════════════════════════════════════════════════════════════
# Rule Evaluation
# ═══════════════════════════════════════════════════════════════════════════

def first_match(rules: Sequence[Rule], text: str, default: L) -> L:
    """Label of the first rule with any keyword in ``text`` (case-insensitive)."""
    lower = text.lower()
    for keywords, label in rules:
        if any(k in lower for k in keywords):
            return label
    return default


def classify_type(text: str) -> AlertType:
    return first_match(TYPE_RULES, text, AlertType.GENERAL)


def classify_severity(text: str) -> Severity:
    return first_match(SEVERITY_RULES, text, Severity.LOW)


def map_cap_severity(value: Optional[str]) -> Severity:
    """CAP severity word → Severity; unknown, missing or non-text is medium."""
    if not isinstance(value, str) or not value:
        return Severity.MEDIUM
    return first_match(CAP_SEVERITY_RULES, value, Severity.MEDIUM)


def compute_priority(alert_type: AlertType, severity: Severity) -> int:
    priority = 1 + severity.weight
    if alert_type in HIGH_IMPACT_TYPES:
        priority += 2
    return min(priority, MAX_PRIORITY)


def weather_instructions(text: str) -> List[str]:
    """Advice lines for a met-office warning, always ending with a monitor line."""
    lower = text.lower()
    instructions: List[str] = []
    for keywords, lines in WEATHER_INSTRUCTION_RULES:
        if any(k in lower for k in keywords):
            instructions.extend(lines)
    instructions.append(WEATHER_MONITOR_INSTRUCTION)
    return instructions


# ═══════════════════════════════════════════════════════════════════════════
# Dates
# ═══════════════════════════════════════════════════════════════════════════

def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date(text: Optional[str], *, default: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse free-form date text.

    Tries dateutil first, then an Indian DD-MM-YYYY / DD/MM/YYYY pattern.
    Parts missing from the text (year, month, day) come from ``default``
    (midnight of that day), so partial text like "Monday" never depends on
    the wall clock when a default is given.
    Returns a UTC-aware datetime, or None when nothing parses.
    """
    if not text or not text.strip():
        return None
    base = None
    if default is not None:
        base = _as_utc(default).replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    try:
        return _as_utc(date_parser.parse(text, default=base))
    except (ValueError, OverflowError):
        pass

    match = _DMY_RE.search(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        try:
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            return None
    return None


# ═══════════════════════════════════════════════════════════════════════════
# Normalization
# ═══════════════════════════════════════════════════════════════════════════

def _area_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _areas_from_hint(raw_areas: Iterable[Dict[str, Any]]) -> List[AffectedArea]:
    return [
        AffectedArea(
            state=_area_text(area.get("state")) or "Unknown State",
            city=_area_text(area.get("city")) or "Unknown City",
            district=_area_text(area.get("district")),
        )
        for area in raw_areas
    ]


def make_alert_id(candidate: RawAlertCandidate, source_name: str) -> str:
    """Stable id for a candidate: identical input always yields the same id."""
    key = "|".join((
        source_name, candidate.title, candidate.description,
        candidate.date_text, candidate.link or "",
    ))
    return "live_" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]


def normalize(
    candidate: RawAlertCandidate,
    source_name: str,
    *,
    ingested_at: Optional[datetime] = None,
) -> AlertRecord:
    """
    Turn one raw candidate into a canonical AlertRecord.

    Parameters
    ----------
    candidate : RawAlertCandidate
        Extracted fragment; ``hints`` override text heuristics field by field.
    source_name : str
        Display name of the origin ("NDMA", "IMD", "Manual", ...).
    ingested_at : datetime, optional
        Fallback for ``issued_at``; defaults to now.

    Returns
    -------
    AlertRecord
        Every field populated; affected areas never empty.
    """
    ingested_at = _as_utc(ingested_at or datetime.now(timezone.utc))
    hints = candidate.hints
    text = candidate.text

    title = candidate.title.strip() or DEFAULT_TITLE
    description = candidate.description.strip() or DEFAULT_DESCRIPTION
    source = source_name or MANUAL_SOURCE

    alert_type = (
        AlertType(hints["type"]) if hints.get("type") else classify_type(text)
    )
    if hints.get("severity"):
        severity = Severity(hints["severity"])
    elif "cap_severity" in hints:
        severity = map_cap_severity(hints["cap_severity"])
    else:
        severity = classify_severity(text)

    if hints.get("areas"):
        areas = _areas_from_hint(hints["areas"])
    else:
        areas = extract_affected_areas(text)

    issued_at = parse_date(candidate.date_text, default=ingested_at) or ingested_at
    expires_at = parse_date(candidate.validity_text, default=ingested_at)

    instructions = tuple(hints.get("instructions") or ()) or (DEFAULT_INSTRUCTION,)
    tags = tuple(hints.get("tags") or ()) or (alert_type.value,)

    return AlertRecord(
        alert_id=make_alert_id(candidate, source),
        title=title,
        description=description,
        type=alert_type,
        severity=severity,
        source=source,
        source_url=candidate.link or "",
        affected_areas=tuple(areas) or (MULTIPLE_AREAS,),
        issued_at=issued_at,
        expires_at=expires_at,
        instructions=instructions,
        emergency_contacts=DEFAULT_EMERGENCY_CONTACTS,
        tags=tags,
        priority=compute_priority(alert_type, severity),
        is_active=hints.get("is_active", True) is not False,
        is_verified=source != MANUAL_SOURCE,
        raw_data={
            "originalTitle": candidate.title,
            "originalDescription": candidate.description,
            "dateText": candidate.date_text,
            "validityText": candidate.validity_text,
            "sourceId": candidate.source_id,
            "hints": dict(hints),
            "scrapedAt": ingested_at.isoformat(),
        },
    )


def normalize_all(
    candidates: Iterable[Tuple[RawAlertCandidate, str]],
    *,
    ingested_at: Optional[datetime] = None,
) -> List[AlertRecord]:
    """Normalize (candidate, source_name) pairs, skipping any that fail."""
    records: List[AlertRecord] = []
    for candidate, source_name in candidates:
        try:
            records.append(normalize(candidate, source_name, ingested_at=ingested_at))
        except Exception as exc:
            logger.warning(
                "Skipping malformed candidate from %s: %r", source_name, exc,
                extra={"source_id": candidate.source_id},
            )
    return records
