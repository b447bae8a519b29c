"""
demo_alerts.py — Deterministic demonstration and fallback alerts.

Government sites are frequently unreachable or block scrapers, so the
service keeps a small curated set of alerts for continuity:

    demo_alerts()            — appended to every refresh cycle when enabled
    imd_fallback()           — IMD monsoon advisory when both IMD URLs fail
    sachet_fallback()        — SACHET preparedness advisory on failure
    generate_city_alerts()   — category-specific alerts for a city search

Every generator takes ``now`` so output is reproducible. Timestamps are
emitted as ISO text in ``date_text`` / ``validity_text`` and go through
the same date parsing as scraped content. Curated fields (type, severity,
areas, instructions, tags) travel as candidate hints.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from backend.app.alerts.gazetteer import state_for_city
from backend.app.alerts.models import MANUAL_SOURCE, RawAlertCandidate

DemoAlert = Tuple[RawAlertCandidate, str]

IMD_HOME = "https://mausam.imd.gov.in/"
NDMA_HOME = "https://ndma.gov.in/"
SACHET_HOME = "https://sachet.ndma.gov.in/"
CPCB_AQI = "https://app.cpcbccr.com/AQI_India/"

RAIN_PRONE = ("mumbai", "thane", "pune")
POLLUTION_PRONE = ("delhi", "gurgaon", "noida", "faridabad")
HEAT_PRONE = ("chennai", "coimbatore", "madurai")
STORM_PRONE = ("kolkata", "howrah", "durgapur")


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _candidate(
    title: str,
    description: str,
    *,
    link: str,
    source_id: str,
    issued_at: datetime,
    expires_at: Optional[datetime] = None,
    **hints: Any,
) -> RawAlertCandidate:
    return RawAlertCandidate(
        title=title,
        description=description,
        date_text=issued_at.isoformat(),
        validity_text=expires_at.isoformat() if expires_at else "",
        link=link,
        source_id=source_id,
        hints={k: v for k, v in hints.items() if v is not None},
    )


def _areas(*pairs: Tuple[str, str]) -> List[Dict[str, str]]:
    return [{"state": state, "city": city} for state, city in pairs]


# ═══════════════════════════════════════════════════════════════════════════
# Refresh-cycle Demonstration Set
# ═══════════════════════════════════════════════════════════════════════════

def demo_alerts(now: Optional[datetime] = None) -> List[DemoAlert]:
    now = _now(now)
    return [
        (_candidate(
            "Heavy Rainfall Warning for Northern States",
            "IMD has issued a heavy rainfall warning for Delhi, Punjab, Haryana, "
            "and Uttar Pradesh. Rainfall of 64.5 mm to 115.5 mm is expected in "
            "the next 24-48 hours.",
            link="https://mausam.imd.gov.in",
            source_id="demo",
            issued_at=now,
            expires_at=now + timedelta(hours=48),
            type="weather",
            severity="medium",
            areas=_areas(
                ("Delhi", "New Delhi"),
                ("Punjab", "Chandigarh"),
                ("Haryana", "Gurgaon"),
                ("Uttar Pradesh", "Noida"),
            ),
            instructions=[
                "Avoid unnecessary travel during heavy rainfall",
                "Keep emergency contacts handy",
                "Stay indoors and avoid waterlogged areas",
                "Monitor weather updates regularly",
            ],
        ), "IMD"),
        (_candidate(
            "Earthquake Preparedness Advisory",
            "NDMA advises all educational institutions to conduct earthquake "
            "preparedness drills following recent seismic activity in the region.",
            link="https://ndma.gov.in",
            source_id="demo",
            issued_at=now - timedelta(hours=2),
            type="earthquake",
            severity="low",
            areas=_areas(
                ("Himachal Pradesh", "Shimla"),
                ("Uttarakhand", "Dehradun"),
                ("Delhi", "New Delhi"),
            ),
            instructions=[
                "Conduct regular earthquake drills",
                "Secure heavy furniture and equipment",
                "Keep emergency kits ready",
                "Identify safe spots in buildings",
            ],
        ), "NDMA"),
    ]


# ═══════════════════════════════════════════════════════════════════════════
# Per-source Fallbacks
# ═══════════════════════════════════════════════════════════════════════════

def imd_fallback(now: Optional[datetime] = None) -> List[RawAlertCandidate]:
    return [_candidate(
        "Weather Advisory - Monsoon Update",
        "IMD weather advisory for monsoon conditions across various states. "
        "Citizens are advised to stay updated with local weather conditions.",
        link=IMD_HOME,
        source_id="imd",
        issued_at=_now(now),
        type="weather",
        severity="medium",
        areas=_areas(("Multiple States", "Various Cities")),
        instructions=["Monitor weather updates", "Take necessary precautions"],
    )]


def sachet_fallback(now: Optional[datetime] = None) -> List[RawAlertCandidate]:
    return [_candidate(
        "Emergency Preparedness Advisory",
        "SACHET advisory for emergency preparedness and disaster risk "
        "reduction measures.",
        link=SACHET_HOME,
        source_id="sachet",
        issued_at=_now(now),
        type="general",
        severity="low",
        areas=_areas(("India", "All Areas")),
        instructions=["Stay prepared for emergencies", "Keep emergency contacts ready"],
    )]


# ═══════════════════════════════════════════════════════════════════════════
# City Search
# ═══════════════════════════════════════════════════════════════════════════

def _city_alert(
    city: str,
    source_name: str,
    title: str,
    description: str,
    *,
    link: str,
    issued_at: datetime,
    expires_at: Optional[datetime] = None,
    alert_type: str,
    severity: str,
    instructions: Sequence[str],
    tags: Sequence[str],
) -> DemoAlert:
    candidate = _candidate(
        title, description,
        link=link,
        source_id="city-search",
        issued_at=issued_at,
        expires_at=expires_at,
        type=alert_type,
        severity=severity,
        areas=[{"city": city, "state": state_for_city(city)}],
        instructions=list(instructions),
        tags=list(tags) + [city.lower()],
    )
    return candidate, source_name


def generate_city_alerts(city_name: str, now: Optional[datetime] = None) -> List[DemoAlert]:
    """
    Category alerts for one city.

    Rain-, pollution-, heat- and storm-prone cities each get their own
    alert; every city gets an earthquake-preparedness advisory.
    """
    now = _now(now)
    city = city_name.strip()
    key = city.lower()
    alerts: List[DemoAlert] = []

    if key in RAIN_PRONE:
        alerts.append(_city_alert(
            city, "IMD",
            f"Heavy Rainfall Alert - {city}",
            f"IMD has issued a heavy rainfall warning for {city}. Expected "
            f"rainfall: 50-100mm in next 24 hours. Citizens advised to stay indoors.",
            link=IMD_HOME,
            issued_at=now - timedelta(minutes=30),
            expires_at=now + timedelta(hours=24),
            alert_type="flood",
            severity="high",
            instructions=(
                "Avoid waterlogged areas",
                "Stay indoors unless necessary",
                "Keep emergency supplies ready",
                "Monitor weather updates",
            ),
            tags=("rainfall", "weather"),
        ))

    if key in POLLUTION_PRONE:
        alerts.append(_city_alert(
            city, MANUAL_SOURCE,
            f"Air Quality Alert - {city}",
            f"Poor air quality reported in {city}. AQI levels above 300. "
            f"Sensitive groups should avoid outdoor activities.",
            link=CPCB_AQI,
            issued_at=now - timedelta(hours=1),
            alert_type="general",
            severity="medium",
            instructions=(
                "Wear N95 masks outdoors",
                "Avoid morning walks",
                "Keep windows closed",
                "Use air purifiers if available",
            ),
            tags=("air-quality", "pollution"),
        ))

    if key in HEAT_PRONE:
        alerts.append(_city_alert(
            city, "IMD",
            f"Heat Wave Warning - {city}",
            f"Severe heat wave conditions in {city}. Temperature expected to "
            f"reach 42°C. Take necessary precautions.",
            link=IMD_HOME,
            issued_at=now - timedelta(hours=2),
            expires_at=now + timedelta(hours=48),
            alert_type="weather",
            severity="high",
            instructions=(
                "Avoid direct sun exposure 11 AM - 4 PM",
                "Drink plenty of water",
                "Wear light colored clothes",
                "Stay in shade or AC",
            ),
            tags=("heatwave", "temperature"),
        ))

    if key in STORM_PRONE:
        alerts.append(_city_alert(
            city, "IMD",
            f"Thunderstorm Alert - {city}",
            f"Thunderstorm with lightning expected in {city}. Wind speeds up "
            f"to 60 kmph. Stay indoors.",
            link=IMD_HOME,
            issued_at=now - timedelta(minutes=45),
            expires_at=now + timedelta(hours=6),
            alert_type="weather",
            severity="medium",
            instructions=(
                "Stay indoors during thunderstorm",
                "Avoid using electronic devices",
                "Stay away from windows",
                "Unplug electrical appliances",
            ),
            tags=("thunderstorm", "lightning"),
        ))

    alerts.append(_city_alert(
        city, "NDMA",
        f"Earthquake Preparedness - {city}",
        f"NDMA advisory for earthquake preparedness in {city}. Recent seismic "
        f"activity detected in the region.",
        link=NDMA_HOME,
        issued_at=now - timedelta(hours=3),
        alert_type="earthquake",
        severity="low",
        instructions=(
            "Conduct earthquake drills",
            "Secure heavy furniture",
            "Keep emergency kit ready",
            "Identify safe spots in buildings",
        ),
        tags=("earthquake", "preparedness"),
    ))
    return alerts
