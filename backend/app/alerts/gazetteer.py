"""
gazetteer.py — Fixed city → state lookup used to scope alerts to places.

Two tables:
    GAZETTEER    — major cities scanned for in alert text. The key is the
                   lowercase needle; the value is the area attached when it
                   appears anywhere in the text (case-insensitive substring).
    CITY_STATES  — broader city → state map used to place synthetic
                   per-city records and user-supplied city names.
"""

from __future__ import annotations

from typing import Dict, List

from backend.app.alerts.models import AffectedArea, MULTIPLE_AREAS

GAZETTEER: Dict[str, AffectedArea] = {
    "delhi":       AffectedArea(state="Delhi", city="New Delhi"),
    "mumbai":      AffectedArea(state="Maharashtra", city="Mumbai"),
    "kolkata":     AffectedArea(state="West Bengal", city="Kolkata"),
    "chennai":     AffectedArea(state="Tamil Nadu", city="Chennai"),
    "bangalore":   AffectedArea(state="Karnataka", city="Bangalore"),
    "hyderabad":   AffectedArea(state="Telangana", city="Hyderabad"),
    "pune":        AffectedArea(state="Maharashtra", city="Pune"),
    "ahmedabad":   AffectedArea(state="Gujarat", city="Ahmedabad"),
    "jaipur":      AffectedArea(state="Rajasthan", city="Jaipur"),
    "lucknow":     AffectedArea(state="Uttar Pradesh", city="Lucknow"),
    "bhubaneswar": AffectedArea(state="Odisha", city="Bhubaneswar"),
    "chandigarh":  AffectedArea(state="Punjab", city="Chandigarh"),
}

CITY_STATES: Dict[str, str] = {
    "mumbai": "Maharashtra", "thane": "Maharashtra", "pune": "Maharashtra",
    "delhi": "Delhi", "gurgaon": "Haryana", "noida": "Uttar Pradesh",
    "faridabad": "Haryana",
    "chennai": "Tamil Nadu", "coimbatore": "Tamil Nadu", "madurai": "Tamil Nadu",
    "kolkata": "West Bengal", "howrah": "West Bengal", "durgapur": "West Bengal",
    "bangalore": "Karnataka", "mysore": "Karnataka",
    "hyderabad": "Telangana", "secunderabad": "Telangana",
    "ahmedabad": "Gujarat", "surat": "Gujarat",
    "jaipur": "Rajasthan", "jodhpur": "Rajasthan",
}


def extract_affected_areas(text: str) -> List[AffectedArea]:
    """
    Scan text for gazetteer cities.

    Returns areas in gazetteer order, or the single "Multiple Areas"
    sentinel when nothing matches, so the result is never empty.
    """
    lower = text.lower()
    areas = [area for needle, area in GAZETTEER.items() if needle in lower]
    return areas or [MULTIPLE_AREAS]


def state_for_city(city_name: str) -> str:
    """State of a known city, "India" otherwise."""
    return CITY_STATES.get(city_name.strip().lower(), "India")
