"""
models.py — Shared data structures for live alert ingestion and delivery.

Defines:
    • AlertType / Severity     — classification vocabularies
    • AffectedArea             — (state, city, district) an alert is scoped to
    • EmergencyContact         — helpline attached to every record
    • AlertSourceConfig        — static per-source endpoint configuration
    • RawAlertCandidate        — un-normalized fragment from one source
    • AlertRecord              — canonical normalized alert held in the cache
    • NotificationPayload      — one web push message per alert
    • DeliveryOutcome          — per-recipient push result
    • DispatchResult           — aggregate push accounting

═══════════════════════════════════════════════════════════════════════════
RECORD LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    RawAlertCandidate ──normalize()──► AlertRecord ──► AlertCacheSnapshot
        (ephemeral)                    (immutable)      (one generation)

AlertRecord instances are frozen. Collections on them are tuples, so a
snapshot handed to readers can never be changed underneath them. A new
refresh cycle builds brand-new records; nothing is merged or patched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class AlertType(str, Enum):
    """Hazard category of an alert."""
    EARTHQUAKE = "earthquake"
    FLOOD      = "flood"
    CYCLONE    = "cyclone"
    FIRE       = "fire"
    WEATHER    = "weather"
    GENERAL    = "general"


class Severity(str, Enum):
    """Severity level; ``weight`` feeds the priority score."""
    LOW      = "low"
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return SEVERITY_WEIGHTS[self]


SEVERITY_WEIGHTS: Dict[Severity, int] = {
    Severity.CRITICAL: 4,
    Severity.HIGH:     3,
    Severity.MEDIUM:   2,
    Severity.LOW:      1,
}


class DeliveryOutcome(str, Enum):
    """Result of one push delivery attempt."""
    SUCCESS           = "success"
    TRANSIENT_FAILURE = "transient_failure"  # subscription retained
    GONE              = "gone"               # subscription must be cleared


MANUAL_SOURCE = "Manual"


# ═══════════════════════════════════════════════════════════════════════════
# Location & Contacts
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AffectedArea:
    """A (state, city, district) tuple an alert is scoped to."""
    state: str
    city: str
    district: str = ""

    def matches(self, needle: str) -> bool:
        """Case-insensitive substring match against city or state."""
        n = needle.lower()
        return n in self.city.lower() or n in self.state.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {"state": self.state, "city": self.city, "district": self.district}


MULTIPLE_AREAS = AffectedArea(state="India", city="Multiple Areas")


@dataclass(frozen=True)
class EmergencyContact:
    name: str
    phone: str
    type: str  # police, fire, medical, disaster-management

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "phone": self.phone, "type": self.type}


DEFAULT_EMERGENCY_CONTACTS: Tuple[EmergencyContact, ...] = (
    EmergencyContact("Emergency Services", "108", "medical"),
    EmergencyContact("Police", "100", "police"),
    EmergencyContact("Fire Brigade", "101", "fire"),
)


# ═══════════════════════════════════════════════════════════════════════════
# Ingestion
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AlertSourceConfig:
    """
    Static configuration for one upstream source.

    ``strategy`` picks the relevance predicate and extraction layout:
    ``general`` for news/alert listings, ``weather`` for met-office
    warning pages, ``cap`` for CAP-style feeds that may answer JSON.
    """
    source_id: str
    name: str
    url: str
    alternate_url: Optional[str] = None
    selector: str = ".alert-item"
    strategy: str = "general"
    enabled: bool = True
    timeout_seconds: float = 15.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.source_id,
            "name": self.name,
            "url": self.url,
            "alternateUrl": self.alternate_url,
            "selector": self.selector,
            "strategy": self.strategy,
            "enabled": self.enabled,
        }


@dataclass
class RawAlertCandidate:
    """
    One candidate alert as extracted from a source, before classification.

    ``hints`` carries structured values some sources already provide
    (CAP severity, area list, instructions, an explicit type for curated
    demonstration data). The classifier prefers hints over text heuristics
    and keeps them in the record's audit blob.
    """
    title: str
    description: str = ""
    date_text: str = ""
    link: Optional[str] = None
    source_id: str = ""
    validity_text: str = ""
    hints: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """Combined title + description used for every heuristic."""
        return f"{self.title} {self.description}".strip()


# ═══════════════════════════════════════════════════════════════════════════
# Canonical Record
# ═══════════════════════════════════════════════════════════════════════════

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class AlertRecord:
    """Canonical, normalized unit representing one disaster alert."""
    alert_id: str
    title: str
    description: str
    type: AlertType
    severity: Severity
    source: str
    source_url: str
    affected_areas: Tuple[AffectedArea, ...]
    issued_at: datetime
    expires_at: Optional[datetime] = None
    instructions: Tuple[str, ...] = ()
    emergency_contacts: Tuple[EmergencyContact, ...] = DEFAULT_EMERGENCY_CONTACTS
    tags: Tuple[str, ...] = ()
    priority: int = 1
    is_active: bool = True
    is_verified: bool = False
    notifications_sent: int = 0
    raw_data: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def matches_location(self, needle: str) -> bool:
        return any(area.matches(needle) for area in self.affected_areas)

    @property
    def states(self) -> List[str]:
        return [a.state for a in self.affected_areas]

    @property
    def cities(self) -> List[str]:
        return [a.city for a in self.affected_areas]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.alert_id,
            "title": self.title,
            "description": self.description,
            "type": self.type.value,
            "severity": self.severity.value,
            "source": self.source,
            "sourceUrl": self.source_url,
            "affectedAreas": [a.to_dict() for a in self.affected_areas],
            "issuedAt": _iso(self.issued_at),
            "expiresAt": _iso(self.expires_at),
            "instructions": list(self.instructions),
            "emergencyContacts": [c.to_dict() for c in self.emergency_contacts],
            "tags": list(self.tags),
            "priority": self.priority,
            "isActive": self.is_active,
            "isVerified": self.is_verified,
            "notificationsSent": self.notifications_sent,
            "rawData": self.raw_data,
        }


# ═══════════════════════════════════════════════════════════════════════════
# Notifications
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NotificationPayload:
    """The web push message built once per alert."""
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict, hash=False)
    require_interaction: bool = False
    icon: str = "/icons/alert-icon.png"
    badge: str = "/icons/badge-icon.png"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "icon": self.icon,
            "badge": self.badge,
            "data": self.data,
            "actions": [
                {"action": "view", "title": "View Details"},
                {"action": "dismiss", "title": "Dismiss"},
            ],
            "requireInteraction": self.require_interaction,
            "silent": False,
        }


@dataclass(frozen=True)
class Recipient:
    """A user resolved from the directory who can receive a push."""
    user_id: str
    subscription: Dict[str, Any] = field(hash=False)
    state: str = ""
    city: str = ""


@dataclass
class DispatchResult:
    """Aggregate accounting for one dispatch call."""
    sent: int = 0
    failed: int = 0
    cleared: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"sent": self.sent, "failed": self.failed, "cleared": self.cleared}
