"""
Pydantic schemas for the alerts API.

Separated from the route handlers so tests and scripts can build valid
requests without going through HTTP. Field names accept both the
camelCase wire form and the snake_case Python form.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.alerts.classifier import DEFAULT_INSTRUCTION, compute_priority
from backend.app.alerts.models import (
    AffectedArea,
    AlertRecord,
    AlertType,
    DEFAULT_EMERGENCY_CONTACTS,
    EmergencyContact,
    MANUAL_SOURCE,
    MULTIPLE_AREAS,
    Severity,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class AffectedAreaInput(_CamelModel):
    state: str = Field(..., min_length=1, examples=["Maharashtra"])
    city: str = Field(..., min_length=1, examples=["Mumbai"])
    district: str = ""


class EmergencyContactInput(_CamelModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    type: str = Field("disaster-management")


class ManualAlertCreate(_CamelModel):
    """An admin-authored alert. Source, issue time and verification are set server-side."""

    title: str = Field(..., min_length=1, max_length=300, examples=["Flood warning"])
    description: str = Field(..., min_length=1, examples=["River levels rising."])
    type: AlertType = Field(..., examples=["flood"])
    severity: Severity = Field(..., examples=["high"])
    affected_areas: List[AffectedAreaInput] = Field(default_factory=list, alias="affectedAreas")
    instructions: List[str] = Field(default_factory=list)
    emergency_contacts: List[EmergencyContactInput] = Field(
        default_factory=list, alias="emergencyContacts",
    )
    tags: List[str] = Field(default_factory=list)
    priority: Optional[int] = Field(None, ge=1, le=10)
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    source_url: str = Field("", alias="sourceUrl")

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    def to_record(self, *, now: Optional[datetime] = None) -> AlertRecord:
        issued_at = now or datetime.now(timezone.utc)
        areas = tuple(
            AffectedArea(a.state, a.city, a.district) for a in self.affected_areas
        ) or (MULTIPLE_AREAS,)
        contacts = tuple(
            EmergencyContact(c.name, c.phone, c.type) for c in self.emergency_contacts
        ) or DEFAULT_EMERGENCY_CONTACTS

        return AlertRecord(
            alert_id=uuid.uuid4().hex,
            title=self.title,
            description=self.description,
            type=self.type,
            severity=self.severity,
            source=MANUAL_SOURCE,
            source_url=self.source_url,
            affected_areas=areas,
            issued_at=issued_at,
            expires_at=self.expires_at,
            instructions=tuple(self.instructions) or (DEFAULT_INSTRUCTION,),
            emergency_contacts=contacts,
            tags=tuple(self.tags) or (self.type.value,),
            priority=self.priority or compute_priority(self.type, self.severity),
            is_active=True,
            is_verified=True,
        )
