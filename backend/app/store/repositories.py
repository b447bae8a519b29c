"""
SQLAlchemy implementations of the durable store contracts.

    SqlAlertStore     — admin-authored alerts (get, create, verify,
                        deactivate, notificationsSent write-back)
    SqlUserDirectory  — recipient lookup and subscription clearing
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import or_, select, update

from backend.app.alerts.models import (
    AffectedArea,
    AlertRecord,
    AlertType,
    EmergencyContact,
    Recipient,
    Severity,
)
from backend.app.core.database import Database
from backend.app.store.models import AlertRow, UserRow

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def row_to_record(row: AlertRow) -> AlertRecord:
    return AlertRecord(
        alert_id=row.id,
        title=row.title,
        description=row.description,
        type=AlertType(row.type),
        severity=Severity(row.severity),
        source=row.source,
        source_url=row.source_url or "",
        affected_areas=tuple(
            AffectedArea(a.get("state", ""), a.get("city", ""), a.get("district", ""))
            for a in (row.affected_areas or [])
        ),
        issued_at=_aware(row.issued_at),
        expires_at=_aware(row.expires_at),
        instructions=tuple(row.instructions or ()),
        emergency_contacts=tuple(
            EmergencyContact(c["name"], c["phone"], c.get("type", ""))
            for c in (row.emergency_contacts or [])
        ),
        tags=tuple(row.tags or ()),
        priority=row.priority,
        is_active=row.is_active,
        is_verified=row.is_verified,
        notifications_sent=row.notifications_sent,
        raw_data=dict(row.raw_data or {}),
    )


def record_to_row(record: AlertRecord) -> AlertRow:
    return AlertRow(
        id=record.alert_id,
        title=record.title,
        description=record.description,
        type=record.type.value,
        severity=record.severity.value,
        source=record.source,
        source_url=record.source_url,
        affected_areas=[a.to_dict() for a in record.affected_areas],
        issued_at=record.issued_at,
        expires_at=record.expires_at,
        instructions=list(record.instructions),
        emergency_contacts=[c.to_dict() for c in record.emergency_contacts],
        tags=list(record.tags),
        priority=record.priority,
        is_active=record.is_active,
        is_verified=record.is_verified,
        notifications_sent=record.notifications_sent,
        raw_data=dict(record.raw_data),
    )


class SqlAlertStore:
    def __init__(self, db: Database):
        self.db = db

    async def create(self, record: AlertRecord) -> AlertRecord:
        async with self.db.session() as session:
            session.add(record_to_row(record))
        logger.info("Stored alert %s", record.alert_id, extra={"alert_id": record.alert_id})
        return record

    async def get(self, alert_id: str) -> Optional[AlertRecord]:
        async with self.db.session() as session:
            row = await session.get(AlertRow, alert_id)
            return row_to_record(row) if row else None

    async def _set(self, alert_id: str, **values: Any) -> bool:
        async with self.db.session() as session:
            result = await session.execute(
                update(AlertRow).where(AlertRow.id == alert_id).values(**values)
            )
            return result.rowcount > 0

    async def set_notifications_sent(self, alert_id: str, sent: int) -> bool:
        return await self._set(alert_id, notifications_sent=sent)

    async def verify(self, alert_id: str) -> bool:
        return await self._set(alert_id, is_verified=True)

    async def deactivate(self, alert_id: str) -> bool:
        return await self._set(alert_id, is_active=False)


class SqlUserDirectory:
    def __init__(self, db: Database):
        self.db = db

    async def find_alert_recipients(
        self,
        states: Sequence[str],
        cities: Sequence[str],
    ) -> List[Recipient]:
        """Active, opted-in users with a subscription whose state or city matches."""
        location = []
        if states:
            location.append(UserRow.state.in_(list(states)))
        if cities:
            location.append(UserRow.city.in_(list(cities)))
        if not location:
            return []

        stmt = select(UserRow).where(
            or_(*location),
            UserRow.notify_alerts.is_(True),
            UserRow.is_active.is_(True),
            UserRow.push_subscription.is_not(None),
        )
        async with self.db.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [
                Recipient(
                    user_id=row.id,
                    subscription=row.push_subscription,
                    state=row.state,
                    city=row.city,
                )
                for row in rows
            ]

    async def clear_subscription(self, user_id: str) -> None:
        async with self.db.session() as session:
            await session.execute(
                update(UserRow).where(UserRow.id == user_id).values(push_subscription=None)
            )

    async def add_user(
        self,
        *,
        email: str,
        state: str = "",
        city: str = "",
        name: str = "",
        push_subscription: Optional[Dict[str, Any]] = None,
        notify_alerts: bool = True,
        is_active: bool = True,
    ) -> str:
        row = UserRow(
            email=email,
            name=name,
            state=state,
            city=city,
            push_subscription=push_subscription,
            notify_alerts=notify_alerts,
            is_active=is_active,
        )
        async with self.db.session() as session:
            session.add(row)
            await session.flush()
            return row.id

    async def get_subscription(self, user_id: str) -> Optional[Dict[str, Any]]:
        async with self.db.session() as session:
            row = await session.get(UserRow, user_id)
            return row.push_subscription if row else None
