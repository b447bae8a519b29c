"""
Deep health probe for the alert service.

Components, in report order:

    database      SELECT 1 through the durable store's session factory
    alert_cache   degraded until the first refresh lands, and again when the
                  last refresh is older than two scrape intervals
    web_push      degraded when VAPID keys are missing (dispatch is a no-op)
    disk_space    free space where the SQLite file lives

The overall status is the worst component status. Only ``unhealthy``
turns the HTTP answer into a 503; a degraded service still serves alerts.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import text

if TYPE_CHECKING:
    from backend.app.services import Services

logger = logging.getLogger(__name__)

_started = time.monotonic()
DISK_PATH = "."
LOW_DISK_GB = 1.0
WARN_DISK_GB = 5.0


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.UNHEALTHY: 2}


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            out["message"] = self.message
        if self.details:
            out["details"] = self.details
        return out


@dataclass
class HealthReport:
    version: str
    environment: str
    components: List[ComponentHealth]
    checked_at: datetime
    uptime_seconds: float

    @property
    def status(self) -> HealthStatus:
        if not self.components:
            return HealthStatus.HEALTHY
        return max((c.status for c in self.components), key=lambda s: s.rank)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.checked_at.isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# ── Component checks ──
# Each check fills in status / message / details on the component it is
# handed; the runner owns timing and turns a raised exception into a result.

async def check_database(services: "Services", comp: ComponentHealth) -> None:
    async with services.db.session() as session:
        await session.execute(text("SELECT 1"))
    comp.message = "Connection available"
    comp.details = {"url": services.db.url.split("@")[-1]}


async def check_alert_cache(services: "Services", comp: ComponentHealth) -> None:
    cache, scheduler = services.cache, services.scheduler
    last_update = cache.last_update
    comp.details = {
        "cached": len(cache),
        "last_update": last_update.isoformat() if last_update else None,
        "refresh_count": scheduler.refresh_count,
        "refresh_running": scheduler.is_running,
        "scheduled": scheduler.is_scheduled,
    }

    if last_update is None:
        comp.status = HealthStatus.DEGRADED
        comp.message = "No refresh completed yet"
        return

    age = datetime.now(timezone.utc) - last_update
    comp.details["age_seconds"] = round(age.total_seconds())
    if scheduler.is_scheduled and age > timedelta(seconds=2 * scheduler.interval_seconds):
        comp.status = HealthStatus.DEGRADED
        comp.message = f"Live alerts are stale ({int(age.total_seconds() // 60)} min old)"
    else:
        comp.message = f"{len(cache)} alerts cached"


async def check_push(services: "Services", comp: ComponentHealth) -> None:
    if services.settings.push_configured:
        comp.message = "VAPID keys configured"
    else:
        comp.status = HealthStatus.DEGRADED
        comp.message = "VAPID keys missing, notifications disabled"


async def check_disk_space(services: "Services", comp: ComponentHealth) -> None:
    total, used, free = shutil.disk_usage(DISK_PATH)
    free_gb = free / (1024 ** 3)
    comp.details = {
        "total_gb": round(total / (1024 ** 3), 1),
        "free_gb": round(free_gb, 1),
        "used_pct": round(used / total * 100, 1),
    }
    if free_gb < LOW_DISK_GB:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = f"Low disk space: {free_gb:.1f} GB free"
    elif free_gb < WARN_DISK_GB:
        comp.status = HealthStatus.DEGRADED
        comp.message = f"Disk space warning: {free_gb:.1f} GB free"
    else:
        comp.message = f"{free_gb:.1f} GB free"


Check = Callable[["Services", ComponentHealth], Awaitable[None]]

CHECKS: List[tuple] = [
    ("database", check_database, HealthStatus.UNHEALTHY),
    ("alert_cache", check_alert_cache, HealthStatus.DEGRADED),
    ("web_push", check_push, HealthStatus.DEGRADED),
    ("disk_space", check_disk_space, HealthStatus.DEGRADED),
]


async def _run_check(
    services: "Services", name: str, check: Check, on_error: HealthStatus,
) -> ComponentHealth:
    comp = ComponentHealth(name=name)
    start = time.monotonic()
    try:
        await check(services, comp)
    except Exception as exc:
        logger.warning("Health check %s failed: %s", name, exc)
        comp.status = on_error
        comp.message = str(exc)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(
    services: "Services", checks: Optional[List[tuple]] = None,
) -> HealthReport:
    components = [
        await _run_check(services, name, check, on_error)
        for name, check, on_error in (checks or CHECKS)
    ]
    return HealthReport(
        version=services.settings.APP_VERSION,
        environment=services.settings.ENVIRONMENT,
        components=components,
        checked_at=datetime.now(timezone.utc),
        uptime_seconds=time.monotonic() - _started,
    )
