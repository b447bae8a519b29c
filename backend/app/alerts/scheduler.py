"""
scheduler.py — Periodic and on-demand live alert refresh.

Timeline:

    start() ── warm-up (60 s) ── refresh ── interval (30 min) ── refresh ── …
                                    ▲
                 trigger() ─────────┘  runs the same refresh, or raises
                                       RefreshBusyError if one is in flight

At most one refresh runs at any time. The running flag is checked and set
under a lock, so two near-simultaneous triggers cannot both start. A
scheduled tick that finds a refresh running is skipped, not queued. A
refresh that has started always runs to completion; stop() and a
disconnecting caller only stop waiting for it.

A refresh cycle:
    1. fetch from every enabled adapter concurrently (each bounded by its
       own timeout, failures isolated per source)
    2. normalize every surviving candidate
    3. append demonstration alerts when enabled
    4. AlertCache.replace(...) with the new generation
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from backend.app.alerts.cache import AlertCache
from backend.app.alerts.classifier import normalize_all
from backend.app.alerts.models import AlertRecord
from backend.app.core.errors import RefreshBusyError
from backend.app.core.logging_config import bind_context
from backend.app.ingestion import demo_alerts
from backend.app.ingestion.sources import SourceAdapter, fetch_all

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 30 * 60
DEFAULT_WARMUP_SECONDS = 60


@dataclass(frozen=True)
class RefreshResult:
    records: Tuple[AlertRecord, ...]
    started_at: datetime
    duration_ms: float = 0.0

    @property
    def total(self) -> int:
        return len(self.records)

    def to_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "alerts": [r.to_dict() for r in self.records]}


class RefreshScheduler:
    """
    Drives refreshes of one AlertCache from a set of adapters.

    Usage:
        scheduler = RefreshScheduler(adapters, cache)
        await scheduler.start()
        result = await scheduler.trigger()   # may raise RefreshBusyError
        await scheduler.stop()
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        cache: AlertCache,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        warmup_seconds: float = DEFAULT_WARMUP_SECONDS,
        include_demo_alerts: bool = True,
    ):
        self.adapters = list(adapters)
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.warmup_seconds = warmup_seconds
        self.include_demo_alerts = include_demo_alerts

        self.refresh_count = 0
        self.last_run: Optional[datetime] = None

        self._flag_lock = threading.Lock()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    # ── Running flag ──

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    def _try_acquire(self) -> bool:
        with self._flag_lock:
            if self._running:
                return False
            self._running = True
            return True

    def _release(self) -> None:
        with self._flag_lock:
            self._running = False

    # ── Lifecycle ──

    async def start(self) -> None:
        """Start the periodic loop (idempotent)."""
        if self.is_scheduled:
            return
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Refresh scheduler started (warm-up %ss, interval %ss)",
            self.warmup_seconds, self.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the periodic loop. A refresh already running is left to finish."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Refresh scheduler stopped")

    async def _run_loop(self) -> None:
        await asyncio.sleep(self.warmup_seconds)
        while True:
            try:
                await asyncio.shield(self.tick())
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled refresh failed")
            await asyncio.sleep(self.interval_seconds)

    # ── Entry points ──

    async def tick(self) -> Optional[RefreshResult]:
        """Scheduled refresh: skipped when one is already running."""
        if not self._try_acquire():
            logger.info("Refresh already in progress, skipping scheduled run")
            return None
        return await self._refresh_and_release("scheduled")

    async def trigger(self) -> RefreshResult:
        """Manual refresh: fails fast with RefreshBusyError when one is running."""
        if not self._try_acquire():
            raise RefreshBusyError()
        return await asyncio.shield(self._refresh_and_release("manual"))

    async def _refresh_and_release(self, kind: str) -> RefreshResult:
        try:
            return await self._refresh(kind)
        finally:
            self._release()

    async def _refresh(self, kind: str) -> RefreshResult:
        bind_context(refresh=self.refresh_count + 1, trigger=kind)
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        logger.info("Starting live alert refresh from %d sources", len(self.adapters))

        pairs = await fetch_all(self.adapters)
        if self.include_demo_alerts:
            pairs.extend(demo_alerts.demo_alerts(started_at))

        records = normalize_all(pairs, ingested_at=started_at)
        self.cache.replace(records)

        self.refresh_count += 1
        self.last_run = started_at
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Refresh #%d complete: %d alerts in %.0fms",
            self.refresh_count, len(records), duration_ms,
            extra={"alert_count": len(records), "duration_ms": duration_ms},
        )
        return RefreshResult(
            records=tuple(records), started_at=started_at, duration_ms=duration_ms,
        )

    # ── Introspection ──

    def status(self) -> Dict[str, Any]:
        return {
            "isRunning": self.is_running,
            "sourceConfigs": {a.source_id: a.config.to_dict() for a in self.adapters},
            "lastRun": self.last_run.isoformat() if self.last_run else None,
            "cachedCount": len(self.cache),
            "refreshCount": self.refresh_count,
            "scheduled": self.is_scheduled,
        }
