"""
Service wiring — every long-lived object is built once here.

    build_services(settings) → Services
        db           Database (SQLAlchemy async engine)
        cache        AlertCache
        adapters     one SourceAdapter per configured source
        scheduler    RefreshScheduler(adapters, cache)
        city_search  CitySearchPipeline(adapters)
        store        SqlAlertStore
        users        SqlUserDirectory
        transport    WebPushTransport
        dispatcher   NotificationDispatcher(users, store, transport)

main.create_app() builds Services in its lifespan and attaches them to
``app.state.services``; routes reach them through FastAPI dependencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

import httpx

from backend.app.alerts.cache import AlertCache
from backend.app.alerts.channels.web_push import WebPushTransport
from backend.app.alerts.city_search import CitySearchPipeline
from backend.app.alerts.models import AlertSourceConfig
from backend.app.alerts.notifications import NotificationDispatcher, PushTransport
from backend.app.alerts.scheduler import RefreshScheduler
from backend.app.core.config import Settings
from backend.app.core.database import Database
from backend.app.ingestion.sources import DEFAULT_SOURCES, SourceAdapter, build_adapters
from backend.app.store.repositories import SqlAlertStore, SqlUserDirectory

logger = logging.getLogger(__name__)


def select_sources(
    sources: Sequence[AlertSourceConfig], enabled_ids: Optional[Sequence[str]],
) -> List[AlertSourceConfig]:
    """Apply an ENABLED_SOURCES override; unknown ids are logged and ignored."""
    if enabled_ids is None:
        return list(sources)
    known = {s.source_id for s in sources}
    for unknown in sorted(set(enabled_ids) - known):
        logger.warning("ENABLED_SOURCES names unknown source %r", unknown)
    return [replace(s, enabled=s.source_id in enabled_ids) for s in sources]


@dataclass
class Services:
    settings: Settings
    db: Database
    cache: AlertCache
    adapters: List[SourceAdapter]
    scheduler: RefreshScheduler
    city_search: CitySearchPipeline
    store: SqlAlertStore
    users: SqlUserDirectory
    transport: PushTransport
    dispatcher: NotificationDispatcher
    http_client: Optional[httpx.AsyncClient] = None
    owns_http_client: bool = False

    async def startup(self) -> None:
        await self.db.init()
        if self.settings.SCHEDULER_ENABLED:
            await self.scheduler.start()
        else:
            logger.info("Refresh scheduler disabled by configuration")

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        if self.http_client is not None and self.owns_http_client:
            await self.http_client.aclose()
        await self.db.close()


def build_services(
    config: Settings,
    *,
    sources: Sequence[AlertSourceConfig] = DEFAULT_SOURCES,
    http_client: Optional[httpx.AsyncClient] = None,
    transport: Optional[PushTransport] = None,
) -> Services:
    owns_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(follow_redirects=True)

    db = Database(config.DATABASE_URL, echo=config.DATABASE_ECHO)
    cache = AlertCache()
    sources = select_sources(sources, config.ENABLED_SOURCES)
    adapters = build_adapters(sources, client=http_client, user_agent=config.SCRAPER_USER_AGENT)
    store = SqlAlertStore(db)
    users = SqlUserDirectory(db)
    if transport is None:
        transport = WebPushTransport(
            public_key=config.VAPID_PUBLIC_KEY,
            private_key=config.VAPID_PRIVATE_KEY,
            email=config.VAPID_EMAIL,
            timeout_seconds=config.PUSH_TIMEOUT_SECONDS,
        )

    return Services(
        settings=config,
        db=db,
        cache=cache,
        adapters=adapters,
        scheduler=RefreshScheduler(
            adapters,
            cache,
            interval_seconds=config.SCRAPE_INTERVAL_SECONDS,
            warmup_seconds=config.SCRAPE_WARMUP_SECONDS,
            include_demo_alerts=config.INCLUDE_DEMO_ALERTS,
        ),
        city_search=CitySearchPipeline(adapters),
        store=store,
        users=users,
        transport=transport,
        dispatcher=NotificationDispatcher(users, store, transport),
        http_client=http_client,
        owns_http_client=owns_client,
    )
