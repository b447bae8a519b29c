"""
FastAPI routes: live alerts, manual refresh, city search, admin alerts.

Live (served from the in-memory cache):
    GET  /api/v1/alerts                       — filtered, paginated list
    GET  /api/v1/alerts/stats/overview        — counts by severity/type/source
    GET  /api/v1/alerts/city/{city_name}      — cache query for one city
    GET  /api/v1/alerts/search/{city_name}    — on-demand search (bypasses cache)
    POST /api/v1/alerts/scrape                — manual refresh (409 when busy)
    GET  /api/v1/alerts/scrape/status         — scheduler status

Durable (admin-authored store):
    POST   /api/v1/alerts                          — create + notify if high/critical
    GET    /api/v1/alerts/{alert_id}               — detail
    POST   /api/v1/alerts/{alert_id}/verify        — mark verified
    DELETE /api/v1/alerts/{alert_id}               — deactivate
    POST   /api/v1/alerts/{alert_id}/test-notification — re-dispatch push
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query, Request

from backend.app.alerts.cache import AlertCache, AlertQuery, DEFAULT_LIMIT
from backend.app.alerts.city_search import CitySearchPipeline
from backend.app.alerts.models import AlertType, Severity
from backend.app.alerts.notifications import NotificationDispatcher
from backend.app.alerts.scheduler import RefreshScheduler
from backend.app.api.schemas import ManualAlertCreate
from backend.app.core.errors import NotFoundError
from backend.app.services import Services
from backend.app.store.repositories import SqlAlertStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])

NOTIFY_ON_CREATE = frozenset({Severity.HIGH, Severity.CRITICAL})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_cache(services: Services = Depends(get_services)) -> AlertCache:
    return services.cache


def get_scheduler(services: Services = Depends(get_services)) -> RefreshScheduler:
    return services.scheduler


def get_city_search(services: Services = Depends(get_services)) -> CitySearchPipeline:
    return services.city_search


def get_store(services: Services = Depends(get_services)) -> SqlAlertStore:
    return services.store


def get_dispatcher(services: Services = Depends(get_services)) -> NotificationDispatcher:
    return services.dispatcher


def _live_response(cache: AlertCache, query: AlertQuery) -> Dict[str, Any]:
    body = cache.query(query).to_dict()
    body["isLive"] = True
    return body


# ---------------------------------------------------------------------------
# Live alerts
# ---------------------------------------------------------------------------

@router.get("")
@router.get("/", include_in_schema=False)
async def list_alerts(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=100),
    type: Optional[AlertType] = Query(None),
    severity: Optional[Severity] = Query(None),
    state: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    cache: AlertCache = Depends(get_cache),
) -> Dict[str, Any]:
    """Live alerts from the current cache snapshot."""
    return _live_response(cache, AlertQuery(
        type=type.value if type else None,
        severity=severity.value if severity else None,
        state=state,
        city=city,
        page=page,
        limit=limit,
    ))


@router.get("/stats/overview")
async def stats_overview(cache: AlertCache = Depends(get_cache)) -> Dict[str, Any]:
    return cache.stats()


@router.get("/city/{city_name}")
async def city_alerts(
    city_name: str = Path(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=100),
    type: Optional[AlertType] = Query(None),
    severity: Optional[Severity] = Query(None),
    cache: AlertCache = Depends(get_cache),
) -> Dict[str, Any]:
    body = _live_response(cache, AlertQuery(
        type=type.value if type else None,
        severity=severity.value if severity else None,
        city=city_name,
        page=page,
        limit=limit,
    ))
    body["city"] = city_name
    return body


@router.get("/search/{city_name}")
async def search_city(
    city_name: str = Path(..., min_length=1),
    pipeline: CitySearchPipeline = Depends(get_city_search),
) -> Dict[str, Any]:
    """Fresh fetch for one city. Never touches the shared cache."""
    result = await pipeline.search(city_name)
    return result.to_dict()


@router.post("/scrape")
async def trigger_scrape(
    scheduler: RefreshScheduler = Depends(get_scheduler),
) -> Dict[str, Any]:
    result = await scheduler.trigger()
    return {"message": "Live alerts refreshed successfully", "result": result.to_dict()}


@router.get("/scrape/status")
async def scrape_status(
    scheduler: RefreshScheduler = Depends(get_scheduler),
) -> Dict[str, Any]:
    return {"status": scheduler.status()}


# ---------------------------------------------------------------------------
# Durable (admin-authored) alerts
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
@router.post("/", status_code=201, include_in_schema=False)
async def create_alert(
    body: ManualAlertCreate,
    store: SqlAlertStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    record = await store.create(body.to_record())

    if record.severity not in NOTIFY_ON_CREATE:
        return {"message": "Alert created successfully", "alert": record.to_dict()}

    result = await dispatcher.dispatch(record)
    stored = await store.get(record.alert_id) or record
    return {
        "message": "Alert created and notifications sent successfully",
        "alert": stored.to_dict(),
        "notifications": result.to_dict(),
    }


async def _require(store: SqlAlertStore, alert_id: str):
    record = await store.get(alert_id)
    if record is None:
        raise NotFoundError("Alert", alert_id=alert_id)
    return record


@router.get("/{alert_id}")
async def get_alert(
    alert_id: str,
    store: SqlAlertStore = Depends(get_store),
) -> Dict[str, Any]:
    record = await _require(store, alert_id)
    return {"alert": record.to_dict()}


@router.post("/{alert_id}/verify")
async def verify_alert(
    alert_id: str,
    store: SqlAlertStore = Depends(get_store),
) -> Dict[str, Any]:
    await _require(store, alert_id)
    await store.verify(alert_id)
    record = await _require(store, alert_id)
    return {"message": "Alert verified successfully", "alert": record.to_dict()}


@router.delete("/{alert_id}")
async def deactivate_alert(
    alert_id: str,
    store: SqlAlertStore = Depends(get_store),
) -> Dict[str, Any]:
    await _require(store, alert_id)
    await store.deactivate(alert_id)
    return {"message": "Alert deactivated successfully"}


@router.post("/{alert_id}/test-notification")
async def test_notification(
    alert_id: str,
    store: SqlAlertStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    record = await _require(store, alert_id)
    result = await dispatcher.dispatch(record)
    return {"message": "Test notifications sent", "result": result.to_dict()}
