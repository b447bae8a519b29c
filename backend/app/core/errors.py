"""
Error types for the alert service and the FastAPI handlers that render them.

Where each error is handled:

    SourceFetchError           recovered inside the source adapters
                               (alternate URL, then fallback list)
    ParseError                 one listing item is skipped, the rest survive
    NotificationDeliveryError  classified per recipient by the dispatcher
    RefreshBusyError           surfaced to manual refresh callers as 409
    NotFoundError /
    ValidationError            surfaced by the HTTP routes

Every rendered error has the same body:

    {"error": {"code": "REFRESH_BUSY", "message": "...", "status": 409,
               "details": {...}, "path": "...", "method": "..."}}

``path`` and ``method`` are only added outside production.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class BeaconError(Exception):
    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "An unexpected error occurred", **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = {k: v for k, v in details.items() if v is not None}

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "code": self.error_code,
            "message": self.message,
            "status": self.status_code,
        }
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(BeaconError):
    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, **identifiers: Any):
        super().__init__(f"{resource} not found", resource=resource, **identifiers)


class ValidationError(BeaconError):
    status_code = 422
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        super().__init__(message, field=field, **details)


class SourceFetchError(BeaconError):
    """Upstream source unreachable, timed out or answered non-2xx."""

    status_code = 502
    error_code = "SOURCE_FETCH_ERROR"

    def __init__(self, source_id: str, message: str = "", **details: Any):
        super().__init__(
            f"Source '{source_id}' fetch failed: {message}", source_id=source_id, **details,
        )
        self.source_id = source_id


class ParseError(BeaconError):
    """One upstream item could not be turned into a candidate."""

    status_code = 422
    error_code = "PARSE_ERROR"

    def __init__(self, source_id: str, message: str = ""):
        super().__init__(f"Could not parse content from '{source_id}': {message}", source_id=source_id)
        self.source_id = source_id


class RefreshBusyError(BeaconError):
    status_code = 409
    error_code = "REFRESH_BUSY"

    def __init__(self, message: str = "Scraping is already in progress"):
        super().__init__(message)


class NotificationDeliveryError(BeaconError):
    """Push delivery to one recipient failed.

    ``gone`` marks a permanently invalid subscription (HTTP 404/410 from
    the push service); the dispatcher clears the subscription in that case.
    """

    status_code = 500
    error_code = "NOTIFICATION_DELIVERY_ERROR"

    def __init__(self, user_id: str, message: str = "", *, gone: bool = False):
        super().__init__(f"Notification to user {user_id} failed: {message}", user_id=user_id, gone=gone)
        self.user_id = user_id
        self.gone = gone


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI, config: Optional[Settings] = None) -> None:
    config = config or default_settings

    def respond(request: Request, status_code: int, body: Dict[str, Any]) -> JSONResponse:
        if not config.is_production:
            body["path"] = request.url.path
            body["method"] = request.method
        return JSONResponse(status_code=status_code, content={"error": body})

    @app.exception_handler(BeaconError)
    async def handle_beacon_error(request: Request, exc: BeaconError):
        logger.log(
            logging.ERROR if exc.status_code >= 500 else logging.WARNING,
            "%s on %s %s: %s",
            exc.error_code, request.method, request.url.path, exc.message,
        )
        return respond(request, exc.status_code, exc.to_body())

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError on %s: %s", request.url.path, exc)
        return respond(request, 422, ValidationError(str(exc)).to_body())

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        if config.DEBUG:
            err = BeaconError(str(exc), traceback=traceback.format_exc().splitlines())
        else:
            err = BeaconError("Internal server error")
        return respond(request, 500, err.to_body())
