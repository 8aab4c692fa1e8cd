"""
aiohttp routes exposing lock, unlock, token registration, alert listing and
lock status.

Handlers only translate between JSON and the orchestrator; every response
has a boolean "success" and failures carry a human-readable "error".
"""
from __future__ import annotations

import logging

import pydantic
from aiohttp import web

from .config import Settings
from .const import VERSION
from .errors import NotFoundError, ValidationError
from .models import AlertRecord, to_iso
from .orchestrator import EvaluationOrchestrator
from .schemas import AlertsQuery, LockRequest, StatusQuery, TokenRequest, UnlockRequest

_LOGGER = logging.getLogger(__name__)

ORCHESTRATOR_KEY = web.AppKey("orchestrator", EvaluationOrchestrator)
SETTINGS_KEY = web.AppKey("settings", Settings)


def _error(status: int, message: str, details: str | None = None) -> web.Response:
    body = {"success": False, "error": message}
    if details:
        body["details"] = details
    return web.json_response(body, status=status)


def _format_validation_error(exc: pydantic.ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"])
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def _alert_to_json(alert: AlertRecord) -> dict:
    return {"id": alert.id, **alert.to_document()}


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except pydantic.ValidationError as exc:
        return _error(400, "Invalid request", _format_validation_error(exc))
    except ValidationError as exc:
        return _error(400, str(exc))
    except NotFoundError as exc:
        return _error(404, str(exc))
    except web.HTTPException:
        raise
    except Exception as exc:  # noqa: BLE001
        _LOGGER.exception("Unhandled error in %s %s", request.method, request.path)
        return _error(500, "Internal error", str(exc))


async def _json_body(request: web.Request) -> dict:
    try:
        body = await request.json()
    except ValueError as exc:
        raise ValidationError("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _device_or_default(request: web.Request, device_id: str | None) -> str:
    device_id = device_id or request.app[SETTINGS_KEY].default_device_id
    if not device_id:
        raise ValidationError("Missing required query parameter: deviceId")
    return device_id


async def health(request: web.Request) -> web.Response:
    return web.json_response({"success": True, "version": VERSION})


async def post_lock(request: web.Request) -> web.Response:
    payload = LockRequest.model_validate(await _json_body(request))
    record = await request.app[ORCHESTRATOR_KEY].lock_device(
        payload.device_id, payload.location.to_position(), payload.locked_at
    )
    return web.json_response({
        "success": True,
        "message": "Location locked successfully",
        "deviceId": record.device_id,
        "location": record.reference_position.to_document(),
        "lockedAt": to_iso(record.locked_at),
    })


async def post_unlock(request: web.Request) -> web.Response:
    payload = UnlockRequest.model_validate(await _json_body(request))
    previous = await request.app[ORCHESTRATOR_KEY].unlock_device(
        payload.device_id, payload.unlocked_at
    )
    return web.json_response({
        "success": True,
        "message": "Location unlocked successfully",
        "deviceId": previous.device_id,
        "previousLock": previous.to_document(),
    })


async def post_token(request: web.Request) -> web.Response:
    payload = TokenRequest.model_validate(await _json_body(request))
    record = await request.app[ORCHESTRATOR_KEY].register_token(
        payload.device_id,
        payload.token,
        payload.token_channel,
        payload.owner,
        payload.platform,
    )
    return web.json_response({
        "success": True,
        "message": "Push token registered successfully",
        "deviceId": record.device_id,
        "channel": record.channel.value,
        "topic": request.app[SETTINGS_KEY].alert_topic(record.device_id),
    })


async def get_alerts(request: web.Request) -> web.Response:
    query = AlertsQuery.model_validate(dict(request.query))
    device_id = _device_or_default(request, query.device_id)
    listing = await request.app[ORCHESTRATOR_KEY].list_alerts(
        device_id, query.limit, query.severity
    )
    lock = listing.lock
    return web.json_response({
        "success": True,
        "deviceId": device_id,
        "isLocked": listing.is_locked,
        "alertCount": len(listing.alerts),
        "highDistanceAlertsCount": listing.high_distance_alerts_count,
        "currentDistance": (lock.current_distance or 0) if lock else 0,
        "lastAlertAt": to_iso(lock.last_alert_at) if lock else None,
        "alerts": [_alert_to_json(alert) for alert in listing.alerts],
        "notificationsSent": listing.notifications_sent,
        "indicatorActivated": listing.indicator_activated,
    })


async def get_lock(request: web.Request) -> web.Response:
    query = StatusQuery.model_validate(dict(request.query))
    device_id = _device_or_default(request, query.device_id)
    lock = await request.app[ORCHESTRATOR_KEY].get_lock_status(device_id)
    if lock is None:
        return web.json_response({
            "success": True,
            "isLocked": False,
            "deviceId": device_id,
            "message": "No locked location found for this device",
        })
    return web.json_response({
        "success": True,
        "isLocked": True,
        "deviceId": device_id,
        "lockedLocation": lock.to_document(),
        "lockedAt": to_iso(lock.locked_at),
        "currentDistance": lock.current_distance or 0,
        "lastAlertAt": to_iso(lock.last_alert_at),
        "alertCount": lock.alert_count,
        "status": lock.status.value,
    })


def create_app(settings: Settings, orchestrator: EvaluationOrchestrator) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[SETTINGS_KEY] = settings
    app[ORCHESTRATOR_KEY] = orchestrator
    app.router.add_get("/health", health)
    app.router.add_post("/lock", post_lock)
    app.router.add_get("/lock", get_lock)
    app.router.add_post("/unlock", post_unlock)
    app.router.add_post("/tokens", post_token)
    app.router.add_get("/alerts", get_alerts)
    return app
