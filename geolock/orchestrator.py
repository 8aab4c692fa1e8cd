"""
EvaluationOrchestrator: drives the per-device lock state machine.

    NoLock --lock--> Locked(safe) <--> Locked(alert) --unlock--> NoLock

Responsibilities:
- Evaluate a device on every scheduled tick (evaluate_device).
- Serve the on-demand alert listing, notifying any unnotified alert it finds.
- Route lock, unlock, status and token registration to the stores.

Dispatch and indicator activation only ever run for the caller that won
the alert claim, so a scheduled tick and a concurrent listing cannot both
notify the same alert.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Protocol

from .alert_store import AlertRecordStore
from .config import Settings
from .const import SEVERITIES, SEVERITY_LOW
from .dispatcher import NotificationDispatcher
from .errors import ValidationError
from .geofence import evaluate
from .indicator import IndicatorController
from .lock_state import LockStateStore
from .models import (
    AlertRecord,
    AlertSource,
    DispatchOutcome,
    LockRecord,
    LockStatus,
    Position,
    TokenChannel,
    TokenRecord,
    utcnow,
)
from .push import NotificationTransport
from .token_store import TokenRegistry

_LOGGER = logging.getLogger(__name__)


class TelemetrySource(Protocol):
    async def get_latest_position(self, device_id: str) -> Position | None: ...


@dataclasses.dataclass(frozen=True)
class EvaluationResult:
    device_id: str
    evaluated: bool = False
    distance_m: float | None = None
    severity: str | None = None
    exceeded: bool = False
    alert_id: str | None = None
    claimed: bool = False
    dispatch: DispatchOutcome | None = None
    indicator_activated: bool = False


@dataclasses.dataclass(frozen=True)
class AlertListing:
    device_id: str
    lock: LockRecord | None
    alerts: list[AlertRecord]
    high_distance_alerts_count: int
    notifications_sent: int
    indicator_activated: bool

    @property
    def is_locked(self) -> bool:
        return self.lock is not None


def validate_position(position: Position) -> None:
    if not -90.0 <= position.lat <= 90.0:
        raise ValidationError(f"Latitude out of range: {position.lat}")
    if not -180.0 <= position.lon <= 180.0:
        raise ValidationError(f"Longitude out of range: {position.lon}")


def _require_device_id(device_id: str) -> str:
    if not device_id or not str(device_id).strip():
        raise ValidationError("Missing required field: deviceId")
    return str(device_id).strip()


class EvaluationOrchestrator:

    def __init__(
        self,
        settings: Settings,
        locks: LockStateStore,
        alerts: AlertRecordStore,
        tokens: TokenRegistry,
        dispatcher: NotificationDispatcher,
        indicator: IndicatorController,
        telemetry: TelemetrySource,
        transport: NotificationTransport | None = None,
    ) -> None:
        self._settings = settings
        self._locks = locks
        self._alerts = alerts
        self._tokens = tokens
        self._dispatcher = dispatcher
        self._indicator = indicator
        self._telemetry = telemetry
        self._transport = transport

    # ------------------------------------------------------------------
    # Scheduled evaluation
    # ------------------------------------------------------------------

    async def evaluate_device(
        self,
        device_id: str,
        source: AlertSource = AlertSource.SCHEDULED_CHECK,
    ) -> EvaluationResult:
        """
        Run one evaluation tick for device_id.

        Never raises for remote failures: an unreachable telemetry source or
        push transport is logged and the tick ends early or degrades.
        """
        lock = await self._locks.get(device_id)
        if lock is None:
            _LOGGER.debug("Device %s is not locked, nothing to evaluate", device_id)
            return EvaluationResult(device_id)

        try:
            current = await self._telemetry.get_latest_position(device_id)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Failed to fetch latest position of device %s: %s", device_id, exc)
            return EvaluationResult(device_id)
        if current is None:
            _LOGGER.info("No current position for device %s, skipping evaluation", device_id)
            return EvaluationResult(device_id)

        threshold = self._settings.threshold_m
        result = evaluate(lock.reference_position, current, threshold)
        now = utcnow()
        _LOGGER.info(
            "Distance check for %s: %.2fm (threshold %sm, moved=%s)",
            device_id, result.distance_m, threshold, result.exceeded,
        )

        status = LockStatus.LOCKED_ALERT if result.exceeded else LockStatus.LOCKED_SAFE
        if not await self._locks.update_after_evaluation(
            device_id, result.distance_m, status, now, lock.lock_id
        ):
            _LOGGER.info(
                "Device %s was unlocked or relocked during evaluation, result discarded", device_id
            )
            return EvaluationResult(device_id)

        if not result.exceeded:
            return EvaluationResult(device_id, evaluated=True, distance_m=result.distance_m)

        alert = AlertRecord(
            device_id=device_id,
            distance=result.distance_m,
            threshold=threshold,
            severity=result.severity,
            locked_location=lock.reference_position,
            current_location=current,
            locked_at=lock.locked_at,
            detected_at=now,
            source=source,
        )
        alert_id = await self._alerts.create(alert)

        claimed, outcome, indicator_on = await self._claim_and_notify(
            alert_id, alert, now, lock.lock_id
        )
        if claimed:
            _LOGGER.warning(
                "Movement alert for %s: %s (severity %s)",
                device_id, alert.message, alert.severity,
            )

        return EvaluationResult(
            device_id,
            evaluated=True,
            distance_m=result.distance_m,
            severity=result.severity,
            exceeded=True,
            alert_id=alert_id,
            claimed=claimed,
            dispatch=outcome,
            indicator_activated=indicator_on,
        )

    # ------------------------------------------------------------------
    # On-demand listing
    # ------------------------------------------------------------------

    async def list_alerts(
        self,
        device_id: str,
        limit: int = 10,
        severity: str | None = None,
    ) -> AlertListing:
        """
        Return recent alerts plus lock status.

        Any unnotified alert above its threshold with a severity other than
        "low" is claimed and notified on the way.
        """
        device_id = _require_device_id(device_id)
        if severity is not None and severity not in SEVERITIES:
            raise ValidationError(f"Unknown severity: {severity}")
        if limit < 1:
            raise ValidationError(f"Limit must be positive, got {limit}")

        alerts = await self._alerts.list_recent(device_id, limit, severity)
        lock = await self._locks.get(device_id)

        pending = [
            a for a in alerts
            if not a.notified and a.severity != SEVERITY_LOW and a.distance > a.threshold
        ]
        notifications_sent = 0
        indicator_activated = False
        for alert in pending:
            claimed, outcome, indicator_on = await self._claim_and_notify(alert.id, alert, utcnow())
            if claimed:
                notifications_sent += 1
                indicator_activated = indicator_activated or indicator_on
                _LOGGER.info(
                    "Notified pending alert %s for device %s (%.1fm)",
                    alert.id, device_id, alert.distance,
                )

        if notifications_sent:
            alerts = await self._alerts.list_recent(device_id, limit, severity)
            lock = await self._locks.get(device_id)

        return AlertListing(
            device_id=device_id,
            lock=lock,
            alerts=alerts,
            high_distance_alerts_count=len(pending),
            notifications_sent=notifications_sent,
            indicator_activated=indicator_activated,
        )

    # ------------------------------------------------------------------
    # Claim, dispatch, indicator
    # ------------------------------------------------------------------

    async def _claim_and_notify(
        self,
        alert_id: str,
        alert: AlertRecord,
        now: datetime,
        lock_id: str | None = None,
    ) -> tuple[bool, DispatchOutcome | None, bool]:
        """Returns (claimed, dispatch outcome, indicator activated)."""
        if not await self._alerts.try_claim_for_notification(alert_id, now):
            return False, None, False

        dispatch_result, indicator_result = await asyncio.gather(
            self._dispatcher.dispatch(alert, alert_id),
            self._indicator.activate(alert.device_id),
            return_exceptions=True,
        )

        outcome: DispatchOutcome | None = None
        if isinstance(dispatch_result, BaseException):
            _LOGGER.error("Dispatch of alert %s failed: %s", alert_id, dispatch_result)
        else:
            outcome = dispatch_result
            for token in outcome.permanent_failures:
                await self._tokens.deactivate(alert.device_id, token)

        indicator_on = False
        if isinstance(indicator_result, BaseException):
            _LOGGER.error("Indicator activation for alert %s failed: %s", alert_id, indicator_result)
        else:
            indicator_on = indicator_result

        if indicator_on:
            await self._alerts.mark_indicator_activated(alert_id, utcnow())
        await self._locks.increment_alert_count(alert.device_id, now, alert_id, lock_id)
        return True, outcome, indicator_on

    # ------------------------------------------------------------------
    # Lock / unlock / status / tokens
    # ------------------------------------------------------------------

    async def lock_device(
        self,
        device_id: str,
        position: Position,
        locked_at: datetime | None = None,
    ) -> LockRecord:
        device_id = _require_device_id(device_id)
        validate_position(position)
        return await self._locks.lock(device_id, position, locked_at)

    async def unlock_device(self, device_id: str, unlocked_at: datetime | None = None) -> LockRecord:
        """Raises NotFoundError when device_id is not locked."""
        device_id = _require_device_id(device_id)
        return await self._locks.unlock(device_id, unlocked_at)

    async def get_lock_status(self, device_id: str) -> LockRecord | None:
        return await self._locks.get(_require_device_id(device_id))

    async def register_token(
        self,
        device_id: str,
        recipient_token: str,
        channel: TokenChannel = TokenChannel.DIRECT,
        owner: str | None = None,
        platform: str | None = None,
    ) -> TokenRecord:
        device_id = _require_device_id(device_id)
        if not recipient_token or not recipient_token.strip():
            raise ValidationError("Missing required field: token")

        record = await self._tokens.register(device_id, recipient_token, channel, owner, platform)

        if self._transport is not None:
            topic = self._settings.alert_topic(device_id)
            try:
                await self._transport.subscribe_to_topic([recipient_token], topic)
                _LOGGER.info("Subscribed token %s... to topic %s", recipient_token[:20], topic)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Error subscribing token to topic %s: %s", topic, exc)
        return record
