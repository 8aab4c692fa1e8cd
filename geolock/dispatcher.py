"""
NotificationDispatcher: fans a movement alert out to push recipients.

Every dispatch attempts both channels:
    direct: one batched multicast to all active direct-channel tokens
    topic:  one broadcast to the device alert topic
A failure on one channel never prevents the other. Failing direct tokens are
written to the quarantine collection for later cleanup and stay active;
tokens the transport reports as permanently invalid are handed back in the
outcome so the caller can deactivate them. Every attempt is recorded as a
DeliverySummary linked to the alert.
Nothing is retried.
"""
from __future__ import annotations

import logging

from .alert_store import AlertRecordStore
from .config import Settings
from .const import (
    ALERT_TYPE_MOVEMENT,
    FAILED_TOKENS_COLLECTION,
    SUMMARY_COLLECTION,
)
from .models import (
    AlertRecord,
    DeliverySummary,
    DispatchOutcome,
    SendResult,
    TokenChannel,
    to_iso,
    utcnow,
)
from .push import NotificationTransport, PushPayload
from .store.base import DocumentStore
from .token_store import TokenRegistry

_LOGGER = logging.getLogger(__name__)

NOTIFICATION_TITLE = "⚠️ Device Movement Alert"


def build_payload(alert: AlertRecord) -> PushPayload:
    """Notification content shared by both channels."""
    return PushPayload(
        title=NOTIFICATION_TITLE,
        body=f"Your device has moved {alert.distance:.1f}m away from the locked location!",
        data={
            "alertType": ALERT_TYPE_MOVEMENT,
            "deviceId": alert.device_id,
            "distance": str(alert.distance),
            "severity": alert.severity,
            "timestamp": to_iso(alert.detected_at),
            "lockedLat": str(alert.locked_location.lat),
            "lockedLon": str(alert.locked_location.lon),
            "currentLat": str(alert.current_location.lat),
            "currentLon": str(alert.current_location.lon),
            "clickAction": "OPEN_DEVICE_LOCATION",
        },
    )


class NotificationDispatcher:

    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        tokens: TokenRegistry,
        alerts: AlertRecordStore,
        transport: NotificationTransport,
    ) -> None:
        self._settings = settings
        self._store = store
        self._tokens = tokens
        self._alerts = alerts
        self._transport = transport

    async def dispatch(self, alert: AlertRecord, alert_id: str | None = None) -> DispatchOutcome:
        """Send alert on every channel and persist the delivery summary."""
        alert_id = alert_id or alert.id
        payload = build_payload(alert)
        topic = self._settings.alert_topic(alert.device_id)

        records = await self._tokens.active_tokens(alert.device_id)
        direct_tokens = [r.recipient_token for r in records if r.channel == TokenChannel.DIRECT]

        direct_sent = False
        direct_success_count = 0
        failed_tokens: list[str] = []
        permanent_failures: list[str] = []

        if not records:
            _LOGGER.info(
                "No push tokens registered for device %s, using topic broadcast only",
                alert.device_id,
            )
        elif direct_tokens:
            results = await self._send_direct(direct_tokens, payload)
            for token, result in zip(direct_tokens, results):
                if result.success:
                    direct_success_count += 1
                else:
                    failed_tokens.append(token)
                    if result.permanent:
                        permanent_failures.append(token)
                    _LOGGER.warning(
                        "Failed to send to token %s...: %s%s",
                        token[:20], result.error,
                        " (permanent)" if result.permanent else "",
                    )
            direct_sent = direct_success_count > 0
            if failed_tokens:
                await self._quarantine(alert.device_id, alert_id, failed_tokens)
            if direct_sent:
                await self._tokens.touch(
                    alert.device_id, [t for t in direct_tokens if t not in failed_tokens]
                )

        topic_sent = await self._send_topic(topic, payload)

        summary = DeliverySummary(
            alert_id=alert_id,
            device_id=alert.device_id,
            direct_token_count=len(direct_tokens),
            direct_success_count=direct_success_count,
            direct_failure_count=len(direct_tokens) - direct_success_count,
            topic_sent=topic_sent,
            direct_sent=direct_sent,
            failed_tokens=failed_tokens,
        )
        summary_id = await self._store.add(SUMMARY_COLLECTION, summary.to_document())
        if alert_id is not None:
            await self._alerts.link_delivery_summary(alert_id, summary_id)

        outcome = DispatchOutcome(
            topic_sent=topic_sent,
            direct_sent=direct_sent,
            failed_tokens=failed_tokens,
            summary_id=summary_id,
            permanent_failures=permanent_failures,
        )
        if not outcome.success:
            _LOGGER.warning(
                "Movement alert %s for device %s was not delivered on any channel",
                alert_id, alert.device_id,
            )
        return outcome

    async def _send_direct(self, tokens: list[str], payload: PushPayload) -> list[SendResult]:
        try:
            results = await self._transport.send_multicast(tokens, payload)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Error sending multicast notification: %s", exc)
            return [SendResult(success=False, error=str(exc)) for _ in tokens]
        if len(results) != len(tokens):
            _LOGGER.error(
                "Multicast returned %s results for %s tokens", len(results), len(tokens)
            )
            return [SendResult(success=False, error="result count mismatch") for _ in tokens]
        return results

    async def _send_topic(self, topic: str, payload: PushPayload) -> bool:
        try:
            result = await self._transport.send_to_topic(topic, payload)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Error sending topic notification to %s: %s", topic, exc)
            return False
        if not result.success:
            _LOGGER.error("Topic notification to %s failed: %s", topic, result.error)
        return result.success

    async def _quarantine(self, device_id: str, alert_id: str | None, tokens: list[str]) -> None:
        await self._store.add(FAILED_TOKENS_COLLECTION, {
            "deviceId": device_id,
            "alertId": alert_id,
            "failedTokens": list(tokens),
            "recordedAt": to_iso(utcnow()),
        })
