"""
Domain models for geolock.

Pure data classes for lock state, movement alerts, recipient tokens and
delivery summaries. They carry no store, HTTP or push dependencies; each
record converts to and from the camelCase document shape persisted in the
document store.
"""
from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from enum import Enum

from .const import ALERT_TYPE_MOVEMENT


class LockStatus(str, Enum):
    LOCKED = "locked"              # freshly locked, not evaluated yet
    LOCKED_SAFE = "locked_safe"
    LOCKED_ALERT = "locked_alert"
    UNLOCKED = "unlocked"          # never persisted: an unlocked device has no record


class AlertSource(str, Enum):
    SCHEDULED_CHECK = "scheduled_check"
    ON_DEMAND_CHECK = "on_demand_check"


class TokenChannel(str, Enum):
    TOPIC = "topic"
    DIRECT = "direct"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def from_iso(value) -> datetime | None:
    """Parse an ISO 8601 string (or pass through a datetime) as aware UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclasses.dataclass(frozen=True)
class Position:
    lat: float
    lon: float
    uncertainty: float | None = None
    service_type: str | None = None

    def to_document(self) -> dict:
        doc = {"lat": self.lat, "lon": self.lon}
        if self.uncertainty is not None:
            doc["uncertainty"] = self.uncertainty
        if self.service_type is not None:
            doc["serviceType"] = self.service_type
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> Position:
        return cls(
            lat=float(doc["lat"]),
            lon=float(doc["lon"]),
            uncertainty=doc.get("uncertainty"),
            service_type=doc.get("serviceType"),
        )


@dataclasses.dataclass(frozen=True)
class LockRecord:
    """
    Lock state of a single device.

    Exists only while the device is locked. Always replace via
    dataclasses.replace(); the store owns the persisted copy.
    """

    device_id: str
    reference_position: Position
    locked_at: datetime
    status: LockStatus = LockStatus.LOCKED
    current_distance: float | None = None
    last_checked_at: datetime | None = None
    last_alert_at: datetime | None = None
    last_alert_id: str | None = None
    alert_count: int = 0
    # Changes on every lock and relock; evaluation writes are conditional on it
    lock_id: str | None = None

    def to_document(self) -> dict:
        return {
            "deviceId": self.device_id,
            "location": self.reference_position.to_document(),
            "lockedAt": to_iso(self.locked_at),
            "status": self.status.value,
            "currentDistance": self.current_distance,
            "lastCheckedAt": to_iso(self.last_checked_at),
            "lastAlertAt": to_iso(self.last_alert_at),
            "lastAlertId": self.last_alert_id,
            "alertCount": self.alert_count,
            "lockId": self.lock_id,
        }

    @classmethod
    def from_document(cls, doc: dict) -> LockRecord:
        return cls(
            device_id=doc["deviceId"],
            reference_position=Position.from_document(doc["location"]),
            locked_at=from_iso(doc["lockedAt"]),
            status=LockStatus(doc.get("status") or LockStatus.LOCKED.value),
            current_distance=doc.get("currentDistance"),
            last_checked_at=from_iso(doc.get("lastCheckedAt")),
            last_alert_at=from_iso(doc.get("lastAlertAt")),
            last_alert_id=doc.get("lastAlertId"),
            alert_count=int(doc.get("alertCount") or 0),
            lock_id=doc.get("lockId"),
        )


@dataclasses.dataclass(frozen=True)
class AlertRecord:
    """A single detected movement event. Append-only."""

    device_id: str
    distance: float
    threshold: float
    severity: str
    locked_location: Position
    current_location: Position
    locked_at: datetime
    detected_at: datetime
    source: AlertSource
    notified: bool = False
    notified_at: datetime | None = None
    indicator_activated: bool = False
    indicator_activated_at: datetime | None = None
    delivery_summary_id: str | None = None
    id: str | None = None

    @property
    def message(self) -> str:
        return f"Device moved {self.distance:.1f}m away from locked position"

    def to_document(self) -> dict:
        return {
            "deviceId": self.device_id,
            "alertType": ALERT_TYPE_MOVEMENT,
            "distance": self.distance,
            "threshold": self.threshold,
            "severity": self.severity,
            "lockedLocation": self.locked_location.to_document(),
            "currentLocation": self.current_location.to_document(),
            "lockedAt": to_iso(self.locked_at),
            "detectedAt": to_iso(self.detected_at),
            "source": self.source.value,
            "message": self.message,
            "notified": self.notified,
            "notifiedAt": to_iso(self.notified_at),
            "indicatorActivated": self.indicator_activated,
            "indicatorActivatedAt": to_iso(self.indicator_activated_at),
            "deliverySummaryId": self.delivery_summary_id,
        }

    @classmethod
    def from_document(cls, doc: dict, doc_id: str | None = None) -> AlertRecord:
        return cls(
            device_id=doc["deviceId"],
            distance=float(doc["distance"]),
            threshold=float(doc["threshold"]),
            severity=doc["severity"],
            locked_location=Position.from_document(doc["lockedLocation"]),
            current_location=Position.from_document(doc["currentLocation"]),
            locked_at=from_iso(doc["lockedAt"]),
            detected_at=from_iso(doc["detectedAt"]),
            source=AlertSource(doc.get("source") or AlertSource.SCHEDULED_CHECK.value),
            notified=bool(doc.get("notified", False)),
            notified_at=from_iso(doc.get("notifiedAt")),
            indicator_activated=bool(doc.get("indicatorActivated", False)),
            indicator_activated_at=from_iso(doc.get("indicatorActivatedAt")),
            delivery_summary_id=doc.get("deliverySummaryId"),
            id=doc_id,
        )


@dataclasses.dataclass(frozen=True)
class TokenRecord:
    """A registered notification recipient for one device."""

    device_id: str
    recipient_token: str
    channel: TokenChannel = TokenChannel.DIRECT
    owner: str = "anonymous"
    platform: str = "unknown"
    active: bool = True
    registered_at: datetime | None = None
    last_used: datetime | None = None

    def to_document(self) -> dict:
        return {
            "deviceId": self.device_id,
            "pushToken": self.recipient_token,
            "channel": self.channel.value,
            "userId": self.owner,
            "platform": self.platform,
            "active": self.active,
            "registeredAt": to_iso(self.registered_at),
            "lastUsed": to_iso(self.last_used),
        }

    @classmethod
    def from_document(cls, doc: dict) -> TokenRecord:
        return cls(
            device_id=doc["deviceId"],
            recipient_token=doc["pushToken"],
            channel=TokenChannel(doc.get("channel") or TokenChannel.DIRECT.value),
            owner=doc.get("userId") or "anonymous",
            platform=doc.get("platform") or "unknown",
            active=bool(doc.get("active", True)),
            registered_at=from_iso(doc.get("registeredAt")),
            last_used=from_iso(doc.get("lastUsed")),
        )


@dataclasses.dataclass(frozen=True)
class SendResult:
    """Outcome of a push send for one recipient (or one topic)."""

    success: bool
    message_id: str | None = None
    error: str | None = None
    # True when the transport says the recipient will never accept messages again
    permanent: bool = False


@dataclasses.dataclass(frozen=True)
class DeliverySummary:
    alert_id: str | None
    device_id: str
    direct_token_count: int
    direct_success_count: int
    direct_failure_count: int
    topic_sent: bool
    direct_sent: bool
    failed_tokens: list[str] = dataclasses.field(default_factory=list)
    sent_at: datetime = dataclasses.field(default_factory=utcnow)

    @property
    def overall_success(self) -> bool:
        return self.topic_sent or self.direct_sent

    def to_document(self) -> dict:
        return {
            "alertId": self.alert_id,
            "deviceId": self.device_id,
            "alertType": ALERT_TYPE_MOVEMENT,
            "directTokenCount": self.direct_token_count,
            "directSuccessCount": self.direct_success_count,
            "directFailureCount": self.direct_failure_count,
            "topicSent": self.topic_sent,
            "directSent": self.direct_sent,
            "failedTokens": list(self.failed_tokens),
            "overallSuccess": self.overall_success,
            "sentAt": to_iso(self.sent_at),
        }


@dataclasses.dataclass(frozen=True)
class DispatchOutcome:
    topic_sent: bool
    direct_sent: bool
    failed_tokens: list[str] = dataclasses.field(default_factory=list)
    summary_id: str | None = None
    # Subset of failed_tokens the transport reported as never deliverable again
    permanent_failures: list[str] = dataclasses.field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.topic_sent or self.direct_sent
