"""
Shared fakes and factory functions for geolock tests.
Import from this module in each test file to avoid duplication.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from geolock import Engine, build_engine
from geolock.config import Settings
from geolock.errors import NotFoundError, StoreConflict, TransportError
from geolock.models import AlertRecord, AlertSource, Position, SendResult
from geolock.push import NotificationTransport, PushPayload
from geolock.store.base import DocumentStore
from geolock.store.memory import InMemoryDocumentStore

DEVICE_ID = "nrf-352656100000001"
T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

REFERENCE = Position(10.000000, 20.000000)
MOVED_MEDIUM = Position(10.000400, 20.000000)   # ≈ 44.5 m north
MOVED_LOW = Position(10.000150, 20.000000)      # ≈ 16.7 m
MOVED_HIGH = Position(10.001000, 20.000000)     # ≈ 111 m


def make_settings(**kwargs) -> Settings:
    defaults = dict(
        nrf_cloud_api_key="test-key",
        nrf_cloud_base_url="https://nrf.example.test/v1",
        device_ids_raw=DEVICE_ID,
        indicator_off_delay=0.01,
        store_backend="memory",
    )
    defaults.update(kwargs)
    return Settings(_env_file=None, **defaults)


def make_alert(
    device_id: str = DEVICE_ID,
    distance: float = 44.5,
    severity: str = "medium",
    detected_at: datetime = T0,
    **kwargs,
) -> AlertRecord:
    defaults = dict(
        device_id=device_id,
        distance=distance,
        threshold=10.0,
        severity=severity,
        locked_location=REFERENCE,
        current_location=MOVED_MEDIUM,
        locked_at=T0,
        detected_at=detected_at,
        source=AlertSource.SCHEDULED_CHECK,
    )
    defaults.update(kwargs)
    return AlertRecord(**defaults)


class FakeTelemetry:
    """Returns a fixed position per device; None means no fix."""

    def __init__(self, positions: dict[str, Position | None] | None = None) -> None:
        self.positions = dict(positions or {})
        self.calls: list[str] = []
        self.error: Exception | None = None
        # When set, every fetch waits for this event before answering
        self.gate: asyncio.Event | None = None

    async def get_latest_position(self, device_id: str) -> Position | None:
        self.calls.append(device_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.positions.get(device_id)


class FakeCommander:
    """Records every desired-state patch sent to a device."""

    def __init__(self, results: list[bool] | None = None) -> None:
        self.commands: list[tuple[str, dict]] = []
        self._results = list(results or [])
        self.error: Exception | None = None

    async def set_remote_state(self, device_id: str, desired: dict) -> bool:
        self.commands.append((device_id, desired))
        if self.error is not None:
            raise self.error
        return self._results.pop(0) if self._results else True

    @property
    def led_repetitions(self) -> list[int]:
        return [desired["led"]["repetitions"] for _, desired in self.commands]


class FakeTransport(NotificationTransport):
    """In-memory push transport with configurable per-token failures."""

    def __init__(self) -> None:
        self.topic_calls: list[tuple[str, PushPayload]] = []
        self.multicast_calls: list[tuple[list[str], PushPayload]] = []
        self.subscriptions: list[tuple[list[str], str]] = []
        self.failing_tokens: set[str] = set()
        self.permanent_tokens: set[str] = set()
        self.topic_error: Exception | None = None
        self.multicast_error: Exception | None = None
        self.topic_success = True

    async def send_to_topic(self, topic: str, payload: PushPayload) -> SendResult:
        self.topic_calls.append((topic, payload))
        if self.topic_error is not None:
            raise self.topic_error
        if not self.topic_success:
            return SendResult(success=False, error="topic rejected")
        return SendResult(success=True, message_id=f"topic-{len(self.topic_calls)}")

    async def send_multicast(self, tokens: list[str], payload: PushPayload) -> list[SendResult]:
        self.multicast_calls.append((list(tokens), payload))
        if self.multicast_error is not None:
            raise self.multicast_error
        results = []
        for token in tokens:
            if token in self.failing_tokens or token in self.permanent_tokens:
                results.append(SendResult(
                    success=False,
                    error="Requested entity was not found",
                    permanent=token in self.permanent_tokens,
                ))
            else:
                results.append(SendResult(success=True, message_id=f"msg-{token}"))
        return results

    async def subscribe_to_topic(self, tokens: list[str], topic: str) -> None:
        self.subscriptions.append((list(tokens), topic))


def make_engine(
    positions: dict[str, Position | None] | None = None,
    **settings_kwargs,
) -> tuple[Engine, FakeTelemetry, FakeCommander, FakeTransport]:
    """Engine over an in-memory store with fake telemetry, device and push."""
    telemetry = FakeTelemetry(positions)
    commander = FakeCommander()
    transport = FakeTransport()
    engine = build_engine(
        make_settings(**settings_kwargs),
        store=InMemoryDocumentStore(),
        telemetry=telemetry,
        commander=commander,
        transport=transport,
    )
    return engine, telemetry, commander, transport


def transport_error(message: str = "connection reset") -> TransportError:
    return TransportError(message)


class DocumentStoreContract:
    """
    Behaviour every DocumentStore backend must share.

    Mix into an IsolatedAsyncioTestCase whose asyncSetUp assigns self.store.
    """

    store: DocumentStore
    concurrent_attempts = 25

    async def test_get_missing_returns_none(self):
        self.assertIsNone(await self.store.get("c", "nope"))

    async def test_add_generates_distinct_ids(self):
        first = await self.store.add("c", {"n": 1})
        second = await self.store.add("c", {"n": 2})
        self.assertNotEqual(first, second)
        self.assertEqual(await self.store.get("c", second), {"n": 2})

    async def test_update_missing_is_noop(self):
        self.assertFalse(await self.store.update("c", "missing", {"x": 1}))
        self.assertIsNone(await self.store.get("c", "missing"))

    async def test_update_merges(self):
        await self.store.set("c", "a", {"x": 1, "y": 2})
        self.assertTrue(await self.store.update("c", "a", {"y": 3}))
        self.assertEqual(await self.store.get("c", "a"), {"x": 1, "y": 3})

    async def test_delete_returns_previous_content(self):
        await self.store.set("c", "a", {"x": 1})
        self.assertEqual(await self.store.delete("c", "a"), {"x": 1})
        self.assertIsNone(await self.store.delete("c", "a"))
        self.assertIsNone(await self.store.get("c", "a"))

    async def test_cas_succeeds_when_expected(self):
        await self.store.set("alerts", "a1", {"notified": False})
        await self.store.compare_and_set("alerts", "a1", "notified", False, {"notified": True})
        self.assertTrue((await self.store.get("alerts", "a1"))["notified"])

    async def test_cas_conflict_when_changed(self):
        await self.store.set("alerts", "a1", {"notified": False})
        await self.store.compare_and_set("alerts", "a1", "notified", False, {"notified": True})
        with self.assertRaises(StoreConflict):
            await self.store.compare_and_set("alerts", "a1", "notified", False, {"notified": True})

    async def test_cas_missing_field_is_conflict(self):
        await self.store.set("locks", "d", {"status": "locked"})
        with self.assertRaises(StoreConflict):
            await self.store.compare_and_set("locks", "d", "lockId", "abc", {"status": "x"})
        self.assertEqual(await self.store.get("locks", "d"), {"status": "locked"})

    async def test_cas_missing_document(self):
        with self.assertRaises(NotFoundError):
            await self.store.compare_and_set("alerts", "zz", "notified", False, {"notified": True})
        self.assertIsNone(await self.store.get("alerts", "zz"))

    async def test_cas_concurrent_only_one_wins(self):
        await self.store.set("alerts", "a1", {"notified": False})

        async def attempt():
            try:
                await self.store.compare_and_set(
                    "alerts", "a1", "notified", False, {"notified": True}
                )
                return True
            except StoreConflict:
                return False

        results = await asyncio.gather(*[attempt() for _ in range(self.concurrent_attempts)])
        self.assertEqual(results.count(True), 1)

    async def test_concurrent_increments_add_up(self):
        await self.store.set("locks", "d", {"alertCount": 0})
        await asyncio.gather(*[
            self.store.increment("locks", "d", "alertCount")
            for _ in range(self.concurrent_attempts)
        ])
        self.assertEqual(
            (await self.store.get("locks", "d"))["alertCount"], self.concurrent_attempts
        )

    async def test_increment_missing_field_starts_at_zero(self):
        await self.store.set("locks", "d", {})
        self.assertTrue(await self.store.increment("locks", "d", "alertCount", 2, extra={"status": "x"}))
        self.assertEqual(await self.store.get("locks", "d"), {"alertCount": 2, "status": "x"})

    async def test_increment_missing_document(self):
        self.assertFalse(await self.store.increment("locks", "d", "alertCount"))
        self.assertIsNone(await self.store.get("locks", "d"))

    async def test_increment_with_stale_expectation_writes_nothing(self):
        await self.store.set("locks", "d", {"alertCount": 1, "lockId": "new"})
        self.assertFalse(await self.store.increment(
            "locks", "d", "alertCount", extra={"status": "x"}, expected={"lockId": "old"}
        ))
        self.assertEqual(await self.store.get("locks", "d"), {"alertCount": 1, "lockId": "new"})

    async def test_increment_with_matching_expectation(self):
        await self.store.set("locks", "d", {"alertCount": 1, "lockId": "new"})
        self.assertTrue(await self.store.increment(
            "locks", "d", "alertCount", expected={"lockId": "new"}
        ))
        self.assertEqual((await self.store.get("locks", "d"))["alertCount"], 2)

    async def _add_alert_rows(self):
        rows = [
            ("a", "2026-01-01T10:00:00+00:00", "low"),
            ("a", "2026-01-01T12:00:00+00:00", "high"),
            ("a", "2026-01-01T11:00:00+00:00", "medium"),
            ("b", "2026-01-01T13:00:00+00:00", "high"),
        ]
        for device, at, severity in rows:
            await self.store.add("alerts", {"deviceId": device, "detectedAt": at, "severity": severity})

    async def test_query_filter_and_order_descending(self):
        await self._add_alert_rows()
        rows = await self.store.query(
            "alerts", filters={"deviceId": "a"}, order_by="detectedAt", descending=True
        )
        self.assertEqual([doc["severity"] for _, doc in rows], ["high", "medium", "low"])

    async def test_query_limit(self):
        await self._add_alert_rows()
        rows = await self.store.query(
            "alerts", filters={"deviceId": "a"}, order_by="detectedAt", descending=True, limit=2
        )
        self.assertEqual([doc["severity"] for _, doc in rows], ["high", "medium"])

    async def test_query_multiple_equality_filters(self):
        await self._add_alert_rows()
        rows = await self.store.query("alerts", filters={"deviceId": "a", "severity": "low"})
        self.assertEqual(len(rows), 1)
        doc_id, doc = rows[0]
        self.assertEqual(await self.store.get("alerts", doc_id), doc)
