"""
geolock: lock a tracker at a position and get alerted when it moves away.

build_engine() wires the stores, the notification dispatcher, the device
indicator and the orchestrator from a Settings instance. Every collaborator
can be passed in explicitly, which is how the tests run without Firebase or
nRF Cloud.
"""
from __future__ import annotations

import dataclasses
import logging

from .alert_store import AlertRecordStore
from .config import Settings
from .dispatcher import NotificationDispatcher
from .indicator import DeviceCommander, IndicatorController
from .lock_state import LockStateStore
from .orchestrator import EvaluationOrchestrator, TelemetrySource
from .push import NotificationTransport
from .scheduler import PeriodicEvaluator
from .store.base import DocumentStore
from .store.memory import InMemoryDocumentStore
from .token_store import TokenRegistry

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass
class Engine:
    settings: Settings
    store: DocumentStore
    locks: LockStateStore
    alerts: AlertRecordStore
    tokens: TokenRegistry
    dispatcher: NotificationDispatcher
    indicator: IndicatorController
    orchestrator: EvaluationOrchestrator
    scheduler: PeriodicEvaluator

    async def shutdown(self) -> None:
        """Stop the scheduler, let pending indicator switch-offs fire, close the store."""
        await self.scheduler.stop()
        await self.indicator.drain()
        await self.store.close()


def _default_store(settings: Settings) -> DocumentStore:
    if settings.store_backend == "firestore":
        from .store.firestore import FirestoreDocumentStore, init_firebase_app
        return FirestoreDocumentStore(init_firebase_app(settings.firebase_credentials))
    _LOGGER.warning("Using in-memory store: lock state is lost on restart")
    return InMemoryDocumentStore()


def _default_transport(settings: Settings) -> NotificationTransport:
    from .push import FirebasePushTransport
    from .store.firestore import init_firebase_app
    return FirebasePushTransport(init_firebase_app(settings.firebase_credentials))


def build_engine(
    settings: Settings,
    store: DocumentStore | None = None,
    telemetry: TelemetrySource | None = None,
    commander: DeviceCommander | None = None,
    transport: NotificationTransport | None = None,
) -> Engine:
    store = store or _default_store(settings)
    if telemetry is None or commander is None:
        from .api import NrfCloudApi
        nrf_cloud = NrfCloudApi(settings, store)
        telemetry = telemetry or nrf_cloud
        commander = commander or nrf_cloud
    transport = transport or _default_transport(settings)

    locks = LockStateStore(store)
    alerts = AlertRecordStore(store)
    tokens = TokenRegistry(store)
    dispatcher = NotificationDispatcher(settings, store, tokens, alerts, transport)
    indicator = IndicatorController(commander, settings.indicator_off_delay)
    orchestrator = EvaluationOrchestrator(
        settings, locks, alerts, tokens, dispatcher, indicator, telemetry, transport
    )
    scheduler = PeriodicEvaluator(settings, orchestrator)
    return Engine(
        settings=settings,
        store=store,
        locks=locks,
        alerts=alerts,
        tokens=tokens,
        dispatcher=dispatcher,
        indicator=indicator,
        orchestrator=orchestrator,
        scheduler=scheduler,
    )


__all__ = ["Engine", "Settings", "build_engine"]
