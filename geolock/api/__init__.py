"""
nRF Cloud client used as telemetry source and device command channel.
"""
from __future__ import annotations

import logging

from ..config import Settings
from ..const import LOCATION_HISTORY_COLLECTION
from ..models import Position, to_iso, utcnow
from ..store.base import DocumentStore
from .auth import get_standard_headers
from .device_state import patch_device_state
from .telemetry import fetch_latest_location

_LOGGER = logging.getLogger(__name__)

__all__ = ["NrfCloudApi"]


class NrfCloudApi:
    """
    Thin stateful wrapper over the nRF Cloud endpoints.

    When a store is given, every raw location response is archived to the
    location history collection.
    """

    def __init__(self, settings: Settings, store: DocumentStore | None = None) -> None:
        self._base_url = settings.nrf_cloud_base_url.rstrip("/")
        self._headers = get_standard_headers(settings.nrf_cloud_api_key)
        self._store = store

    async def get_latest_position(self, device_id: str) -> Position | None:
        position, raw_json = await fetch_latest_location(self._base_url, device_id, self._headers)
        if raw_json is not None and self._store is not None:
            await self._store.add(LOCATION_HISTORY_COLLECTION, {
                "deviceId": device_id,
                "latest": True,
                "data": raw_json,
                "timestamp": to_iso(utcnow()),
                "source": "scheduled",
            })
        return position

    async def set_remote_state(self, device_id: str, desired: dict) -> bool:
        return await patch_device_state(self._base_url, device_id, desired, self._headers)
