"""
Device-side movement indicator.

activate() switches the LED pattern on and schedules a single, uncancellable
switch-off a fixed delay later. Both commands are fire-and-forget: failures
are logged, never retried, and never affect each other.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

from .const import INDICATOR_OFF, INDICATOR_OFF_DELAY, INDICATOR_ON
from .api.device_state import build_led_state

_LOGGER = logging.getLogger(__name__)


class DeviceCommander(Protocol):
    async def set_remote_state(self, device_id: str, desired: dict) -> bool: ...


class OneShotAction:
    """
    Run callback once after delay seconds.

    There is no cancel(): once scheduled the action always
    fires. Exceptions raised by the callback are logged.
    """

    def __init__(self, name: str, delay: float, callback: Callable[[], Awaitable[object]]) -> None:
        self.name = name
        self.delay = delay
        self._callback = callback
        self._task: asyncio.Task | None = None

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        return self._task

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        try:
            await self._callback()
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Scheduled action %s failed: %s", self.name, exc)


class IndicatorController:

    def __init__(self, commander: DeviceCommander, off_delay: float = INDICATOR_OFF_DELAY) -> None:
        self._commander = commander
        self._off_delay = off_delay
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def activate(self, device_id: str) -> bool:
        """
        Switch the indicator on and schedule its switch-off.

        Returns whether the switch-on command succeeded; the switch-off is
        scheduled either way.
        """
        try:
            activated = await self._commander.set_remote_state(
                device_id, build_led_state(INDICATOR_ON)
            )
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Error turning on movement indicator for %s: %s", device_id, exc)
            activated = False

        if activated:
            _LOGGER.info("Movement indicator activated on device %s", device_id)
        else:
            _LOGGER.warning("Movement indicator could not be activated on device %s", device_id)

        self._schedule_off(device_id)
        return activated

    async def deactivate(self, device_id: str) -> bool:
        try:
            deactivated = await self._commander.set_remote_state(
                device_id, build_led_state(INDICATOR_OFF)
            )
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Error turning off movement indicator for %s: %s", device_id, exc)
            return False
        if deactivated:
            _LOGGER.info("Movement indicator turned off on device %s after %ss", device_id, self._off_delay)
        else:
            _LOGGER.warning("Movement indicator could not be turned off on device %s", device_id)
        return deactivated

    def _schedule_off(self, device_id: str) -> None:
        action = OneShotAction(
            f"indicator-off:{device_id}",
            self._off_delay,
            lambda: self.deactivate(device_id),
        )
        task = action.start()
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled switch-off to fire. Nothing is cancelled."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
