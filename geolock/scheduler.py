"""
PeriodicEvaluator: the scheduled trigger.

Every check_interval seconds each configured device gets one evaluation
tick. Ticks go through a DeviceRequestQueue so devices are evaluated in
parallel while a device whose previous tick is still running is skipped
instead of queued twice. Errors never leave the loop; they are logged.
"""
from __future__ import annotations

import asyncio
import logging
import time

from .config import Settings
from .device_queue import DeviceRequestQueue
from .models import AlertSource
from .orchestrator import EvaluationOrchestrator, EvaluationResult

_LOGGER = logging.getLogger(__name__)

JOB_EVALUATE = "evaluate"


class PeriodicEvaluator:

    def __init__(
        self,
        settings: Settings,
        orchestrator: EvaluationOrchestrator,
        queue: DeviceRequestQueue | None = None,
    ) -> None:
        self._interval = settings.check_interval
        self._device_ids = list(settings.device_ids)
        self._orchestrator = orchestrator
        self._queue = queue or DeviceRequestQueue()
        self._loop_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def run_once(self) -> dict[str, EvaluationResult | None]:
        """
        Evaluate every configured device once and wait for the results.

        A device mapped to None was skipped (tick already pending) or failed.
        """
        futures = {
            device_id: await self._queue.enqueue(
                device_id,
                JOB_EVALUATE,
                lambda did=device_id: self._orchestrator.evaluate_device(
                    did, AlertSource.SCHEDULED_CHECK
                ),
            )
            for device_id in self._device_ids
        }

        results: dict[str, EvaluationResult | None] = {}
        for device_id, fut in futures.items():
            try:
                results[device_id] = await fut
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Scheduled evaluation of device %s failed: %s", device_id, exc)
                results[device_id] = None
        return results

    def start(self) -> None:
        if self.running:
            return
        if not self._device_ids:
            _LOGGER.warning("No devices configured, scheduled evaluation disabled")
            return
        _LOGGER.info(
            "Starting scheduled evaluation of %s device(s) every %ss",
            len(self._device_ids), self._interval,
        )
        self._loop_task = asyncio.ensure_future(self._loop())

    async def stop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None
        await self._queue.shutdown()

    async def _loop(self) -> None:
        while True:
            started = time.monotonic()
            _LOGGER.debug("Scheduled evaluation tick")
            try:
                await self.run_once()
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Scheduled evaluation tick failed: %s", exc)
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, self._interval - elapsed))
