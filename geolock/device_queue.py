"""
DeviceRequestQueue: serialises jobs per device.

Pure asyncio primitive with no network or store dependencies.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from .const import REQUEST_DELAY

_LOGGER = logging.getLogger(__name__)


class DeviceRequestQueue:
    """
    Runs jobs for different devices in parallel and jobs for the same device
    one at a time, with a minimum delay between them.

    A job whose type is already queued or running for the same device is not
    queued again: enqueue() hands back an already-resolved Future(None).
    """

    def __init__(self, delay: float = REQUEST_DELAY) -> None:
        self._delay = delay
        # device_id → asyncio.Queue of (job_type, job_factory, Future)
        self._queues: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}
        # device_id → job_type currently running
        self._running: dict[str, str | None] = {}
        # device_id → job_types waiting in the queue
        self._queued_types: dict[str, set[str]] = {}

    def is_busy(self, device_id: str, job_type: str) -> bool:
        return (
            job_type in self._queued_types.get(device_id, set())
            or self._running.get(device_id) == job_type
        )

    async def enqueue(
        self,
        device_id: str,
        job_type: str,
        job_factory: Callable[[], Awaitable[Any]],
    ) -> asyncio.Future:
        """Schedule job_factory() for device_id and return a Future for its result."""
        self._ensure_device(device_id)
        loop = asyncio.get_running_loop()

        if self.is_busy(device_id, job_type):
            _LOGGER.debug("Job %s for device %s already pending, skipped", job_type, device_id)
            fut: asyncio.Future = loop.create_future()
            fut.set_result(None)
            return fut

        fut = loop.create_future()
        self._queued_types[device_id].add(job_type)
        await self._queues[device_id].put((job_type, job_factory, fut))
        return fut

    async def shutdown(self) -> None:
        """Cancel all workers and forget every queue."""
        for task in self._workers.values():
            task.cancel()
        results = await asyncio.gather(*self._workers.values(), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                _LOGGER.debug("DeviceRequestQueue worker error during shutdown: %s", result)
        self._workers.clear()
        self._queues.clear()
        self._running.clear()
        self._queued_types.clear()

    def _ensure_device(self, device_id: str) -> None:
        if device_id in self._queues:
            return
        self._queues[device_id] = asyncio.Queue()
        self._running[device_id] = None
        self._queued_types[device_id] = set()
        self._workers[device_id] = asyncio.ensure_future(self._worker(device_id))

    async def _worker(self, device_id: str) -> None:
        queue = self._queues[device_id]
        while True:
            job_type, job_factory, fut = await queue.get()
            self._running[device_id] = job_type
            self._queued_types[device_id].discard(job_type)
            try:
                result = await job_factory()
                if not fut.done():
                    fut.set_result(result)
            except Exception as exc:  # noqa: BLE001
                if not fut.done():
                    fut.set_exception(exc)
            finally:
                self._running[device_id] = None
                queue.task_done()
                await asyncio.sleep(self._delay)
