"""
Tests for PeriodicEvaluator: one evaluation per configured device per tick,
error isolation between devices, and start / stop.
"""

from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

from geolock.device_queue import DeviceRequestQueue
from geolock.orchestrator import EvaluationResult
from geolock.scheduler import PeriodicEvaluator

from .test_common import DEVICE_ID, MOVED_MEDIUM, REFERENCE, T0, make_engine, make_settings

OTHER_DEVICE = "nrf-352656100000002"


def _orchestrator(side_effect) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.evaluate_device = AsyncMock(side_effect=side_effect)
    return orchestrator


class TestRunOnce(unittest.IsolatedAsyncioTestCase):

    async def test_every_device_evaluated(self):
        settings = make_settings(device_ids_raw=f"{DEVICE_ID}, {OTHER_DEVICE}")
        orchestrator = _orchestrator(lambda device_id, source: EvaluationResult(device_id))
        scheduler = PeriodicEvaluator(settings, orchestrator, DeviceRequestQueue(delay=0))

        results = await scheduler.run_once()

        self.assertEqual(set(results), {DEVICE_ID, OTHER_DEVICE})
        self.assertEqual(orchestrator.evaluate_device.await_count, 2)
        await scheduler.stop()

    async def test_failing_device_does_not_affect_others(self):
        settings = make_settings(device_ids_raw=f"{DEVICE_ID},{OTHER_DEVICE}")

        async def evaluate(device_id, source):
            if device_id == DEVICE_ID:
                raise RuntimeError("store unavailable")
            return EvaluationResult(device_id, evaluated=True)

        scheduler = PeriodicEvaluator(settings, _orchestrator(evaluate), DeviceRequestQueue(delay=0))

        with self.assertLogs("geolock.scheduler", level="ERROR"):
            results = await scheduler.run_once()

        self.assertIsNone(results[DEVICE_ID])
        self.assertTrue(results[OTHER_DEVICE].evaluated)
        await scheduler.stop()

    async def test_end_to_end_tick_raises_alert(self):
        engine, _, commander, transport = make_engine({DEVICE_ID: MOVED_MEDIUM})
        await engine.orchestrator.lock_device(DEVICE_ID, REFERENCE, T0)

        results = await engine.scheduler.run_once()

        self.assertTrue(results[DEVICE_ID].claimed)
        self.assertEqual(len(transport.topic_calls), 1)
        await engine.shutdown()
        self.assertEqual(commander.led_repetitions, [5, 0])


class TestLifecycle(unittest.IsolatedAsyncioTestCase):

    async def test_start_runs_ticks_until_stopped(self):
        settings = make_settings(check_interval=1)
        orchestrator = _orchestrator(lambda device_id, source: EvaluationResult(device_id))
        scheduler = PeriodicEvaluator(settings, orchestrator, DeviceRequestQueue(delay=0))

        scheduler.start()
        self.assertTrue(scheduler.running)
        await asyncio.sleep(0.05)
        await scheduler.stop()

        self.assertFalse(scheduler.running)
        orchestrator.evaluate_device.assert_awaited()

    async def test_start_without_devices_is_disabled(self):
        settings = make_settings(device_ids_raw="")
        scheduler = PeriodicEvaluator(settings, _orchestrator(None))
        with self.assertLogs("geolock.scheduler", level="WARNING"):
            scheduler.start()
        self.assertFalse(scheduler.running)
        await scheduler.stop()
