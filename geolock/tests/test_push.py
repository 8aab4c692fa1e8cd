"""
Tests for FirebasePushTransport with the firebase_admin messaging calls
patched out.
"""

from __future__ import annotations

import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from geolock.errors import TransportError
from geolock.push import FirebasePushTransport, PushPayload

PAYLOAD = PushPayload(title="t", body="b", data={"deviceId": "dev-1"})


def _send_response(success: bool, message_id: str | None = None, exception=None) -> MagicMock:
    response = MagicMock()
    response.success = success
    response.message_id = message_id
    response.exception = exception
    return response


def _batch(*responses) -> MagicMock:
    batch = MagicMock()
    batch.responses = list(responses)
    batch.success_count = sum(1 for r in responses if r.success)
    batch.failure_count = len(responses) - batch.success_count
    return batch


class TestFirebasePushTransport(unittest.IsolatedAsyncioTestCase):

    async def test_multicast_maps_each_response(self):
        batch = _batch(
            _send_response(True, "m-1"),
            _send_response(False, exception=messaging.UnregisteredError("gone")),
            _send_response(False, exception=firebase_exceptions.UnavailableError("later")),
        )
        with patch("geolock.push.messaging.send_each_for_multicast_async",
                   AsyncMock(return_value=batch)) as mock:
            results = await FirebasePushTransport().send_multicast(["a", "b", "c"], PAYLOAD)

        message = mock.call_args[0][0]
        self.assertEqual(message.tokens, ["a", "b", "c"])
        self.assertEqual(message.data, {"deviceId": "dev-1"})
        self.assertEqual([r.success for r in results], [True, False, False])
        self.assertEqual(results[0].message_id, "m-1")
        self.assertTrue(results[1].permanent)
        self.assertFalse(results[2].permanent)

    async def test_topic_send(self):
        with patch("geolock.push.messaging.send_each_async",
                   AsyncMock(return_value=_batch(_send_response(True, "m-1")))) as mock:
            result = await FirebasePushTransport().send_to_topic("device_x_movement_alerts", PAYLOAD)
        self.assertTrue(result.success)
        self.assertEqual(mock.call_args[0][0][0].topic, "device_x_movement_alerts")

    async def test_firebase_error_becomes_transport_error(self):
        with patch("geolock.push.messaging.send_each_async",
                   AsyncMock(side_effect=firebase_exceptions.UnavailableError("down"))):
            with self.assertRaises(TransportError):
                await FirebasePushTransport().send_to_topic("t", PAYLOAD)

    async def test_subscribe_runs_admin_call(self):
        response = MagicMock(failure_count=0)
        with patch("geolock.push.messaging.subscribe_to_topic", return_value=response) as mock:
            await FirebasePushTransport().subscribe_to_topic(["a"], "topic")
        mock.assert_called_once_with(["a"], "topic", None)
