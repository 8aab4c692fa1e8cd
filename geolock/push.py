"""
Push notification transport.

NotificationTransport is the seam the dispatcher talks to; the Firebase
implementation maps a PushPayload onto FCM topic and multicast messages
and reports one SendResult per recipient.
"""
from __future__ import annotations

import abc
import asyncio
import dataclasses
import logging

import firebase_admin
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from .const import ANDROID_CHANNEL_ID, NOTIFICATION_COLOR, NOTIFICATION_ICON
from .errors import TransportError
from .models import SendResult

_LOGGER = logging.getLogger(__name__)

# FCM errors after which a token will never accept messages again
_PERMANENT_ERRORS = (
    messaging.UnregisteredError,
    messaging.SenderIdMismatchError,
    firebase_exceptions.InvalidArgumentError,
)


@dataclasses.dataclass(frozen=True)
class PushPayload:
    title: str
    body: str
    # FCM only accepts string values in the data map
    data: dict[str, str] = dataclasses.field(default_factory=dict)


class NotificationTransport(abc.ABC):

    @abc.abstractmethod
    async def send_to_topic(self, topic: str, payload: PushPayload) -> SendResult:
        """Broadcast payload to every subscriber of topic."""

    @abc.abstractmethod
    async def send_multicast(self, tokens: list[str], payload: PushPayload) -> list[SendResult]:
        """Send payload to all tokens in one batch; one result per token, same order."""

    async def subscribe_to_topic(self, tokens: list[str], topic: str) -> None:
        """Subscribe tokens to topic. Transports without topics may ignore this."""


def _android_config() -> messaging.AndroidConfig:
    return messaging.AndroidConfig(
        priority="high",
        notification=messaging.AndroidNotification(
            icon=NOTIFICATION_ICON,
            color=NOTIFICATION_COLOR,
            sound="default",
            priority="high",
            channel_id=ANDROID_CHANNEL_ID,
        ),
    )


def _apns_config(payload: PushPayload) -> messaging.APNSConfig:
    return messaging.APNSConfig(
        payload=messaging.APNSPayload(
            aps=messaging.Aps(
                alert=messaging.ApsAlert(title=payload.title, body=payload.body),
                sound="default",
                badge=1,
            )
        )
    )


def _to_send_result(response: messaging.SendResponse) -> SendResult:
    if response.success:
        return SendResult(success=True, message_id=response.message_id)
    exc = response.exception
    return SendResult(
        success=False,
        error=str(exc) if exc is not None else "unknown error",
        permanent=isinstance(exc, _PERMANENT_ERRORS),
    )


class FirebasePushTransport(NotificationTransport):

    def __init__(self, app: firebase_admin.App | None = None) -> None:
        self._app = app

    async def send_to_topic(self, topic: str, payload: PushPayload) -> SendResult:
        message = messaging.Message(
            notification=messaging.Notification(title=payload.title, body=payload.body),
            data=dict(payload.data),
            android=_android_config(),
            apns=_apns_config(payload),
            topic=topic,
        )
        try:
            batch = await messaging.send_each_async([message], app=self._app)
        except firebase_exceptions.FirebaseError as exc:
            raise TransportError(f"FCM topic send to {topic} failed: {exc}") from exc
        result = _to_send_result(batch.responses[0])
        if result.success:
            _LOGGER.info("Sent FCM topic notification to %s (message %s)", topic, result.message_id)
        return result

    async def send_multicast(self, tokens: list[str], payload: PushPayload) -> list[SendResult]:
        message = messaging.MulticastMessage(
            tokens=list(tokens),
            notification=messaging.Notification(title=payload.title, body=payload.body),
            data=dict(payload.data),
            android=_android_config(),
            apns=_apns_config(payload),
        )
        try:
            batch = await messaging.send_each_for_multicast_async(message, app=self._app)
        except firebase_exceptions.FirebaseError as exc:
            raise TransportError(f"FCM multicast failed: {exc}") from exc
        _LOGGER.info(
            "FCM multicast sent: %s succeeded, %s failed",
            batch.success_count, batch.failure_count,
        )
        return [_to_send_result(response) for response in batch.responses]

    async def subscribe_to_topic(self, tokens: list[str], topic: str) -> None:
        try:
            response = await asyncio.to_thread(
                messaging.subscribe_to_topic, list(tokens), topic, self._app
            )
        except firebase_exceptions.FirebaseError as exc:
            raise TransportError(f"FCM topic subscription to {topic} failed: {exc}") from exc
        if response.failure_count:
            _LOGGER.warning(
                "%s of %s tokens could not be subscribed to %s",
                response.failure_count, len(tokens), topic,
            )
