"""
Registry of notification recipients per device.

Tokens are unique per (device_id, recipient_token). Invalid tokens are
flagged inactive and kept for audit; nothing here ever deletes a token.
"""
from __future__ import annotations

import hashlib
import logging

from .const import TOKENS_COLLECTION
from .models import TokenChannel, TokenRecord, to_iso, utcnow
from .store.base import DocumentStore

_LOGGER = logging.getLogger(__name__)


def token_doc_id(device_id: str, recipient_token: str) -> str:
    digest = hashlib.sha256(recipient_token.encode("utf-8")).hexdigest()[:32]
    return f"{device_id}_{digest}"


class TokenRegistry:

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def register(
        self,
        device_id: str,
        recipient_token: str,
        channel: TokenChannel = TokenChannel.DIRECT,
        owner: str | None = None,
        platform: str | None = None,
    ) -> TokenRecord:
        """Create or refresh the token record; re-registering reactivates it."""
        now = utcnow()
        record = TokenRecord(
            device_id=device_id,
            recipient_token=recipient_token,
            channel=channel,
            owner=owner or "anonymous",
            platform=platform or "unknown",
            active=True,
            registered_at=now,
            last_used=now,
        )
        await self._store.set(
            TOKENS_COLLECTION, token_doc_id(device_id, recipient_token), record.to_document()
        )
        _LOGGER.info(
            "Registered %s token for device %s (platform %s)",
            channel.value, device_id, record.platform,
        )
        return record

    async def active_tokens(self, device_id: str) -> list[TokenRecord]:
        rows = await self._store.query(
            TOKENS_COLLECTION, filters={"deviceId": device_id, "active": True}
        )
        return [TokenRecord.from_document(doc) for _, doc in rows]

    async def deactivate(self, device_id: str, recipient_token: str) -> bool:
        """Flag a token inactive, keeping its document. Called for tokens the transport rejected permanently."""
        updated = await self._store.update(
            TOKENS_COLLECTION,
            token_doc_id(device_id, recipient_token),
            {"active": False, "deactivatedAt": to_iso(utcnow())},
        )
        if updated:
            _LOGGER.info("Deactivated token %s... for device %s", recipient_token[:20], device_id)
        return updated

    async def touch(self, device_id: str, recipient_tokens: list[str]) -> None:
        """Stamp lastUsed on tokens that just received a message."""
        now = to_iso(utcnow())
        for token in recipient_tokens:
            await self._store.update(
                TOKENS_COLLECTION, token_doc_id(device_id, token), {"lastUsed": now}
            )
