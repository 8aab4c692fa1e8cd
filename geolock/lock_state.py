"""
Per-device lock state.

A LockRecord exists exactly while its device is locked. Every lock and
unlock is archived to the lock history collection; evaluation updates
against a device that was unlocked or relocked in the meantime are silent
no-ops.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime

from .const import LOCK_HISTORY_COLLECTION, LOCKS_COLLECTION
from .errors import NotFoundError, StoreConflict
from .models import LockRecord, LockStatus, Position, to_iso, utcnow
from .store.base import DocumentStore

_LOGGER = logging.getLogger(__name__)


class LockStateStore:

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get(self, device_id: str) -> LockRecord | None:
        doc = await self._store.get(LOCKS_COLLECTION, device_id)
        return LockRecord.from_document(doc) if doc is not None else None

    async def lock(
        self,
        device_id: str,
        position: Position,
        locked_at: datetime | None = None,
    ) -> LockRecord:
        """
        Lock device_id at position.

        An existing lock is replaced; its last state is archived as a
        "relock" history entry first.
        """
        now = utcnow()
        record = LockRecord(
            device_id=device_id,
            reference_position=position,
            locked_at=locked_at or now,
            lock_id=uuid.uuid4().hex,
        )

        previous = await self._store.get(LOCKS_COLLECTION, device_id)
        if previous is not None:
            await self._store.add(LOCK_HISTORY_COLLECTION, {
                "deviceId": device_id,
                "action": "relock",
                "previousLockData": previous,
                "createdAt": to_iso(now),
            })
            _LOGGER.debug("Replacing existing lock for device %s", device_id)

        document = record.to_document()
        await self._store.set(LOCKS_COLLECTION, device_id, document)
        await self._store.add(LOCK_HISTORY_COLLECTION, {
            **document,
            "action": "lock",
            "createdAt": to_iso(now),
        })
        _LOGGER.info(
            "Locked device %s at (%.6f, %.6f)", device_id, position.lat, position.lon
        )
        return record

    async def unlock(self, device_id: str, unlocked_at: datetime | None = None) -> LockRecord:
        """
        Remove the lock of device_id and archive it.

        Raises NotFoundError when the device is not locked.
        """
        removed = await self._store.delete(LOCKS_COLLECTION, device_id)
        if removed is None:
            raise NotFoundError(f"No locked location found for device {device_id}")

        now = utcnow()
        await self._store.add(LOCK_HISTORY_COLLECTION, {
            "deviceId": device_id,
            "action": "unlock",
            "status": LockStatus.UNLOCKED.value,
            "unlockedAt": to_iso(unlocked_at or now),
            "previousLockData": removed,
            "createdAt": to_iso(now),
        })
        _LOGGER.info("Unlocked device %s", device_id)
        return LockRecord.from_document(removed)

    async def update_after_evaluation(
        self,
        device_id: str,
        distance: float,
        status: LockStatus,
        timestamp: datetime,
        lock_id: str | None = None,
    ) -> bool:
        """
        Record the latest evaluation.

        With lock_id the write only lands on that exact lock, so a result
        computed against a replaced lock is dropped. Returns False if the
        device is no longer locked (or was relocked).
        """
        fields = {
            "currentDistance": distance,
            "status": status.value,
            "lastCheckedAt": to_iso(timestamp),
        }
        if lock_id is None:
            updated = await self._store.update(LOCKS_COLLECTION, device_id, fields)
        else:
            try:
                await self._store.compare_and_set(
                    LOCKS_COLLECTION, device_id, "lockId", lock_id, fields
                )
                updated = True
            except (NotFoundError, StoreConflict):
                updated = False
        if not updated:
            _LOGGER.debug("Lock of device %s changed during evaluation, update skipped", device_id)
        return updated

    async def increment_alert_count(
        self,
        device_id: str,
        alert_at: datetime,
        alert_id: str | None = None,
        lock_id: str | None = None,
    ) -> bool:
        """Atomically bump alertCount and stamp the alert. Returns False if unlocked or relocked."""
        updated = await self._store.increment(
            LOCKS_COLLECTION,
            device_id,
            "alertCount",
            1,
            extra={
                "lastAlertAt": to_iso(alert_at),
                "lastAlertId": alert_id,
                "status": LockStatus.LOCKED_ALERT.value,
            },
            expected={"lockId": lock_id} if lock_id is not None else None,
        )
        if not updated:
            _LOGGER.debug("Lock of device %s changed before its alert count could be updated", device_id)
        return updated
