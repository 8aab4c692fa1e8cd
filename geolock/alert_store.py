"""
Append-only movement alert records with an atomic notification claim.
"""
from __future__ import annotations

import dataclasses
import logging
from datetime import datetime

from .const import ALERTS_COLLECTION
from .errors import NotFoundError, StoreConflict
from .models import AlertRecord, to_iso, utcnow
from .store.base import DocumentStore

_LOGGER = logging.getLogger(__name__)


class AlertRecordStore:

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create(self, alert: AlertRecord) -> str:
        """Persist a new alert (always unnotified) and return its id."""
        alert = dataclasses.replace(alert, notified=False, notified_at=None, id=None)
        alert_id = await self._store.add(ALERTS_COLLECTION, alert.to_document())
        _LOGGER.debug("Created alert %s for device %s", alert_id, alert.device_id)
        return alert_id

    async def get(self, alert_id: str) -> AlertRecord | None:
        doc = await self._store.get(ALERTS_COLLECTION, alert_id)
        return AlertRecord.from_document(doc, alert_id) if doc is not None else None

    async def try_claim_for_notification(
        self, alert_id: str, claimed_at: datetime | None = None
    ) -> bool:
        """
        Flip notified from False to True.

        Returns True only for the single caller that performed the flip.
        Losing the race is expected and is not logged as an error.
        """
        try:
            await self._store.compare_and_set(
                ALERTS_COLLECTION,
                alert_id,
                "notified",
                False,
                {"notified": True, "notifiedAt": to_iso(claimed_at or utcnow())},
            )
        except StoreConflict:
            _LOGGER.debug("Alert %s already claimed by another evaluator", alert_id)
            return False
        except NotFoundError:
            _LOGGER.warning("Cannot claim unknown alert %s", alert_id)
            return False
        return True

    async def list_recent(
        self,
        device_id: str,
        limit: int = 10,
        severity: str | None = None,
    ) -> list[AlertRecord]:
        """Newest-first alerts of device_id, optionally limited to one severity."""
        filters = {"deviceId": device_id}
        if severity is not None:
            filters["severity"] = severity
        rows = await self._store.query(
            ALERTS_COLLECTION,
            filters=filters,
            order_by="detectedAt",
            descending=True,
            limit=limit,
        )
        return [AlertRecord.from_document(doc, doc_id) for doc_id, doc in rows]

    async def mark_indicator_activated(self, alert_id: str, activated_at: datetime) -> bool:
        return await self._store.update(ALERTS_COLLECTION, alert_id, {
            "indicatorActivated": True,
            "indicatorActivatedAt": to_iso(activated_at),
        })

    async def link_delivery_summary(self, alert_id: str, summary_id: str) -> bool:
        return await self._store.update(ALERTS_COLLECTION, alert_id, {
            "deliverySummaryId": summary_id,
        })
