"""
DocumentStore backed by Cloud Firestore through firebase-admin.

Read-check-write operations (compare_and_set, delete) run inside Firestore
transactions; increments use server-side Increment transforms.
"""
from __future__ import annotations

import logging
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore_async
from google.api_core.exceptions import NotFound
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ..errors import NotFoundError, StoreConflict
from .base import DocumentStore

_LOGGER = logging.getLogger(__name__)


def init_firebase_app(credentials_path: str | None = None) -> firebase_admin.App:
    """Return the default firebase app, initialising it on first use."""
    if firebase_admin._apps:
        return firebase_admin.get_app()
    if credentials_path:
        _LOGGER.info("Initialising Firebase with service account %s", credentials_path)
        return firebase_admin.initialize_app(credentials.Certificate(credentials_path))
    _LOGGER.info("Initialising Firebase with application default credentials")
    return firebase_admin.initialize_app()


class FirestoreDocumentStore(DocumentStore):

    def __init__(
        self,
        app: firebase_admin.App | None = None,
        client: firestore.AsyncClient | None = None,
    ) -> None:
        self._client = client if client is not None else firestore_async.client(app)

    def _ref(self, collection: str, doc_id: str):
        return self._client.collection(collection).document(doc_id)

    async def get(self, collection: str, doc_id: str) -> dict | None:
        snapshot = await self._ref(collection, doc_id).get()
        return snapshot.to_dict() if snapshot.exists else None

    async def set(self, collection: str, doc_id: str, data: dict) -> None:
        await self._ref(collection, doc_id).set(data)

    async def add(self, collection: str, data: dict) -> str:
        _, ref = await self._client.collection(collection).add(data)
        return ref.id

    async def update(self, collection: str, doc_id: str, fields: dict) -> bool:
        try:
            await self._ref(collection, doc_id).update(fields)
        except NotFound:
            _LOGGER.debug("Skipped update of missing document %s/%s", collection, doc_id)
            return False
        return True

    async def delete(self, collection: str, doc_id: str) -> dict | None:
        ref = self._ref(collection, doc_id)

        @firestore.async_transactional
        async def _delete(transaction) -> dict | None:
            snapshot = await ref.get(transaction=transaction)
            if not snapshot.exists:
                return None
            transaction.delete(ref)
            return snapshot.to_dict()

        return await _delete(self._client.transaction())

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        field: str,
        expected: Any,
        updates: dict,
    ) -> None:
        ref = self._ref(collection, doc_id)

        @firestore.async_transactional
        async def _cas(transaction) -> None:
            snapshot = await ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError(f"{collection}/{doc_id} does not exist")
            if (snapshot.to_dict() or {}).get(field) != expected:
                raise StoreConflict(collection, doc_id, field)
            transaction.update(ref, updates)

        await _cas(self._client.transaction())

    async def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        amount: int = 1,
        extra: dict | None = None,
        expected: dict | None = None,
    ) -> bool:
        fields = {**(extra or {}), field: firestore.Increment(amount)}
        if not expected:
            return await self.update(collection, doc_id, fields)

        ref = self._ref(collection, doc_id)

        @firestore.async_transactional
        async def _guarded(transaction) -> bool:
            snapshot = await ref.get(transaction=transaction)
            if not snapshot.exists:
                return False
            current = snapshot.to_dict() or {}
            if any(current.get(key) != value for key, value in expected.items()):
                return False
            transaction.update(ref, fields)
            return True

        return await _guarded(self._client.transaction())

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, dict]]:
        query = self._client.collection(collection)
        for key, value in (filters or {}).items():
            query = query.where(filter=FieldFilter(key, "==", value))
        if order_by is not None:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        snapshots = await query.get()
        return [(snapshot.id, snapshot.to_dict()) for snapshot in snapshots]
