"""
In-process DocumentStore backed by dicts.

A single asyncio.Lock serialises every mutation, which makes
compare_and_set, delete and increment atomic for all coroutines sharing
the same event loop.
"""
from __future__ import annotations

import asyncio
import copy
import itertools
import uuid
from typing import Any

from ..errors import NotFoundError, StoreConflict
from .base import DocumentStore


class InMemoryDocumentStore(DocumentStore):

    def __init__(self) -> None:
        # collection → doc_id → document
        self._collections: dict[str, dict[str, dict]] = {}
        # collection → doc_id → insertion sequence, used as ordering tie-break
        self._sequence: dict[str, dict[str, int]] = {}
        self._counter = itertools.count()
        self._lock = asyncio.Lock()
        # Number of mutating operations that actually changed something
        self.write_count = 0

    def _docs(self, collection: str) -> dict[str, dict]:
        self._sequence.setdefault(collection, {})
        return self._collections.setdefault(collection, {})

    def _put(self, collection: str, doc_id: str, data: dict) -> None:
        docs = self._docs(collection)
        if doc_id not in docs:
            self._sequence[collection][doc_id] = next(self._counter)
        docs[doc_id] = copy.deepcopy(data)
        self.write_count += 1

    async def get(self, collection: str, doc_id: str) -> dict | None:
        doc = self._docs(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection: str, doc_id: str, data: dict) -> None:
        async with self._lock:
            self._put(collection, doc_id, data)

    async def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        async with self._lock:
            self._put(collection, doc_id, data)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: dict) -> bool:
        async with self._lock:
            current = self._docs(collection).get(doc_id)
            if current is None:
                return False
            merged = {**current, **copy.deepcopy(fields)}
            self._put(collection, doc_id, merged)
            return True

    async def delete(self, collection: str, doc_id: str) -> dict | None:
        async with self._lock:
            removed = self._docs(collection).pop(doc_id, None)
            if removed is None:
                return None
            self._sequence[collection].pop(doc_id, None)
            self.write_count += 1
            return removed

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        field: str,
        expected: Any,
        updates: dict,
    ) -> None:
        async with self._lock:
            current = self._docs(collection).get(doc_id)
            if current is None:
                raise NotFoundError(f"{collection}/{doc_id} does not exist")
            if current.get(field) != expected:
                raise StoreConflict(collection, doc_id, field)
            self._put(collection, doc_id, {**current, **copy.deepcopy(updates)})

    async def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        amount: int = 1,
        extra: dict | None = None,
        expected: dict | None = None,
    ) -> bool:
        async with self._lock:
            current = self._docs(collection).get(doc_id)
            if current is None:
                return False
            if any(current.get(key) != value for key, value in (expected or {}).items()):
                return False
            merged = {**current, **copy.deepcopy(extra or {})}
            merged[field] = (current.get(field) or 0) + amount
            self._put(collection, doc_id, merged)
            return True

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, dict]]:
        docs = self._docs(collection)
        sequence = self._sequence[collection]
        matches = [
            (doc_id, doc)
            for doc_id, doc in docs.items()
            if all(doc.get(key) == value for key, value in (filters or {}).items())
        ]
        if order_by is not None:
            matches.sort(
                key=lambda item: (item[1].get(order_by) is not None, item[1].get(order_by), sequence[item[0]]),
                reverse=descending,
            )
        else:
            matches.sort(key=lambda item: sequence[item[0]])
        if limit is not None:
            matches = matches[:limit]
        return [(doc_id, copy.deepcopy(doc)) for doc_id, doc in matches]
