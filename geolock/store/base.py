"""
Document store interface used for lock state, alerts, tokens and delivery
summaries.

Documents are plain dicts addressed by (collection, doc_id). Backends must
make compare_and_set, delete and increment atomic with respect to each other.
"""
from __future__ import annotations

import abc
from typing import Any


class DocumentStore(abc.ABC):

    @abc.abstractmethod
    async def get(self, collection: str, doc_id: str) -> dict | None:
        """Return a copy of the document, or None."""

    @abc.abstractmethod
    async def set(self, collection: str, doc_id: str, data: dict) -> None:
        """Create or overwrite a document."""

    @abc.abstractmethod
    async def add(self, collection: str, data: dict) -> str:
        """Create a document under a fresh id and return the id."""

    @abc.abstractmethod
    async def update(self, collection: str, doc_id: str, fields: dict) -> bool:
        """
        Merge fields into an existing document.

        Returns False (and writes nothing) when the document does not exist.
        """

    @abc.abstractmethod
    async def delete(self, collection: str, doc_id: str) -> dict | None:
        """Remove a document and return its last content, or None if absent."""

    @abc.abstractmethod
    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        field: str,
        expected: Any,
        updates: dict,
    ) -> None:
        """
        Apply updates only if document[field] == expected.

        Raises StoreConflict when the current value differs and
        NotFoundError when the document does not exist.
        """

    @abc.abstractmethod
    async def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        amount: int = 1,
        extra: dict | None = None,
        expected: dict | None = None,
    ) -> bool:
        """
        Atomically add amount to a numeric field (plus extra fields).

        Returns False, writing nothing, when the document is missing or any
        expected field differs from its current value.
        """

    @abc.abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, dict]]:
        """Equality-filtered, ordered range query returning (doc_id, document) pairs."""

    async def close(self) -> None:
        """Release backend resources."""
