"""
Exception hierarchy shared by the geolock engine and its adapters.
"""
from __future__ import annotations


class GeolockError(Exception):
    """Base class for every error raised by geolock."""


class ValidationError(GeolockError):
    """Missing or malformed input. Raised before any side effect happens."""


class NotFoundError(GeolockError):
    """The requested lock (or other record) does not exist."""


class TransportError(GeolockError):
    """A remote call (telemetry, push, device command) failed."""


class StoreConflict(GeolockError):
    """A conditional write lost against a concurrent writer."""

    def __init__(self, collection: str, doc_id: str, field: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        self.field = field
        super().__init__(f"Conflict on {collection}/{doc_id}.{field}")
