"""Document store backends."""
from .base import DocumentStore
from .memory import InMemoryDocumentStore

__all__ = ["DocumentStore", "InMemoryDocumentStore"]
