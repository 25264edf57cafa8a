"""
Document storage module.

Implements the Strategy Pattern for pluggable storage: the same service code
persists URL records and statistics through SQLAlchemy or in memory.
"""

from .strategies import DocumentStore, SQLAlchemyDocumentStore, InMemoryDocumentStore
from .factory import DocumentStoreFactory, StorageBackend, Collection

__all__ = [
    "DocumentStore",
    "SQLAlchemyDocumentStore",
    "InMemoryDocumentStore",
    "DocumentStoreFactory",
    "StorageBackend",
    "Collection",
]
