"""
Factory for creating document store instances.
One store per collection, cached per backend.
"""

from enum import Enum
from typing import Dict, Tuple

from .strategies import DocumentStore, SQLAlchemyDocumentStore, InMemoryDocumentStore
from shortlink_app.logging_config import get_logger

logger = get_logger(__name__)


class StorageBackend(Enum):
    """Available document store backends"""
    SQLALCHEMY = "sqlalchemy"
    MEMORY = "memory"


class Collection(Enum):
    """Collections the core persists"""
    URLS = "urls"
    STATISTICS = "statistics"


# Unique keys enforced by the in-memory backend; the SQL backend gets the
# same guarantees from the table definitions in shortlink_app.models
UNIQUE_KEYS = {
    Collection.URLS: ("short_code",),
    Collection.STATISTICS: ("url_id",),
}


class DocumentStoreFactory:
    """
    Factory for document stores.

    Stores are cached per (backend, collection) so the URL service and the
    click recorder share the same instances.
    """

    _instances: Dict[Tuple[StorageBackend, Collection], DocumentStore] = {}

    @classmethod
    def create(cls, backend: StorageBackend, collection: Collection) -> DocumentStore:
        """
        Create or return cached store for a collection.

        Args:
            backend: Type of storage backend (from enum)
            collection: Which collection the store serves

        Returns:
            Cached DocumentStore instance
        """
        key = (backend, collection)
        if key in cls._instances:
            return cls._instances[key]

        if backend == StorageBackend.SQLALCHEMY:
            from shortlink_app.database.connection import Base, SessionLocal, engine
            from shortlink_app.models import URL, Statistics

            Base.metadata.create_all(bind=engine)
            model = URL if collection == Collection.URLS else Statistics
            instance = SQLAlchemyDocumentStore(model, SessionLocal)

        elif backend == StorageBackend.MEMORY:
            instance = InMemoryDocumentStore(unique_keys=UNIQUE_KEYS[collection])

        else:
            raise ValueError(f"Unknown storage backend: {backend}")

        logger.info("Document store initialized: %s/%s", backend.value, collection.value)
        cls._instances[key] = instance
        return instance

    @classmethod
    def clear_instances(cls):
        """Clear cached instances (for testing)"""
        cls._instances = {}
