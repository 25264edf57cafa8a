"""
Document store strategies using Strategy Pattern.

The shortener core talks to storage only through DocumentStore, so the same
service code runs against:
- SQLAlchemy: SQLite for development, PostgreSQL in production
- In-memory: tests and single-process demos

Filters are plain dicts. Keys are field names, optionally suffixed with an
operator (Django lookup style):

    {"short_code": "abc123", "active": True, "expires_at__gt": now}

Supported operators: eq (default), ne, gt, gte, lt, lte, in.
Sort is a list of field names, "-" prefix for descending.
"""

import copy
import itertools
import operator
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select, update, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from shortlink_app.exceptions import DuplicateKey, StorageFailure
from shortlink_app.logging_config import get_logger

logger = get_logger(__name__)

Document = Dict[str, Any]

OPERATORS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "in": lambda value, options: value in options,
}


def parse_filter_key(key: str) -> Tuple[str, str]:
    """Split ``expires_at__gt`` into ``("expires_at", "gt")``"""
    field, sep, op = key.rpartition("__")
    if not sep:
        return key, "eq"
    if op not in OPERATORS:
        raise ValueError(f"Unknown filter operator: {op}")
    return field, op


class DocumentStore(ABC):
    """
    Abstract base class for document stores.

    One store instance serves one collection (URL records or statistics).
    All methods are async; backends that do blocking I/O keep each call short.
    """

    @abstractmethod
    async def find_one(self, filter: Document) -> Optional[Document]:
        """Return the first matching document or None"""
        pass

    @abstractmethod
    async def find(self, filter: Document, sort: Optional[List[str]] = None) -> List[Document]:
        """Return all matching documents, optionally sorted"""
        pass

    @abstractmethod
    async def insert_unique(self, document: Document) -> Document:
        """
        Insert a document, enforcing the collection's unique keys atomically.

        Returns:
            The stored document including its assigned ``id``

        Raises:
            DuplicateKey: a unique key is already taken
        """
        pass

    @abstractmethod
    async def update_one(self, filter: Document, patch: Document) -> Optional[Document]:
        """
        Apply ``patch`` to the first matching document.

        The filter is re-checked in the same write, so a filter on a version
        field works as a compare-and-swap.

        Returns:
            The updated document, or None when nothing matched

        Raises:
            DuplicateKey: the patch would violate a unique key
        """
        pass

    @abstractmethod
    async def increment(self, filter: Document, field: str, amount: int = 1) -> bool:
        """Atomically add ``amount`` to ``field`` of the first match"""
        pass

    @abstractmethod
    async def delete_one(self, filter: Document) -> bool:
        """Delete the first matching document; False if nothing matched"""
        pass

    @abstractmethod
    async def count(self, filter: Document) -> int:
        """Count matching documents"""
        pass


class SQLAlchemyDocumentStore(DocumentStore):
    """
    Document store over one SQLAlchemy model.

    Each call opens its own short-lived session from ``session_factory``,
    so the store is safe to share between requests and background tasks.

    Uniqueness relies on the table's unique indexes: an IntegrityError on
    insert/update becomes DuplicateKey. Any other SQLAlchemy error becomes
    StorageFailure so database details never reach callers.
    """

    def __init__(self, model, session_factory):
        """
        Args:
            model: Declarative model class (e.g. URL, Statistics)
            session_factory: Callable returning a new Session (sessionmaker)
        """
        self.model = model
        self.session_factory = session_factory
        self._columns = [column.name for column in model.__table__.columns]

    @contextmanager
    def _session(self):
        session: Session = self.session_factory()
        try:
            yield session
        except IntegrityError as e:
            session.rollback()
            raise DuplicateKey(f"Unique key violated in {self.model.__tablename__}") from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Storage error on %s: %s", self.model.__tablename__, e)
            raise StorageFailure() from e
        finally:
            session.close()

    def _conditions(self, filter: Document) -> list:
        conditions = []
        for key, value in filter.items():
            field, op = parse_filter_key(key)
            column = getattr(self.model, field)
            if op == "in":
                conditions.append(column.in_(list(value)))
            elif op == "eq" and value is None:
                conditions.append(column.is_(None))
            elif op == "ne" and value is None:
                conditions.append(column.is_not(None))
            else:
                conditions.append(OPERATORS[op](column, value))
        return conditions

    def _order_by(self, sort: Optional[List[str]]) -> list:
        clauses = []
        for field in sort or []:
            if field.startswith("-"):
                clauses.append(getattr(self.model, field[1:]).desc())
            else:
                clauses.append(getattr(self.model, field).asc())
        return clauses

    def _to_document(self, row) -> Document:
        return {name: copy.deepcopy(getattr(row, name)) for name in self._columns}

    def _first_id(self, session: Session, filter: Document) -> Optional[int]:
        return session.execute(
            select(self.model.id).where(*self._conditions(filter)).limit(1)
        ).scalar_one_or_none()

    async def find_one(self, filter: Document) -> Optional[Document]:
        with self._session() as session:
            row = session.execute(
                select(self.model).where(*self._conditions(filter)).limit(1)
            ).scalar_one_or_none()
            return self._to_document(row) if row is not None else None

    async def find(self, filter: Document, sort: Optional[List[str]] = None) -> List[Document]:
        with self._session() as session:
            rows = session.execute(
                select(self.model)
                .where(*self._conditions(filter))
                .order_by(*self._order_by(sort))
            ).scalars().all()
            return [self._to_document(row) for row in rows]

    async def insert_unique(self, document: Document) -> Document:
        with self._session() as session:
            row = self.model(**document)
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_document(row)

    async def update_one(self, filter: Document, patch: Document) -> Optional[Document]:
        with self._session() as session:
            row_id = self._first_id(session, filter)
            if row_id is None:
                return None

            # Filter repeated in the UPDATE: a concurrent writer that changed
            # a filtered field (e.g. version) makes this a no-op
            result = session.execute(
                update(self.model)
                .where(self.model.id == row_id, *self._conditions(filter))
                .values(**patch)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            if result.rowcount == 0:
                return None

            row = session.get(self.model, row_id)
            return self._to_document(row) if row is not None else None

    async def increment(self, filter: Document, field: str, amount: int = 1) -> bool:
        with self._session() as session:
            row_id = self._first_id(session, filter)
            if row_id is None:
                return False
            column = getattr(self.model, field)
            result = session.execute(
                update(self.model)
                .where(self.model.id == row_id)
                .values({field: column + amount})
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount > 0

    async def delete_one(self, filter: Document) -> bool:
        with self._session() as session:
            row_id = self._first_id(session, filter)
            if row_id is None:
                return False
            result = session.execute(
                delete(self.model)
                .where(self.model.id == row_id)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount > 0

    async def count(self, filter: Document) -> int:
        with self._session() as session:
            return session.execute(
                select(func.count()).select_from(self.model).where(*self._conditions(filter))
            ).scalar_one()


class InMemoryDocumentStore(DocumentStore):
    """
    In-memory document store using a dict keyed by id.

    Pros:
    - No external dependencies
    - Same semantics as the SQL backend (unique keys, compare-and-swap)
    - Good for development and testing

    Cons:
    - Not persistent (lost on restart)
    - Not shared between processes

    A threading.Lock makes every operation atomic, including the
    check-then-insert of unique keys.
    """

    def __init__(self, unique_keys: Iterable[str] = ()):
        """
        Args:
            unique_keys: Fields that must be unique across the collection
        """
        self.unique_keys = tuple(unique_keys)
        self._documents: Dict[int, Document] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @staticmethod
    def _matches(document: Document, filter: Document) -> bool:
        for key, expected in filter.items():
            field, op = parse_filter_key(key)
            actual = document.get(field)
            if op in ("gt", "gte", "lt", "lte") and actual is None:
                return False
            if not OPERATORS[op](actual, expected):
                return False
        return True

    def _first(self, filter: Document) -> Optional[Document]:
        for document in self._documents.values():
            if self._matches(document, filter):
                return document
        return None

    def _check_unique(self, candidate: Document, ignore_id: Optional[int] = None) -> None:
        for key in self.unique_keys:
            value = candidate.get(key)
            if value is None:
                continue
            for doc_id, document in self._documents.items():
                if doc_id != ignore_id and document.get(key) == value:
                    raise DuplicateKey(f"Duplicate value for {key}: {value}")

    async def find_one(self, filter: Document) -> Optional[Document]:
        with self._lock:
            document = self._first(filter)
            return copy.deepcopy(document) if document is not None else None

    async def find(self, filter: Document, sort: Optional[List[str]] = None) -> List[Document]:
        with self._lock:
            results = [copy.deepcopy(d) for d in self._documents.values() if self._matches(d, filter)]

        # Stable sorts applied from the last key to the first
        for field in reversed(sort or []):
            reverse = field.startswith("-")
            name = field.lstrip("-")
            results.sort(key=lambda d: d.get(name), reverse=reverse)
        return results

    async def insert_unique(self, document: Document) -> Document:
        with self._lock:
            self._check_unique(document)
            stored = copy.deepcopy(document)
            stored["id"] = next(self._ids)
            self._documents[stored["id"]] = stored
            return copy.deepcopy(stored)

    async def update_one(self, filter: Document, patch: Document) -> Optional[Document]:
        with self._lock:
            document = self._first(filter)
            if document is None:
                return None
            updated = {**document, **copy.deepcopy(patch)}
            self._check_unique(updated, ignore_id=document["id"])
            self._documents[document["id"]] = updated
            return copy.deepcopy(updated)

    async def increment(self, filter: Document, field: str, amount: int = 1) -> bool:
        with self._lock:
            document = self._first(filter)
            if document is None:
                return False
            document[field] = (document.get(field) or 0) + amount
            return True

    async def delete_one(self, filter: Document) -> bool:
        with self._lock:
            document = self._first(filter)
            if document is None:
                return False
            del self._documents[document["id"]]
            return True

    async def count(self, filter: Document) -> int:
        with self._lock:
            return sum(1 for d in self._documents.values() if self._matches(d, filter))
