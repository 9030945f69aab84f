"""
Document store access.

Routes talk to a ``DocumentStore`` rather than to Firestore directly so the
same handlers run against Firestore in production and against
``InMemoryStore`` in local development and tests.

The store handle is a lazily-initialized module singleton, mirroring the
Firebase Admin client lifecycle: first use builds it, ``reset_store`` forces
a rebuild.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from google.cloud.firestore_v1 import SERVER_TIMESTAMP, DELETE_FIELD

from callmap.core.config import settings
from callmap.core.dates import to_datetime
from callmap.core.errors import StoreUnavailableError

logger = logging.getLogger("callmap")

SUPPORTED_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in", "not-in", "array-contains")


class QueryError(RuntimeError):
    """A store query was rejected (missing composite index, bad cursor, backend error)."""


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, data: Dict[str, Any]) -> bool:
        present, actual = _lookup(data, self.field)
        if not present:
            # Firestore never matches documents missing the filtered field.
            return False
        expected = self.value
        if self.op == "in":
            return actual in expected
        if self.op == "not-in":
            return actual not in expected
        if self.op == "array-contains":
            return isinstance(actual, (list, tuple)) and expected in actual
        left, right = _comparable(actual, expected)
        if left is None and right is not None and self.op not in ("==", "!="):
            return False
        try:
            if self.op == "==":
                return left == right
            if self.op == "!=":
                return left != right
            if self.op == "<":
                return left < right
            if self.op == "<=":
                return left <= right
            if self.op == ">":
                return left > right
            return left >= right
        except TypeError:
            return False


@dataclass(frozen=True)
class Document:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, path: str, default: Any = None) -> Any:
        """Read a (dotted) field; missing and null both fall back to ``default``."""
        present, value = _lookup(self.data, path)
        if not present or value is None:
            return default
        return value

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.data}


def _lookup(data: Dict[str, Any], path: str):
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return False, None
        current = current[part]
    return True, current


def _comparable(actual: Any, expected: Any):
    if isinstance(expected, datetime):
        return to_datetime(actual), to_datetime(expected)
    return actual, expected


def sort_key(value: Any):
    """Total ordering for mixed stored values (timestamps compare chronologically)."""
    if value is None:
        return (0, 0.0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, float(value))
    moment = to_datetime(value)
    if moment is not None:
        return (1, moment.timestamp())
    return (2, str(value))


class Transaction(ABC):
    """Read-then-write unit passed to ``DocumentStore.run_transaction`` callbacks."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    def create(self, collection: str, data: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...


class DocumentStore(ABC):
    """Collection/document operations the routes rely on."""

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        ...

    def stream(self, collection: str) -> List[Document]:
        """Every document of a collection, unordered."""
        return self.query(collection)

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        ...

    @abstractmethod
    def add(self, collection: str, data: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any], *, merge: bool = False) -> None:
        ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Patch fields of an existing document; raises DocumentMissing when absent."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    def run_transaction(self, fn: Callable[[Transaction], Any]) -> Any:
        ...

    @abstractmethod
    def ping(self) -> bool:
        ...


class DocumentMissing(KeyError):
    """Raised by ``update`` when the target document does not exist."""


class _InMemoryTransaction(Transaction):
    def __init__(self, store: "InMemoryStore"):
        self._store = store
        self._writes: List[Callable[[], None]] = []

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return self._store._get_unlocked(collection, doc_id)

    def create(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self._writes.append(lambda: self._store._write(collection, doc_id, data, merge=False))
        return doc_id

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        if self._store._get_unlocked(collection, doc_id) is None:
            raise DocumentMissing(f"{collection}/{doc_id}")
        self._writes.append(lambda: self._store._write(collection, doc_id, data, merge=True))

    def commit(self) -> None:
        for write in self._writes:
            write()


class InMemoryStore(DocumentStore):
    """Process-local store with Firestore query semantics (used in dev and tests)."""

    def __init__(self, seed: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        for collection, docs in (seed or {}).items():
            for doc_id, data in docs.items():
                self._write(collection, doc_id, data, merge=False)

    # -- internals -------------------------------------------------------

    def _resolve(self, value: Any) -> Any:
        if value is SERVER_TIMESTAMP:
            return datetime.now(timezone.utc)
        return deepcopy(value)

    def _write(self, collection: str, doc_id: str, data: Dict[str, Any], *, merge: bool) -> None:
        docs = self._collections.setdefault(collection, {})
        current = dict(docs.get(doc_id, {})) if merge else {}
        for key, value in data.items():
            if value is DELETE_FIELD:
                current.pop(key, None)
            else:
                current[key] = self._resolve(value)
        docs[doc_id] = current

    def _get_unlocked(self, collection: str, doc_id: str) -> Optional[Document]:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(doc_id, deepcopy(data))

    # -- DocumentStore ---------------------------------------------------

    def query(self, collection, filters=(), *, order_by=None, descending=False, limit=None):
        with self._lock:
            docs = [
                Document(doc_id, deepcopy(data))
                for doc_id, data in self._collections.get(collection, {}).items()
                if all(f.matches(data) for f in filters)
            ]
        if order_by:
            docs = [d for d in docs if _lookup(d.data, order_by)[0]]
            docs.sort(key=lambda d: sort_key(d.get(order_by)), reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def get(self, collection, doc_id):
        with self._lock:
            return self._get_unlocked(collection, doc_id)

    def count(self, collection, filters=()):
        return len(self.query(collection, filters))

    def add(self, collection, data):
        doc_id = uuid.uuid4().hex[:20]
        with self._lock:
            self._write(collection, doc_id, data, merge=False)
        return doc_id

    def set(self, collection, doc_id, data, *, merge=False):
        with self._lock:
            self._write(collection, doc_id, data, merge=merge)

    def update(self, collection, doc_id, data):
        with self._lock:
            if doc_id not in self._collections.get(collection, {}):
                raise DocumentMissing(f"{collection}/{doc_id}")
            self._write(collection, doc_id, data, merge=True)

    def delete(self, collection, doc_id):
        with self._lock:
            self._collections.get(collection, {}).pop(doc_id, None)

    def run_transaction(self, fn):
        with self._lock:
            txn = _InMemoryTransaction(self)
            result = fn(txn)
            txn.commit()
            return result

    def ping(self):
        return True

    def seed(self, collection: str, docs: Iterable[Dict[str, Any]]) -> List[str]:
        """Insert documents; an ``id`` key becomes the document id."""
        ids = []
        for doc in docs:
            payload = dict(doc)
            doc_id = payload.pop("id", None) or uuid.uuid4().hex[:20]
            self.set(collection, doc_id, payload)
            ids.append(doc_id)
        return ids


_store: Optional[DocumentStore] = None
_store_lock = threading.Lock()


def _build_store() -> DocumentStore:
    if settings.STORE_BACKEND.lower() == "memory":
        logger.warning("Using in-memory document store (STORE_BACKEND=memory)")
        return InMemoryStore()

    from callmap.core.firebase import get_firestore_client
    from callmap.core.firestore_store import FirestoreStore

    client = get_firestore_client()
    if client is None:
        raise StoreUnavailableError("Database not initialized")
    return FirestoreStore(client)


def get_store() -> DocumentStore:
    """Return the process-wide store, building it on first use."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = _build_store()
    return _store


def set_store(store: Optional[DocumentStore]) -> None:
    """Install a specific store (tests, local tooling)."""
    global _store
    _store = store


def reset_store() -> None:
    """
    Reset the store instance.

    FOR TESTING ONLY - forces re-initialization on next get_store() call.
    """
    set_store(None)
