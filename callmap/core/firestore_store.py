"""Firestore-backed ``DocumentStore``."""

from typing import Any, Dict, List, Optional, Sequence

from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from callmap.core.database import (
    Document,
    DocumentMissing,
    DocumentStore,
    Filter,
    QueryError,
    Transaction,
)


def _snapshot_to_document(snapshot) -> Document:
    return Document(snapshot.id, snapshot.to_dict() or {})


class _FirestoreTransaction(Transaction):
    def __init__(self, client: firestore.Client, transaction: firestore.Transaction):
        self._client = client
        self._transaction = transaction

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        snapshot = self._client.collection(collection).document(doc_id).get(transaction=self._transaction)
        if not snapshot.exists:
            return None
        return _snapshot_to_document(snapshot)

    def create(self, collection: str, data: Dict[str, Any]) -> str:
        ref = self._client.collection(collection).document()
        self._transaction.set(ref, data)
        return ref.id

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._transaction.update(self._client.collection(collection).document(doc_id), data)


class FirestoreStore(DocumentStore):
    def __init__(self, client: firestore.Client):
        self._client = client

    def _build_query(self, collection: str, filters: Sequence[Filter]):
        query = self._client.collection(collection)
        for f in filters:
            query = query.where(filter=FieldFilter(f.field, f.op, f.value))
        return query

    def query(self, collection, filters=(), *, order_by=None, descending=False, limit=None) -> List[Document]:
        query = self._build_query(collection, filters)
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        try:
            return [_snapshot_to_document(snapshot) for snapshot in query.get()]
        except GoogleAPICallError as exc:
            # FailedPrecondition carries the "create composite index" hint.
            raise QueryError(str(exc)) from exc

    def get(self, collection, doc_id):
        snapshot = self._client.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return _snapshot_to_document(snapshot)

    def count(self, collection, filters=()):
        try:
            results = self._build_query(collection, filters).count().get()
        except GoogleAPICallError as exc:
            raise QueryError(str(exc)) from exc
        return int(results[0][0].value) if results else 0

    def add(self, collection, data):
        _, ref = self._client.collection(collection).add(data)
        return ref.id

    def set(self, collection, doc_id, data, *, merge=False):
        self._client.collection(collection).document(doc_id).set(data, merge=merge)

    def update(self, collection, doc_id, data):
        try:
            self._client.collection(collection).document(doc_id).update(data)
        except NotFound as exc:
            raise DocumentMissing(f"{collection}/{doc_id}") from exc

    def delete(self, collection, doc_id):
        self._client.collection(collection).document(doc_id).delete()

    def run_transaction(self, fn):
        transaction = self._client.transaction()

        @firestore.transactional
        def _run(txn):
            return fn(_FirestoreTransaction(self._client, txn))

        return _run(transaction)

    def ping(self):
        try:
            self._client.collection("users").limit(1).get()
        except GoogleAPICallError:
            return False
        return True
