"""
Indexed range queries with an in-memory fallback.

Firestore rejects a range filter combined with equality filters on other
fields unless a composite index exists. ``RangeQuery.run`` tries the indexed
query first; on ``QueryError`` it streams the whole collection and applies
every filter (the inclusive date range included) in memory. The outcome
records which path served the request.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from callmap.core.database import Document, DocumentStore, Filter, QueryError, sort_key
from callmap.core.dates import ensure_utc, is_in_range
from callmap.core.logging import log_event

logger = logging.getLogger("callmap")


@dataclass(frozen=True)
class QueryOutcome:
    documents: List[Document]
    degraded: bool = False

    def __iter__(self):
        return iter(self.documents)

    def __len__(self):
        return len(self.documents)


@dataclass(frozen=True)
class RangeQuery:
    collection: str
    field: str
    start: datetime
    end: datetime
    equals: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    def filters(self) -> List[Filter]:
        filters = [Filter(name, "==", value) for name, value in self.equals]
        filters.append(Filter(self.field, ">=", ensure_utc(self.start)))
        filters.append(Filter(self.field, "<=", ensure_utc(self.end)))
        return filters

    def matches(self, doc: Document) -> bool:
        for name, value in self.equals:
            if not Filter(name, "==", value).matches(doc.data):
                return False
        return is_in_range(doc.get(self.field), self.start, self.end)

    def run(self, store: DocumentStore) -> QueryOutcome:
        try:
            return QueryOutcome(store.query(self.collection, self.filters()))
        except QueryError as exc:
            log_event(
                "warning",
                "query.degraded",
                event_type="query_fallback",
                extra={"collection": self.collection, "field": self.field, "reason": str(exc)},
            )
            docs = [doc for doc in store.stream(self.collection) if self.matches(doc)]
            return QueryOutcome(docs, degraded=True)


def ordered_query(
    store: DocumentStore,
    collection: str,
    order_by: str,
    *,
    descending: bool = True,
    limit: Optional[int] = None,
    filters: Sequence[Filter] = (),
) -> QueryOutcome:
    """Ordered (and optionally limited) query; sorts in memory when the index is missing."""
    try:
        docs = store.query(collection, filters, order_by=order_by, descending=descending, limit=limit)
        return QueryOutcome(docs)
    except QueryError as exc:
        log_event(
            "warning",
            "query.degraded",
            event_type="query_fallback",
            extra={"collection": collection, "field": order_by, "reason": str(exc)},
        )
    docs = [doc for doc in store.stream(collection) if all(f.matches(doc.data) for f in filters)]
    docs.sort(key=lambda doc: sort_key(doc.get(order_by)), reverse=descending)
    if limit is not None:
        docs = docs[:limit]
    return QueryOutcome(docs, degraded=True)
