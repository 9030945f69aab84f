"""
callmap/features/analytics/reducers.py

Pure reducers over fetched documents.
All reducers: (documents, ...) -> plain dict/list read model, no store access.
"""

from collections import Counter, defaultdict
from typing import Any, Dict, Iterable, List, Optional

from callmap.core.database import Document
from callmap.core.dates import date_key

UNKNOWN = "unknown"


def group_key(value: Any, default: str = UNKNOWN) -> str:
    if value is None or value == "":
        return default
    return str(value)


def count_by(docs: Iterable[Document], path: str, default: str = UNKNOWN) -> Dict[str, int]:
    """Tally documents by a (dotted) field; absent fields land in ``default``."""
    counts: Counter = Counter()
    for doc in docs:
        counts[group_key(doc.get(path), default)] += 1
    return dict(counts)


def count_where(docs: Iterable[Document], path: str, value: Any) -> int:
    return sum(1 for doc in docs if doc.get(path) == value)


def daily_counts(docs: Iterable[Document], time_field: str = "timestamp") -> List[Dict[str, Any]]:
    """One ``{date, count}`` entry per UTC day that has documents, ascending."""
    counts: Counter = Counter()
    for doc in docs:
        key = date_key(doc.get(time_field))
        if key is not None:
            counts[key] += 1
    return [{"date": day, "count": counts[day]} for day in sorted(counts)]


def tally_outcomes(docs: Iterable[Document], path: str, *, success_field: str = "success") -> Dict[str, Dict[str, int]]:
    """``{key: {total, success, failed}}`` grouped by ``path``."""
    result: Dict[str, Dict[str, int]] = {}
    for doc in docs:
        bucket = result.setdefault(group_key(doc.get(path)), {"total": 0, "success": 0, "failed": 0})
        bucket["total"] += 1
        if doc.get(success_field):
            bucket["success"] += 1
        else:
            bucket["failed"] += 1
    return result


def top_counts(counts: Dict[str, int], limit: int, *, key_name: str, value_name: str = "count") -> List[Dict[str, Any]]:
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]
    return [{key_name: key, value_name: value} for key, value in ranked]


def number(value: Any, default: float = 0) -> float:
    """Numeric field value; missing, null and non-numeric values count as ``default``."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


def first_present(doc: Document, *paths: str, default: Optional[Any] = None) -> Any:
    """First truthy value among alternative field spellings (camelCase vs snake_case)."""
    for path in paths:
        value = doc.get(path)
        if value:
            return value
    return default


def as_number(value: float):
    """Integral floats back to int."""
    return int(value) if float(value).is_integer() else value
