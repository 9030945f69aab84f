"""Response envelopes shared by every route."""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypeVar

from callmap.core.dates import isoformat_z
from callmap.core.errors import AppError, NotFoundError, ValidationError

T = TypeVar("T")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def round2(value: float) -> float:
    """Round half up to two decimals: floor(x*100 + 0.5) / 100."""
    return math.floor(value * 100 + 0.5) / 100


def percentage(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return round2(part / whole * 100)


def metric_response(data: Any, *, date_range: Optional[Tuple[datetime, datetime]] = None, generated_at: Optional[datetime] = None) -> Dict[str, Any]:
    meta: Dict[str, Any] = {"generatedAt": isoformat_z(generated_at or datetime.now(timezone.utc))}
    if date_range is not None:
        meta["dateRange"] = {"start": isoformat_z(date_range[0]), "end": isoformat_z(date_range[1])}
    return {"data": data, "meta": meta}


def paginate(items: Sequence[T], page: int, page_size: int) -> List[T]:
    start = (page - 1) * page_size
    return list(items[start:start + page_size])


def paginated_response(items: Sequence[Any], page: int, page_size: int) -> Dict[str, Any]:
    """Slice the full filtered set; ``total`` counts everything, not the page."""
    return {
        "items": paginate(items, page, page_size),
        "total": len(items),
        "page": page,
        "pageSize": page_size,
    }


def list_response(data: Sequence[Any], total: Optional[int] = None) -> Dict[str, Any]:
    return {"data": list(data), "total": len(data) if total is None else total}


def error_response(message: str, status_code: int = 500, *, code: Optional[str] = None, details: Any = None) -> AppError:
    return AppError(message, status_code=status_code, code=code, details=details)


def validation_error(details: Any = None, *, message: str = "Validation failed") -> ValidationError:
    return ValidationError(message, details=details)


def not_found_error(resource: str) -> NotFoundError:
    return NotFoundError(f"{resource} not found")


def server_error(message: str = "Internal server error") -> AppError:
    return error_response(message)
