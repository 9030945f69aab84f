"""
callmap/models/common.py
Shared request shapes: inclusive date ranges and page/pageSize pagination.
"""

from datetime import datetime
from typing import Any, Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from callmap.core.dates import ensure_utc
from callmap.core.responses import validation_error


class DateRange(BaseModel):
    """Inclusive [start, end]; naive timestamps are read as UTC."""

    model_config = ConfigDict(frozen=True)

    start: datetime = Field(description="Range start (inclusive)")
    end: datetime = Field(description="Range end (inclusive)")

    @field_validator("start", "end")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _ordered(self):
        if self.start > self.end:
            raise ValueError("start must be before or equal to end")
        return self

    def bounds(self) -> Tuple[datetime, datetime]:
        return self.start, self.end


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100, alias="pageSize")


def parse_date_range(payload: Dict[str, Any], message: str = "Validation failed") -> DateRange:
    """Validate a raw body into a DateRange, raising a 400 with a route-specific message."""
    try:
        return DateRange.model_validate(payload)
    except PydanticValidationError as exc:
        details = [{"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]} for err in exc.errors()]
        raise validation_error(details, message=message)
