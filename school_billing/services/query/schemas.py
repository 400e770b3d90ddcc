"""Search, filter, sort and pagination schemas shared by all resources."""

from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from school_billing.core.enums import SortDirection

T = TypeVar("T")


class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    IN = "in"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


class FilterItem(BaseModel):
    """Single filter: field, operator, and optional value (not used for is_null / is_not_null)."""

    field: str = Field(..., min_length=1, description="Column name to filter on")
    operator: FilterOperator = FilterOperator.EQ
    value: Optional[Any] = None


class SearchOptions(BaseModel):
    """Text query is OR'd across the resource's searchable fields; filters are AND'd."""

    query: Optional[str] = None
    filters: List[FilterItem] = Field(default_factory=list)
    sort_by: Optional[str] = None
    sort_order: SortDirection = SortDirection.ASC


class Pagination(BaseModel):
    """1-based page number. Checked by the query service, not here."""

    page: int = 1
    page_size: int = 20


class PaginatedResult(BaseModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    page_size: int
    total_pages: int
