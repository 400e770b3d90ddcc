"""Typed query builder: search, filter, sort and paginate one resource."""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_billing.core.enums import SortDirection
from school_billing.core.exceptions import ValidationError

from .schemas import FilterItem, FilterOperator, PaginatedResult, Pagination, SearchOptions


@dataclass(frozen=True)
class ResourceQuery:
    """Per-resource registry entry: which columns may be searched, filtered and sorted."""

    model: Any
    searchable: Tuple[str, ...]
    filterable: Tuple[str, ...]
    sortable: Tuple[str, ...]
    default_order: Tuple[Tuple[str, SortDirection], ...]

    def column(self, field: str, allowed: Sequence[str], purpose: str):
        if field not in allowed:
            raise ValidationError(
                f"Cannot {purpose} {self.model.__tablename__} by '{field}'. Allowed: {', '.join(allowed)}"
            )
        return getattr(self.model, field)


def validate_pagination(pagination: Pagination) -> None:
    if pagination.page < 1:
        raise ValidationError("page must be >= 1")
    if pagination.page_size <= 0:
        raise ValidationError("page_size must be > 0")


def _apply_filter(stmt, resource: ResourceQuery, item: FilterItem):
    col = resource.column(item.field, resource.filterable, "filter")
    op = item.operator
    val = item.value
    if op == FilterOperator.IS_NULL:
        return stmt.where(col.is_(None))
    if op == FilterOperator.IS_NOT_NULL:
        return stmt.where(col.isnot(None))
    if val is None or val == "":
        return stmt
    if op == FilterOperator.EQ:
        return stmt.where(col == val)
    if op == FilterOperator.NE:
        return stmt.where(col != val)
    if op == FilterOperator.GT:
        return stmt.where(col > val)
    if op == FilterOperator.GTE:
        return stmt.where(col >= val)
    if op == FilterOperator.LT:
        return stmt.where(col < val)
    if op == FilterOperator.LTE:
        return stmt.where(col <= val)
    if op == FilterOperator.LIKE:
        return stmt.where(col.ilike(f"%{val}%"))
    if op == FilterOperator.IN:
        if not isinstance(val, (list, tuple, set)):
            val = [val]
        return stmt.where(col.in_(list(val)))
    return stmt


def _apply_search(stmt, resource: ResourceQuery, term: Optional[str]):
    term = (term or "").strip()
    if not term:
        return stmt
    pattern = f"%{term}%"
    clauses = [getattr(resource.model, field).ilike(pattern) for field in resource.searchable]
    return stmt.where(or_(*clauses))


def _apply_sort(stmt, resource: ResourceQuery, sort_by: Optional[str], direction: SortDirection):
    if sort_by:
        col = resource.column(sort_by, resource.sortable, "sort")
        return stmt.order_by(col.asc() if direction == SortDirection.ASC else col.desc())
    clauses = []
    for field, d in resource.default_order:
        col = getattr(resource.model, field)
        clauses.append(col.asc() if d == SortDirection.ASC else col.desc())
    return stmt.order_by(*clauses)


def build_search_statement(
    resource: ResourceQuery,
    search: Optional[SearchOptions] = None,
    include_inactive: bool = False,
):
    search = search or SearchOptions()
    stmt = select(resource.model)
    if not include_inactive:
        stmt = stmt.where(resource.model.is_active.is_(True))
    stmt = _apply_search(stmt, resource, search.query)
    for item in search.filters:
        stmt = _apply_filter(stmt, resource, item)
    return _apply_sort(stmt, resource, search.sort_by, search.sort_order)


async def run_search(
    db: AsyncSession,
    resource: ResourceQuery,
    to_response: Callable[[Any], Any],
    search: Optional[SearchOptions] = None,
    pagination: Optional[Pagination] = None,
    include_inactive: bool = False,
) -> PaginatedResult:
    """
    Execute a search for one resource and wrap it as a PaginatedResult.
    Without pagination every matching row is returned on a single page.
    total_pages is ceil(total / page_size) on both paths, so it is 0 when nothing matches.
    """
    if pagination is not None:
        validate_pagination(pagination)
    stmt = build_search_statement(resource, search, include_inactive)

    if pagination is None:
        rows = (await db.execute(stmt)).scalars().all()
        data: List[Any] = [to_response(r) for r in rows]
        return PaginatedResult(
            data=data, total=len(data), page=1, page_size=len(data), total_pages=1 if data else 0
        )

    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await db.execute(count_stmt)).scalar() or 0

    offset = (pagination.page - 1) * pagination.page_size
    rows = (await db.execute(stmt.offset(offset).limit(pagination.page_size))).scalars().all()
    total_pages = (total + pagination.page_size - 1) // pagination.page_size

    return PaginatedResult(
        data=[to_response(r) for r in rows],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        total_pages=total_pages,
    )
