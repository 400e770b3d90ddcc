"""Bill item catalog service and bill item relations (bill line items)."""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_billing.core.enums import SortDirection
from school_billing.core.exceptions import NotFoundError, ValidationError
from school_billing.core.models import Bill, BillItem, BillItemRelation, Department
from school_billing.core.money import to_decimal
from school_billing.db.session import transaction
from school_billing.services.query.schemas import PaginatedResult, Pagination, SearchOptions
from school_billing.services.query.service import ResourceQuery, run_search

from .schemas import (
    BillItemBase,
    BillItemCreate,
    BillItemRelationCreate,
    BillItemRelationResponse,
    BillItemResponse,
    BillItemUpdate,
)

logger = logging.getLogger(__name__)

BILL_ITEM_QUERY = ResourceQuery(
    model=BillItem,
    searchable=("name", "description", "category"),
    filterable=("name", "category", "department_id", "is_required", "is_active", "amount"),
    sortable=("id", "name", "amount", "category", "department_id", "created_at"),
    default_order=(("name", SortDirection.ASC),),
)


def _to_response(bi: BillItem) -> BillItemResponse:
    return BillItemResponse(
        id=bi.id,
        name=bi.name,
        amount=to_decimal(bi.amount),
        department_id=bi.department_id,
        description=bi.description,
        category=bi.category,
        is_required=bool(bi.is_required),
        is_active=bool(bi.is_active),
        created_at=bi.created_at,
        updated_at=bi.updated_at,
    )


def _relation_to_response(rel: BillItemRelation) -> BillItemRelationResponse:
    return BillItemRelationResponse.model_validate(rel)


def _clean(val: Optional[str]) -> Optional[str]:
    return (val or "").strip() or None


async def insert_bill_item(db: AsyncSession, department_id: int, item: BillItemBase) -> BillItem:
    """Stage a bill item inside the caller's transaction and flush it to get its id."""
    bi = BillItem(
        name=item.name.strip(),
        amount=to_decimal(item.amount),
        department_id=department_id,
        description=_clean(item.description),
        category=_clean(item.category),
        is_required=item.is_required,
        is_active=True,
    )
    db.add(bi)
    await db.flush()
    return bi


async def add_bill_item(db: AsyncSession, payload: BillItemCreate) -> BillItemResponse:
    async with transaction(db):
        dept = (
            await db.execute(select(Department.id).where(Department.id == payload.department_id))
        ).scalar_one_or_none()
        if dept is None:
            raise NotFoundError(f"Department with ID {payload.department_id} not found")
        bi = await insert_bill_item(db, payload.department_id, payload)
    return _to_response(bi)


async def get_all_bill_items(db: AsyncSession, include_inactive: bool = False) -> List[BillItemResponse]:
    stmt = select(BillItem)
    if not include_inactive:
        stmt = stmt.where(BillItem.is_active.is_(True))
    result = await db.execute(stmt.order_by(BillItem.name))
    return [_to_response(bi) for bi in result.scalars().all()]


async def get_bill_item_by_id(db: AsyncSession, bill_item_id: int) -> Optional[BillItemResponse]:
    bi = (await db.execute(select(BillItem).where(BillItem.id == bill_item_id))).scalar_one_or_none()
    if not bi:
        return None
    return _to_response(bi)


async def update_bill_item(db: AsyncSession, payload: BillItemUpdate) -> Optional[BillItemResponse]:
    if not payload.id:
        raise ValidationError("Bill item ID is required for update")
    async with transaction(db):
        bi = (await db.execute(select(BillItem).where(BillItem.id == payload.id))).scalar_one_or_none()
        if not bi:
            return None
        if payload.name is not None:
            bi.name = payload.name.strip()
        if payload.amount is not None:
            bi.amount = to_decimal(payload.amount)
        if payload.department_id is not None:
            bi.department_id = payload.department_id
        if payload.description is not None:
            bi.description = _clean(payload.description)
        if payload.category is not None:
            bi.category = _clean(payload.category)
        if payload.is_required is not None:
            bi.is_required = payload.is_required
        if payload.is_active is not None:
            bi.is_active = payload.is_active
    return _to_response(bi)


async def delete_bill_item(db: AsyncSession, bill_item_id: int, hard: bool = True) -> bool:
    """Hard delete by default; the store cascades the item's bill relations."""
    async with transaction(db):
        if hard:
            result = await db.execute(delete(BillItem).where(BillItem.id == bill_item_id))
        else:
            bi = (await db.execute(select(BillItem).where(BillItem.id == bill_item_id))).scalar_one_or_none()
            if not bi:
                return False
            bi.is_active = False
            return True
    return result.rowcount > 0


async def search_bill_items(
    db: AsyncSession,
    search: Optional[SearchOptions] = None,
    pagination: Optional[Pagination] = None,
    include_inactive: bool = False,
) -> PaginatedResult:
    return await run_search(db, BILL_ITEM_QUERY, _to_response, search, pagination, include_inactive)


async def get_bill_items_by_department(
    db: AsyncSession,
    department_id: int,
    include_inactive: bool = False,
) -> List[BillItemResponse]:
    stmt = select(BillItem).where(BillItem.department_id == department_id)
    if not include_inactive:
        stmt = stmt.where(BillItem.is_active.is_(True))
    result = await db.execute(stmt.order_by(BillItem.name))
    return [_to_response(bi) for bi in result.scalars().all()]


# --- Bill item relations ---
async def add_bill_item_relation(db: AsyncSession, payload: BillItemRelationCreate) -> BillItemRelationResponse:
    """Attach a line item to an existing bill. The bill total is not recomputed here."""
    async with transaction(db):
        bill_exists = (await db.execute(select(Bill.id).where(Bill.id == payload.bill_id))).scalar_one_or_none()
        if bill_exists is None:
            raise NotFoundError(f"Bill with ID {payload.bill_id} not found")
        item_exists = (
            await db.execute(select(BillItem.id).where(BillItem.id == payload.bill_item_id))
        ).scalar_one_or_none()
        if item_exists is None:
            raise NotFoundError(f"BillItem with ID {payload.bill_item_id} not found")
        rel = BillItemRelation(
            bill_id=payload.bill_id,
            bill_item_id=payload.bill_item_id,
            amount=to_decimal(payload.amount),
            quantity=payload.quantity,
            discount=to_decimal(payload.discount),
            is_active=True,
        )
        db.add(rel)
        await db.flush()
    return _relation_to_response(rel)


async def get_all_bill_item_relations(db: AsyncSession) -> List[BillItemRelationResponse]:
    result = await db.execute(
        select(BillItemRelation).order_by(BillItemRelation.bill_id, BillItemRelation.id)
    )
    return [_relation_to_response(r) for r in result.scalars().all()]


async def get_bill_item_relation_by_id(db: AsyncSession, relation_id: int) -> Optional[BillItemRelationResponse]:
    rel = (
        await db.execute(select(BillItemRelation).where(BillItemRelation.id == relation_id))
    ).scalar_one_or_none()
    if not rel:
        return None
    return _relation_to_response(rel)


async def get_department_total_bill(db: AsyncSession, department_id: int) -> Decimal:
    """Catalog amount times quantity over every bill relation of the department's items."""
    result = await db.execute(
        select(func.coalesce(func.sum(BillItem.amount * BillItemRelation.quantity), 0))
        .select_from(BillItem)
        .join(BillItemRelation, BillItemRelation.bill_item_id == BillItem.id)
        .where(
            BillItem.department_id == department_id,
            BillItem.is_active.is_(True),
            BillItemRelation.is_active.is_(True),
        )
    )
    return to_decimal(result.scalar())
