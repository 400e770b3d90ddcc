"""
Bills service: department-wide bill generation, bill creation with line items,
CRUD, search and explicit total recalculation.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_billing.core.enums import BillStatus, SortDirection
from school_billing.core.exceptions import NotFoundError, ServiceError, ValidationError
from school_billing.core.models import Bill, BillItem, BillItemRelation, Department, Student, StudentDepartment
from school_billing.core.money import to_decimal
from school_billing.db.session import transaction
from school_billing.services.bill_items import service as bill_item_service
from school_billing.services.enrollments.schemas import BulkRowError
from school_billing.services.payments import service as payment_service
from school_billing.services.query.schemas import PaginatedResult, Pagination, SearchOptions
from school_billing.services.query.service import ResourceQuery, run_search
from school_billing.services.students.service import _to_response as _student_to_response

from .schemas import (
    BillLineItem,
    BillResponse,
    BillUpdate,
    BillWithItems,
    BulkBillResult,
    CreateBillWithItemsPayload,
    DepartmentBillItemRequest,
)

logger = logging.getLogger(__name__)

BILL_QUERY = ResourceQuery(
    model=Bill,
    searchable=("name", "note"),
    filterable=("name", "student_id", "department_id", "status", "due_date", "is_active", "total_amount"),
    sortable=("id", "name", "total_amount", "due_date", "status", "created_at"),
    default_order=(("name", SortDirection.ASC),),
)


def _to_response(b: Bill) -> BillResponse:
    return BillResponse(
        id=b.id,
        name=b.name,
        student_id=b.student_id,
        department_id=b.department_id,
        total_amount=to_decimal(b.total_amount),
        due_date=b.due_date,
        status=b.status,
        discount=to_decimal(b.discount),
        note=b.note,
        is_active=bool(b.is_active),
        created_at=b.created_at,
        updated_at=b.updated_at,
    )


async def _get_bill(db: AsyncSession, bill_id: int) -> Optional[Bill]:
    result = await db.execute(select(Bill).where(Bill.id == bill_id))
    return result.scalar_one_or_none()


# --- Department-wide bill generation ---
async def _resolve_item_amounts(
    db: AsyncSession,
    bill_items: List[DepartmentBillItemRequest],
    catalog: Dict[int, Optional[Decimal]],
) -> Tuple[Decimal, List[Tuple[int, Decimal, int]]]:
    """
    Resolve (bill_item_id, amount, quantity) for every requested item and the
    resulting total. catalog caches stored amounts across students.
    """
    total = Decimal("0")
    lines: List[Tuple[int, Decimal, int]] = []
    for item in bill_items:
        if item.amount is not None:
            amount = to_decimal(item.amount)
        else:
            if item.bill_item_id not in catalog:
                catalog[item.bill_item_id] = (
                    await db.execute(
                        select(BillItem.amount).where(
                            BillItem.id == item.bill_item_id,
                            BillItem.is_active.is_(True),
                        )
                    )
                ).scalar_one_or_none()
            stored = catalog[item.bill_item_id]
            if stored is None:
                raise NotFoundError(f"BillItem with ID {item.bill_item_id} not found or has no amount")
            amount = to_decimal(stored)
        quantity = int(item.quantity) if item.quantity is not None else 1
        total += amount * quantity
        lines.append((item.bill_item_id, amount, quantity))
    return total, lines


async def create_bills_for_department(
    db: AsyncSession,
    department_id: int,
    bill_items: List[DepartmentBillItemRequest],
    bill_name: str,
) -> BulkBillResult:
    """
    Issue one pending bill to every student actively enrolled in the department.

    A missing or soft-deleted department, or a failure while listing the enrolled students,
    aborts and rolls back everything. Per-student failures (unknown bill item,
    item without amount, insert error) are collected in errors and leave no
    bill for that student; the remaining bills still commit together.
    result.total_amount is the sum of the totals of the bills actually created.
    """
    result = BulkBillResult()
    catalog: Dict[int, Optional[Decimal]] = {}

    async with transaction(db):
        dept = (
            await db.execute(
                select(Department.id).where(Department.id == department_id, Department.is_active.is_(True))
            )
        ).scalar_one_or_none()
        if dept is None:
            raise NotFoundError(f"Department with ID {department_id} not found")

        student_ids = (
            await db.execute(
                select(Student.id)
                .join(StudentDepartment, StudentDepartment.student_id == Student.id)
                .where(
                    StudentDepartment.department_id == department_id,
                    StudentDepartment.is_active.is_(True),
                    Student.is_active.is_(True),
                )
                .order_by(Student.id)
            )
        ).scalars().all()

        for student_id in student_ids:
            try:
                async with db.begin_nested():
                    student_total, lines = await _resolve_item_amounts(db, bill_items, catalog)
                    bill = Bill(
                        name=bill_name or "",
                        student_id=student_id,
                        department_id=department_id,
                        total_amount=student_total,
                        status=BillStatus.pending.value,
                        is_active=True,
                    )
                    db.add(bill)
                    await db.flush()
                    for bill_item_id, amount, quantity in lines:
                        db.add(
                            BillItemRelation(
                                bill_id=bill.id,
                                bill_item_id=bill_item_id,
                                amount=amount,
                                quantity=quantity,
                            )
                        )
                    await db.flush()
            except (ServiceError, SQLAlchemyError) as e:
                message = getattr(e, "message", None) or str(e)
                logger.warning("Bill for student %s in department %s failed: %s", student_id, department_id, message)
                result.errors.append(BulkRowError(student_id=student_id, error=message))
                continue
            result.bills_created += 1
            result.total_amount += student_total

    logger.info(
        "Generated %d bills for department %s totalling %s (%d errors)",
        result.bills_created,
        department_id,
        result.total_amount,
        len(result.errors),
    )
    return result


# --- Single bill with line items ---
async def create_bill_with_items(db: AsyncSession, payload: CreateBillWithItemsPayload) -> BillResponse:
    """
    Create one bill and all of its line items atomically.

    Item amounts are taken as supplied (0 when omitted); catalog amounts are
    not looked up. total_amount = sum(amount * quantity - discount) - bill discount.
    Any failure rolls back the bill and every line item already inserted.
    """
    async with transaction(db):
        student = (
            await db.execute(select(Student.id).where(Student.id == payload.student_id))
        ).scalar_one_or_none()
        if student is None:
            raise NotFoundError(f"Student with ID {payload.student_id} not found")
        dept = (
            await db.execute(select(Department.id).where(Department.id == payload.department_id))
        ).scalar_one_or_none()
        if dept is None:
            raise NotFoundError(f"Department with ID {payload.department_id} not found")

        bill = Bill(
            name=payload.name.strip(),
            student_id=payload.student_id,
            department_id=payload.department_id,
            total_amount=Decimal("0"),
            due_date=payload.due_date,
            note=payload.note,
            discount=to_decimal(payload.discount),
            status=BillStatus.pending.value,
            is_active=True,
        )
        db.add(bill)
        await db.flush()

        total_amount = Decimal("0")
        for item in payload.items:
            exists = (
                await db.execute(select(BillItem.id).where(BillItem.id == item.bill_item_id))
            ).scalar_one_or_none()
            if exists is None:
                raise NotFoundError(f"BillItem with ID {item.bill_item_id} not found")
            amount = to_decimal(item.amount)
            quantity = item.quantity or 1
            discount = to_decimal(item.discount)
            db.add(
                BillItemRelation(
                    bill_id=bill.id,
                    bill_item_id=item.bill_item_id,
                    amount=amount,
                    quantity=quantity,
                    discount=discount,
                )
            )
            await db.flush()
            total_amount += amount * quantity - discount

        bill.total_amount = total_amount - to_decimal(payload.discount)
        await db.flush()

    logger.info("Created bill %s for student %s with %d items", bill.id, bill.student_id, len(payload.items))
    return _to_response(bill)


async def recalculate_bill_total(db: AsyncSession, bill_id: int) -> BillResponse:
    """Recompute total_amount from the bill's current active line items and bill discount."""
    async with transaction(db):
        bill = await _get_bill(db, bill_id)
        if not bill:
            raise NotFoundError(f"Bill with ID {bill_id} not found")
        relations = (
            await db.execute(
                select(BillItemRelation).where(
                    BillItemRelation.bill_id == bill_id,
                    BillItemRelation.is_active.is_(True),
                )
            )
        ).scalars().all()
        total = sum(
            (to_decimal(r.amount) * (r.quantity or 1) - to_decimal(r.discount) for r in relations),
            Decimal("0"),
        )
        bill.total_amount = total - to_decimal(bill.discount)
        await db.flush()
        await payment_service.sync_bill_status(db, bill)
    return _to_response(bill)


# --- CRUD ---
async def get_all_bills(db: AsyncSession, include_inactive: bool = False) -> List[BillResponse]:
    stmt = select(Bill)
    if not include_inactive:
        stmt = stmt.where(Bill.is_active.is_(True))
    result = await db.execute(stmt.order_by(Bill.name, Bill.id))
    return [_to_response(b) for b in result.scalars().all()]


async def get_bill_by_id(db: AsyncSession, bill_id: int) -> Optional[BillResponse]:
    bill = await _get_bill(db, bill_id)
    if not bill:
        return None
    return _to_response(bill)


async def update_bill(db: AsyncSession, payload: BillUpdate) -> Optional[BillResponse]:
    if not payload.id:
        raise ValidationError("Bill ID is required for update")
    async with transaction(db):
        bill = await _get_bill(db, payload.id)
        if not bill:
            return None
        if payload.name is not None:
            bill.name = payload.name.strip()
        if payload.student_id is not None:
            bill.student_id = payload.student_id
        if payload.department_id is not None:
            bill.department_id = payload.department_id
        if payload.total_amount is not None:
            bill.total_amount = to_decimal(payload.total_amount)
        if payload.due_date is not None:
            bill.due_date = payload.due_date
        if payload.status is not None:
            bill.status = payload.status.value
        if payload.discount is not None:
            bill.discount = to_decimal(payload.discount)
        if payload.note is not None:
            bill.note = payload.note
        if payload.is_active is not None:
            bill.is_active = payload.is_active
    return _to_response(bill)


async def delete_bill(db: AsyncSession, bill_id: int, hard: bool = True) -> bool:
    """Hard delete by default; line items and payments cascade in the store."""
    async with transaction(db):
        if hard:
            result = await db.execute(delete(Bill).where(Bill.id == bill_id))
            return result.rowcount > 0
        bill = await _get_bill(db, bill_id)
        if not bill:
            return False
        bill.is_active = False
        return True


async def search_bills(
    db: AsyncSession,
    search: Optional[SearchOptions] = None,
    pagination: Optional[Pagination] = None,
    include_inactive: bool = False,
) -> PaginatedResult:
    return await run_search(db, BILL_QUERY, _to_response, search, pagination, include_inactive)


async def get_bills_by_student_id(
    db: AsyncSession,
    student_id: int,
    include_inactive: bool = False,
) -> List[BillResponse]:
    stmt = select(Bill).where(Bill.student_id == student_id)
    if not include_inactive:
        stmt = stmt.where(Bill.is_active.is_(True))
    result = await db.execute(stmt.order_by(Bill.created_at, Bill.id))
    return [_to_response(b) for b in result.scalars().all()]


async def get_bill_with_items(db: AsyncSession, bill_id: int) -> Optional[BillWithItems]:
    """Bill with its line items (joined to the catalog entry), payments and student."""
    bill = (
        await db.execute(
            select(Bill)
            .where(Bill.id == bill_id)
            .options(
                selectinload(Bill.items).selectinload(BillItemRelation.bill_item),
                selectinload(Bill.payments),
                selectinload(Bill.student),
            )
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not bill:
        return None

    items = [
        BillLineItem(
            id=rel.id,
            bill_item_id=rel.bill_item_id,
            amount=to_decimal(rel.amount),
            quantity=rel.quantity,
            discount=to_decimal(rel.discount),
            line_total=to_decimal(rel.amount) * rel.quantity - to_decimal(rel.discount),
            bill_item=bill_item_service._to_response(rel.bill_item),
        )
        for rel in sorted(bill.items, key=lambda r: r.id)
        if rel.is_active
    ]
    payments = [payment_service._to_response(p) for p in sorted(bill.payments, key=lambda p: p.id) if p.is_active]
    amount_paid = await payment_service.get_amount_paid(db, bill.id)
    total = to_decimal(bill.total_amount)
    return BillWithItems(
        **_to_response(bill).model_dump(),
        items=items,
        payments=payments,
        student=_student_to_response(bill.student) if bill.student else None,
        amount_paid=amount_paid,
        amount_due=total - amount_paid,
    )
