"""Department service: CRUD, search, and transactional create/update with the bill item catalog."""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_billing.core.enums import SortDirection
from school_billing.core.exceptions import NotFoundError, ValidationError
from school_billing.core.models import BillItem, Department, Student, StudentDepartment
from school_billing.core.money import to_decimal
from school_billing.db.session import transaction
from school_billing.services.bill_items import service as bill_item_service
from school_billing.services.query.schemas import PaginatedResult, Pagination, SearchOptions
from school_billing.services.query.service import ResourceQuery, run_search
from school_billing.services.students.schemas import StudentResponse

from .schemas import (
    DepartmentCreate,
    DepartmentCreateWithBillItems,
    DepartmentResponse,
    DepartmentUpdate,
    DepartmentWithBillItems,
)

logger = logging.getLogger(__name__)

DEPARTMENT_QUERY = ResourceQuery(
    model=Department,
    searchable=("name", "term", "year", "description"),
    filterable=("name", "term", "year", "is_active", "start_date", "end_date"),
    sortable=("id", "name", "term", "year", "start_date", "end_date", "created_at"),
    default_order=(("name", SortDirection.ASC),),
)


def _to_response(d: Department) -> DepartmentResponse:
    return DepartmentResponse(
        id=d.id,
        name=d.name,
        term=d.term,
        year=d.year,
        description=d.description,
        start_date=d.start_date,
        end_date=d.end_date,
        is_active=bool(d.is_active),
        created_at=d.created_at,
        updated_at=d.updated_at,
    )


def _check_dates(start_date, end_date) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date cannot be before start_date")


async def _get_department(db: AsyncSession, department_id: int) -> Optional[Department]:
    result = await db.execute(select(Department).where(Department.id == department_id))
    return result.scalar_one_or_none()


def _new_department(payload: DepartmentCreate) -> Department:
    _check_dates(payload.start_date, payload.end_date)
    return Department(
        name=payload.name.strip(),
        term=payload.term.strip(),
        year=payload.year.strip(),
        description=(payload.description or "").strip() or None,
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_active=True,
    )


async def add_department(db: AsyncSession, payload: DepartmentCreate) -> DepartmentResponse:
    async with transaction(db):
        dept = _new_department(payload)
        db.add(dept)
        await db.flush()
    return _to_response(dept)


async def create_department(db: AsyncSession, payload: DepartmentCreateWithBillItems) -> DepartmentWithBillItems:
    """
    Insert the department and every supplied bill item in one transaction.
    total_amount is the sum of the supplied item amounts. Any failure rolls back all rows.
    """
    async with transaction(db):
        dept = _new_department(payload)
        db.add(dept)
        await db.flush()

        total_amount = Decimal("0")
        items: List[BillItem] = []
        for item in payload.bill_items:
            bi = await bill_item_service.insert_bill_item(db, dept.id, item)
            items.append(bi)
            total_amount += to_decimal(item.amount)

    logger.info("Created department %s with %d bill items", dept.id, len(items))
    return DepartmentWithBillItems(
        **_to_response(dept).model_dump(),
        bill_items=[bill_item_service._to_response(bi) for bi in items],
        total_amount=total_amount,
    )


async def get_all_departments(db: AsyncSession, include_inactive: bool = False) -> List[DepartmentResponse]:
    stmt = select(Department)
    if not include_inactive:
        stmt = stmt.where(Department.is_active.is_(True))
    result = await db.execute(stmt.order_by(Department.name))
    return [_to_response(d) for d in result.scalars().all()]


async def get_department_by_id(db: AsyncSession, department_id: int) -> Optional[DepartmentResponse]:
    dept = await _get_department(db, department_id)
    if not dept:
        return None
    return _to_response(dept)


async def update_department(db: AsyncSession, payload: DepartmentUpdate) -> DepartmentResponse:
    """
    Update the department row and, when bill_items is supplied, replace the
    whole catalog: existing items are deleted (their bill relations cascade)
    and the supplied set is inserted. One transaction.

    Unlike the single-row updates, which return None for an unknown id, this is
    an atomic multi-row operation and a missing department raises NotFoundError.
    """
    if not payload.id:
        raise ValidationError("Department ID is required for update")
    async with transaction(db):
        dept = await _get_department(db, payload.id)
        if not dept:
            raise NotFoundError(f"Department with ID {payload.id} not found")
        if payload.name is not None:
            dept.name = payload.name.strip()
        if payload.term is not None:
            dept.term = payload.term.strip()
        if payload.year is not None:
            dept.year = payload.year.strip()
        if payload.description is not None:
            dept.description = payload.description.strip() or None
        if payload.start_date is not None:
            dept.start_date = payload.start_date
        if payload.end_date is not None:
            dept.end_date = payload.end_date
        if payload.is_active is not None:
            dept.is_active = payload.is_active
        _check_dates(dept.start_date, dept.end_date)
        await db.flush()

        if payload.bill_items is not None:
            await db.execute(delete(BillItem).where(BillItem.department_id == dept.id))
            for item in payload.bill_items:
                await bill_item_service.insert_bill_item(db, dept.id, item)
            logger.info("Replaced bill items of department %s (%d items)", dept.id, len(payload.bill_items))
    return _to_response(dept)


async def delete_department(db: AsyncSession, department_id: int, hard: bool = True) -> bool:
    """Hard delete by default; bill items, enrollments and bills cascade in the store."""
    async with transaction(db):
        if hard:
            result = await db.execute(delete(Department).where(Department.id == department_id))
            deleted = result.rowcount > 0
        else:
            dept = await _get_department(db, department_id)
            deleted = dept is not None
            if dept:
                dept.is_active = False
    if deleted:
        logger.info("Deleted department %s (hard=%s)", department_id, hard)
    return deleted


async def search_departments(
    db: AsyncSession,
    search: Optional[SearchOptions] = None,
    pagination: Optional[Pagination] = None,
    include_inactive: bool = False,
) -> PaginatedResult:
    return await run_search(db, DEPARTMENT_QUERY, _to_response, search, pagination, include_inactive)


async def get_department_with_bill_items(db: AsyncSession, department_id: int) -> Optional[DepartmentWithBillItems]:
    dept = await _get_department(db, department_id)
    if not dept:
        return None
    items = await bill_item_service.get_bill_items_by_department(db, department_id)
    return DepartmentWithBillItems(
        **_to_response(dept).model_dump(),
        bill_items=items,
        total_amount=sum((i.amount for i in items), Decimal("0")),
    )


async def get_students_in_department(
    db: AsyncSession,
    department_id: int,
    include_inactive: bool = False,
) -> List[StudentResponse]:
    stmt = (
        select(Student)
        .join(StudentDepartment, StudentDepartment.student_id == Student.id)
        .where(StudentDepartment.department_id == department_id)
    )
    if not include_inactive:
        stmt = stmt.where(StudentDepartment.is_active.is_(True), Student.is_active.is_(True))
    result = await db.execute(stmt.order_by(Student.firstname, Student.othernames))
    return [StudentResponse.model_validate(s) for s in result.scalars().all()]
