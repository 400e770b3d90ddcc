"""Student service: CRUD, soft delete and paginated search."""

import logging
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from school_billing.core.enums import SortDirection
from school_billing.core.exceptions import ValidationError
from school_billing.core.models import Department, Student, StudentDepartment
from school_billing.db.session import transaction, utcnow
from school_billing.services.query.schemas import PaginatedResult, Pagination, SearchOptions
from school_billing.services.query.service import ResourceQuery, run_search

from .schemas import (
    StudentCreate,
    StudentDepartmentItem,
    StudentResponse,
    StudentUpdate,
    StudentWithDepartments,
)

logger = logging.getLogger(__name__)

STUDENT_QUERY = ResourceQuery(
    model=Student,
    searchable=("firstname", "othernames", "phone", "address"),
    filterable=("firstname", "othernames", "phone", "address", "status", "is_active", "created_at"),
    sortable=("id", "firstname", "othernames", "status", "created_at", "updated_at"),
    default_order=(("firstname", SortDirection.ASC), ("othernames", SortDirection.ASC)),
)


def _to_response(s: Student) -> StudentResponse:
    return StudentResponse.model_validate(s)


async def _get_student(db: AsyncSession, student_id: int) -> Optional[Student]:
    result = await db.execute(select(Student).where(Student.id == student_id))
    return result.scalar_one_or_none()


async def add_student(db: AsyncSession, payload: StudentCreate) -> StudentResponse:
    async with transaction(db):
        student = Student(
            firstname=payload.firstname.strip(),
            othernames=payload.othernames.strip(),
            phone=payload.phone.strip(),
            address=payload.address.strip(),
            status=payload.status.value,
            is_active=True,
        )
        db.add(student)
        await db.flush()
    logger.info("Added student %s", student.id)
    return _to_response(student)


async def get_all_students(db: AsyncSession, include_inactive: bool = False) -> List[StudentResponse]:
    stmt = select(Student)
    if not include_inactive:
        stmt = stmt.where(Student.is_active.is_(True))
    stmt = stmt.order_by(Student.firstname, Student.othernames)
    result = await db.execute(stmt)
    return [_to_response(s) for s in result.scalars().all()]


async def get_student_by_id(db: AsyncSession, student_id: int) -> Optional[StudentResponse]:
    student = await _get_student(db, student_id)
    if not student:
        return None
    return _to_response(student)


async def update_student(db: AsyncSession, payload: StudentUpdate) -> Optional[StudentResponse]:
    if not payload.id:
        raise ValidationError("Student ID is required for update")
    async with transaction(db):
        student = await _get_student(db, payload.id)
        if not student:
            return None
        if payload.firstname is not None:
            student.firstname = payload.firstname.strip()
        if payload.othernames is not None:
            student.othernames = payload.othernames.strip()
        if payload.phone is not None:
            student.phone = payload.phone.strip()
        if payload.address is not None:
            student.address = payload.address.strip()
        if payload.status is not None:
            student.status = payload.status.value
        if payload.is_active is not None:
            student.is_active = payload.is_active
    return _to_response(student)


async def delete_student(db: AsyncSession, student_id: int, hard: bool = False) -> bool:
    """Soft delete by default; a hard delete cascades enrollments, bills and payments."""
    if hard:
        async with transaction(db):
            result = await db.execute(delete(Student).where(Student.id == student_id))
        if result.rowcount:
            logger.info("Hard-deleted student %s", student_id)
        return result.rowcount > 0
    async with transaction(db):
        result = await db.execute(
            update(Student)
            .where(Student.id == student_id)
            .values(is_active=False, updated_at=utcnow())
        )
    return result.rowcount > 0


async def search_students(
    db: AsyncSession,
    search: Optional[SearchOptions] = None,
    pagination: Optional[Pagination] = None,
    include_inactive: bool = False,
) -> PaginatedResult:
    return await run_search(db, STUDENT_QUERY, _to_response, search, pagination, include_inactive)


async def get_student_with_departments(db: AsyncSession, student_id: int) -> Optional[StudentWithDepartments]:
    student = await _get_student(db, student_id)
    if not student:
        return None
    rows = (
        await db.execute(
            select(Department, StudentDepartment)
            .join(StudentDepartment, StudentDepartment.department_id == Department.id)
            .where(
                StudentDepartment.student_id == student_id,
                StudentDepartment.is_active.is_(True),
                Department.is_active.is_(True),
            )
            .order_by(Department.name)
        )
    ).all()
    base = _to_response(student)
    return StudentWithDepartments(
        **base.model_dump(),
        departments=[
            StudentDepartmentItem(
                department_id=d.id,
                name=d.name,
                term=d.term,
                year=d.year,
                enrollment_status=sd.status,
                enrollment_date=sd.enrollment_date,
            )
            for d, sd in rows
        ],
    )
