"""Enrollment service: bulk enroll students into a department, list and withdraw enrollments."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from school_billing.core.enums import EnrollmentStatus
from school_billing.core.exceptions import NotFoundError, ServiceError
from school_billing.core.models import Department, Student, StudentDepartment
from school_billing.db.session import transaction, utcnow
from school_billing.services.departments.schemas import DepartmentResponse
from school_billing.services.departments.service import _to_response as _department_to_response
from school_billing.services.students.schemas import StudentResponse

from .schemas import BulkEnrollmentResult, BulkRowError, EnrollmentResponse, EnrollStudentsPayload

logger = logging.getLogger(__name__)

STUDENT_NOT_FOUND = "Student not found"
ALREADY_ENROLLED = "Already enrolled"


async def _enroll_one(
    db: AsyncSession,
    department_id: int,
    student_id: int,
    enrollment_date: datetime,
) -> Optional[str]:
    """Enroll a single student. Returns an error message instead of raising for business failures."""
    student = (
        await db.execute(select(Student.id).where(Student.id == student_id, Student.is_active.is_(True)))
    ).scalar_one_or_none()
    if student is None:
        return STUDENT_NOT_FOUND

    existing = (
        await db.execute(
            select(StudentDepartment).where(
                StudentDepartment.student_id == student_id,
                StudentDepartment.department_id == department_id,
            )
        )
    ).scalar_one_or_none()
    if existing is not None:
        if existing.is_active and existing.status == EnrollmentStatus.active.value:
            return ALREADY_ENROLLED
        # One row per (student, department): re-enrollment reactivates the withdrawn row.
        existing.status = EnrollmentStatus.active.value
        existing.is_active = True
        existing.enrollment_date = enrollment_date
        await db.flush()
        return None

    db.add(
        StudentDepartment(
            student_id=student_id,
            department_id=department_id,
            enrollment_date=enrollment_date,
            status=EnrollmentStatus.active.value,
            is_active=True,
        )
    )
    await db.flush()
    return None


async def bulk_enroll(
    db: AsyncSession,
    department_id: int,
    student_ids: List[int],
    enrollment_date: Optional[datetime] = None,
) -> BulkEnrollmentResult:
    """
    Enroll many students into one department in a single transaction.

    A missing or soft-deleted department aborts the whole call (NotFoundError, nothing written).
    Every student id gets exactly one disposition: counted in success_count or
    reported in errors ("Student not found", "Already enrolled", or the message
    of an unexpected failure). Each student runs in its own savepoint so one
    failure never discards the others.
    """
    result = BulkEnrollmentResult()
    enrollment_date = enrollment_date or utcnow()

    async with transaction(db):
        dept = (
            await db.execute(
                select(Department.id).where(Department.id == department_id, Department.is_active.is_(True))
            )
        ).scalar_one_or_none()
        if dept is None:
            raise NotFoundError(f"Department with ID {department_id} not found")

        for student_id in student_ids:
            try:
                async with db.begin_nested():
                    error = await _enroll_one(db, department_id, student_id, enrollment_date)
            except (ServiceError, SQLAlchemyError) as e:
                error = getattr(e, "message", None) or str(e)
            if error:
                logger.warning("Enrollment of student %s into department %s failed: %s", student_id, department_id, error)
                result.errors.append(BulkRowError(student_id=student_id, error=error))
            else:
                result.success_count += 1

    logger.info(
        "Bulk enroll into department %s: %d enrolled, %d errors",
        department_id,
        result.success_count,
        len(result.errors),
    )
    return result


async def enroll_students(db: AsyncSession, payload: EnrollStudentsPayload) -> BulkEnrollmentResult:
    return await bulk_enroll(db, payload.department_id, payload.student_ids, payload.enrollment_date)


async def get_enrollments_by_department(db: AsyncSession, department_id: int) -> List[StudentResponse]:
    """Students actively enrolled in the department."""
    result = await db.execute(
        select(Student)
        .join(StudentDepartment, StudentDepartment.student_id == Student.id)
        .where(
            StudentDepartment.department_id == department_id,
            StudentDepartment.is_active.is_(True),
            Student.is_active.is_(True),
        )
        .order_by(Student.firstname, Student.othernames)
    )
    return [StudentResponse.model_validate(s) for s in result.scalars().all()]


async def get_student_departments(db: AsyncSession, student_id: int) -> List[DepartmentResponse]:
    result = await db.execute(
        select(Department)
        .join(StudentDepartment, StudentDepartment.department_id == Department.id)
        .where(
            StudentDepartment.student_id == student_id,
            StudentDepartment.is_active.is_(True),
            Department.is_active.is_(True),
        )
        .order_by(Department.name)
    )
    return [_department_to_response(d) for d in result.scalars().all()]


async def get_enrollment(db: AsyncSession, student_id: int, department_id: int) -> Optional[EnrollmentResponse]:
    row = (
        await db.execute(
            select(StudentDepartment).where(
                StudentDepartment.student_id == student_id,
                StudentDepartment.department_id == department_id,
            )
        )
    ).scalar_one_or_none()
    if not row:
        return None
    return EnrollmentResponse.model_validate(row)


async def unenroll_student(db: AsyncSession, student_id: int, department_id: int) -> bool:
    """Soft delete: the row is kept with status 'withdrawn' and is_active False."""
    async with transaction(db):
        row = (
            await db.execute(
                select(StudentDepartment).where(
                    StudentDepartment.student_id == student_id,
                    StudentDepartment.department_id == department_id,
                    StudentDepartment.is_active.is_(True),
                )
            )
        ).scalar_one_or_none()
        if not row:
            return False
        row.status = EnrollmentStatus.withdrawn.value
        row.is_active = False
    logger.info("Withdrew student %s from department %s", student_id, department_id)
    return True
