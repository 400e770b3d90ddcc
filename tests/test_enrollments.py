import pytest
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_billing.core.exceptions import NotFoundError
from school_billing.core.models import StudentDepartment
from school_billing.services.departments import service as department_service
from school_billing.services.enrollments import service as enrollment_service
from school_billing.services.enrollments.schemas import EnrollStudentsPayload
from school_billing.services.students import service as student_service


async def _enrollment_count(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(StudentDepartment))).scalar()


@pytest.mark.asyncio
async def test_bulk_enroll_reports_already_enrolled(db_session: AsyncSession, make_student, make_department) -> None:
    dept = await make_department()
    s = await make_student(firstname="Kofi")
    t = await make_student(firstname="Esi")
    await enrollment_service.bulk_enroll(db_session, dept.id, [s.id])

    result = await enrollment_service.bulk_enroll(db_session, dept.id, [s.id, t.id])

    assert result.success_count == 1
    assert [(e.student_id, e.error) for e in result.errors] == [(s.id, "Already enrolled")]


@pytest.mark.asyncio
async def test_bulk_enroll_every_id_gets_one_disposition(db_session: AsyncSession, make_student, make_department) -> None:
    dept = await make_department()
    a = await make_student(firstname="Yaw")
    b = await make_student(firstname="Akua")
    ids = [a.id, 9999, b.id, a.id]

    result = await enrollment_service.bulk_enroll(db_session, dept.id, ids)

    assert result.success_count + len(result.errors) == len(ids)
    assert result.success_count == 2
    errors = {(e.student_id, e.error) for e in result.errors}
    assert errors == {(9999, "Student not found"), (a.id, "Already enrolled")}
    assert await _enrollment_count(db_session) == 2


@pytest.mark.asyncio
async def test_bulk_enroll_is_idempotent(db_session: AsyncSession, make_student, make_department) -> None:
    dept = await make_department()
    ids = [(await make_student(firstname=f"S{i}")).id for i in range(3)]

    first = await enrollment_service.bulk_enroll(db_session, dept.id, ids)
    second = await enrollment_service.bulk_enroll(db_session, dept.id, ids)

    assert first.success_count == 3
    assert second.success_count == 0
    assert [e.student_id for e in second.errors] == ids
    assert all(e.error == "Already enrolled" for e in second.errors)


@pytest.mark.asyncio
async def test_bulk_enroll_missing_department_writes_nothing(db_session: AsyncSession, make_student) -> None:
    s = await make_student()

    with pytest.raises(NotFoundError):
        await enrollment_service.bulk_enroll(db_session, 424242, [s.id])

    assert await _enrollment_count(db_session) == 0


@pytest.mark.asyncio
async def test_soft_deleted_student_is_not_enrolled(db_session: AsyncSession, make_student, make_department) -> None:
    dept = await make_department()
    s = await make_student()
    await student_service.delete_student(db_session, s.id)

    result = await enrollment_service.bulk_enroll(db_session, dept.id, [s.id])

    assert result.success_count == 0
    assert result.errors[0].error == "Student not found"


@pytest.mark.asyncio
async def test_unenroll_then_reenroll_reuses_row(db_session: AsyncSession, make_student, make_department) -> None:
    dept = await make_department()
    s = await make_student()
    await enrollment_service.bulk_enroll(db_session, dept.id, [s.id])
    before = await enrollment_service.get_enrollment(db_session, s.id, dept.id)

    assert await enrollment_service.unenroll_student(db_session, s.id, dept.id) is True
    assert await enrollment_service.get_enrollments_by_department(db_session, dept.id) == []
    withdrawn = await enrollment_service.get_enrollment(db_session, s.id, dept.id)
    assert withdrawn.status == "withdrawn"
    assert withdrawn.is_active is False
    assert await enrollment_service.unenroll_student(db_session, s.id, dept.id) is False

    result = await enrollment_service.bulk_enroll(db_session, dept.id, [s.id])

    assert result.success_count == 1
    after = await enrollment_service.get_enrollment(db_session, s.id, dept.id)
    assert after.id == before.id
    assert after.status == "active"
    assert after.is_active is True
    assert await _enrollment_count(db_session) == 1


@pytest.mark.asyncio
async def test_listing_enrollments(db_session: AsyncSession, make_student, make_department) -> None:
    science = await make_department(name="Science")
    arts = await make_department(name="Arts")
    s = await make_student(firstname="Kwame")
    t = await make_student(firstname="Abena")
    await enrollment_service.bulk_enroll(db_session, science.id, [s.id, t.id])
    await enrollment_service.bulk_enroll(db_session, arts.id, [s.id])

    students = await enrollment_service.get_enrollments_by_department(db_session, science.id)
    departments = await enrollment_service.get_student_departments(db_session, s.id)

    assert [x.firstname for x in students] == ["Abena", "Kwame"]
    assert [d.name for d in departments] == ["Arts", "Science"]


@pytest.mark.asyncio
async def test_enroll_students_payload(db_session: AsyncSession, make_student, make_department) -> None:
    dept = await make_department()
    s = await make_student()

    result = await enrollment_service.enroll_students(
        db_session, EnrollStudentsPayload(department_id=dept.id, student_ids=[s.id, 31337])
    )

    assert result.success_count == 1
    assert [(e.student_id, e.error) for e in result.errors] == [(31337, enrollment_service.STUDENT_NOT_FOUND)]


@pytest.mark.asyncio
async def test_bulk_enroll_storage_failure_is_per_student(db_session: AsyncSession, make_student, make_department) -> None:
    dept = await make_department()
    a = await make_student(firstname="Abena")
    b = await make_student(firstname="Kwabena")
    c = await make_student(firstname="Adwoa")

    def break_insert_for_b(mapper, connection, target):
        if target.student_id == b.id:
            target.department_id = 999999

    event.listen(StudentDepartment, "before_insert", break_insert_for_b)
    try:
        result = await enrollment_service.bulk_enroll(db_session, dept.id, [a.id, b.id, c.id])
    finally:
        event.remove(StudentDepartment, "before_insert", break_insert_for_b)

    assert result.success_count == 2
    assert [e.student_id for e in result.errors] == [b.id]
    assert "FOREIGN KEY" in result.errors[0].error
    assert await enrollment_service.get_enrollment(db_session, b.id, dept.id) is None
    assert await _enrollment_count(db_session) == 2


@pytest.mark.asyncio
async def test_bulk_enroll_into_soft_deleted_department_raises(db_session: AsyncSession, make_student, make_department) -> None:
    dept = await make_department()
    s = await make_student()
    await department_service.delete_department(db_session, dept.id, hard=False)

    with pytest.raises(NotFoundError):
        await enrollment_service.bulk_enroll(db_session, dept.id, [s.id])

    assert await _enrollment_count(db_session) == 0
