from decimal import Decimal
from typing import AsyncGenerator, List

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from school_billing.db.init_db import init_db
from school_billing.db.session import build_engine, build_sessionmaker
from school_billing.services.bill_items.schemas import BillItemBase
from school_billing.services.departments import service as department_service
from school_billing.services.departments.schemas import DepartmentCreateWithBillItems, DepartmentWithBillItems
from school_billing.services.enrollments import service as enrollment_service
from school_billing.services.students import service as student_service
from school_billing.services.students.schemas import StudentCreate, StudentResponse


@pytest.fixture()
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh file-backed SQLite store with the full schema for each test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}", echo=False)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async_session = build_sessionmaker(engine)
    async with async_session() as session:
        yield session


@pytest.fixture()
def make_student(db_session: AsyncSession):
    async def _make(firstname: str = "Ama", othernames: str = "Mensah", **kwargs) -> StudentResponse:
        payload = StudentCreate(
            firstname=firstname,
            othernames=othernames,
            phone=kwargs.pop("phone", "0240000000"),
            address=kwargs.pop("address", "12 Ring Road"),
            **kwargs,
        )
        return await student_service.add_student(db_session, payload)

    return _make


@pytest.fixture()
def make_department(db_session: AsyncSession):
    async def _make(name: str = "Science", items=None, **kwargs) -> DepartmentWithBillItems:
        if items is None:
            items = [("Tuition", "100"), ("Books", "20")]
        payload = DepartmentCreateWithBillItems(
            name=name,
            term=kwargs.pop("term", "Term 1"),
            year=kwargs.pop("year", "2024"),
            bill_items=[BillItemBase(name=n, amount=Decimal(a)) for n, a in items],
            **kwargs,
        )
        return await department_service.create_department(db_session, payload)

    return _make


@pytest.fixture()
def enrolled_department(db_session: AsyncSession, make_student, make_department):
    """Department with Tuition=100, Books=20 and the given number of enrolled students."""

    async def _make(student_count: int = 2):
        dept = await make_department()
        students: List[StudentResponse] = [
            await make_student(firstname=f"Student{i}", othernames="Test") for i in range(student_count)
        ]
        result = await enrollment_service.bulk_enroll(db_session, dept.id, [s.id for s in students])
        assert result.success_count == student_count
        return dept, students

    return _make
