from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_billing.core.exceptions import NotFoundError, StorageError, ValidationError
from school_billing.core.models import BillItem, Department, StudentDepartment
from school_billing.services.bill_items import service as bill_item_service
from school_billing.services.bill_items.schemas import BillItemBase, BillItemCreate, BillItemUpdate
from school_billing.services.departments import service as department_service
from school_billing.services.departments.schemas import DepartmentCreate, DepartmentCreateWithBillItems, DepartmentUpdate
from school_billing.services.enrollments import service as enrollment_service
from school_billing.services.query.schemas import Pagination, SearchOptions


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar()


@pytest.mark.asyncio
async def test_create_department_with_bill_items(db_session: AsyncSession, make_department) -> None:
    dept = await make_department(items=[("Tuition", "150.50"), ("Uniform", "49.50")])

    assert dept.id is not None
    assert dept.total_amount == Decimal("200.00")
    assert [bi.name for bi in dept.bill_items] == ["Tuition", "Uniform"]
    assert all(bi.department_id == dept.id for bi in dept.bill_items)

    loaded = await department_service.get_department_with_bill_items(db_session, dept.id)
    assert loaded.total_amount == Decimal("200.00")


@pytest.mark.asyncio
async def test_create_department_rolls_back_on_item_failure(db_session: AsyncSession, monkeypatch) -> None:
    original = bill_item_service.insert_bill_item
    calls = {"n": 0}

    async def failing_insert(db, department_id, item):
        calls["n"] += 1
        if calls["n"] == 2:
            raise StorageError("disk full")
        return await original(db, department_id, item)

    monkeypatch.setattr(bill_item_service, "insert_bill_item", failing_insert)
    payload = DepartmentCreateWithBillItems(
        name="Doomed",
        term="Term 1",
        year="2024",
        bill_items=[BillItemBase(name="A", amount=Decimal("1")), BillItemBase(name="B", amount=Decimal("2"))],
    )

    with pytest.raises(StorageError):
        await department_service.create_department(db_session, payload)

    assert await _count(db_session, Department) == 0
    assert await _count(db_session, BillItem) == 0


@pytest.mark.asyncio
async def test_create_department_rejects_inverted_dates(db_session: AsyncSession) -> None:
    payload = DepartmentCreate(
        name="Backwards",
        term="Term 1",
        year="2024",
        start_date="2024-09-01",
        end_date="2024-01-01",
    )
    with pytest.raises(ValidationError):
        await department_service.add_department(db_session, payload)


@pytest.mark.asyncio
async def test_update_department_replaces_bill_items(db_session: AsyncSession, make_department) -> None:
    dept = await make_department()
    old_ids = {bi.id for bi in dept.bill_items}

    updated = await department_service.update_department(
        db_session,
        DepartmentUpdate(id=dept.id, name="Science II", bill_items=[BillItemBase(name="Lab fee", amount=Decimal("35"))]),
    )

    assert updated.name == "Science II"
    items = await bill_item_service.get_bill_items_by_department(db_session, dept.id)
    assert [i.name for i in items] == ["Lab fee"]
    assert not old_ids & {i.id for i in items}
    assert await _count(db_session, BillItem) == 1


@pytest.mark.asyncio
async def test_update_department_without_items_keeps_catalog(db_session: AsyncSession, make_department) -> None:
    dept = await make_department()

    await department_service.update_department(db_session, DepartmentUpdate(id=dept.id, description="Updated"))

    items = await bill_item_service.get_bill_items_by_department(db_session, dept.id)
    assert sorted(i.name for i in items) == ["Books", "Tuition"]


@pytest.mark.asyncio
async def test_update_department_errors(db_session: AsyncSession) -> None:
    with pytest.raises(ValidationError):
        await department_service.update_department(db_session, DepartmentUpdate(name="x"))
    with pytest.raises(NotFoundError):
        await department_service.update_department(db_session, DepartmentUpdate(id=8080, name="x"))
    # single-row updates report a missing id as None instead
    assert await bill_item_service.update_bill_item(db_session, BillItemUpdate(id=8080, name="x")) is None


@pytest.mark.asyncio
async def test_hard_delete_department_cascades(db_session: AsyncSession, make_department, make_student) -> None:
    dept = await make_department()
    s = await make_student()
    await enrollment_service.bulk_enroll(db_session, dept.id, [s.id])

    assert await department_service.delete_department(db_session, dept.id) is True

    assert await department_service.get_department_by_id(db_session, dept.id) is None
    assert await _count(db_session, BillItem) == 0
    assert await _count(db_session, StudentDepartment) == 0
    assert await department_service.delete_department(db_session, dept.id) is False


@pytest.mark.asyncio
async def test_soft_delete_department_hides_it(db_session: AsyncSession, make_department) -> None:
    dept = await make_department(name="Drama")

    assert await department_service.delete_department(db_session, dept.id, hard=False) is True

    assert await department_service.get_all_departments(db_session) == []
    found = await department_service.search_departments(db_session, SearchOptions(query="dra"), include_inactive=True)
    assert [d.name for d in found.data] == ["Drama"]


@pytest.mark.asyncio
async def test_search_departments(db_session: AsyncSession, make_department) -> None:
    await make_department(name="Science", year="2024")
    await make_department(name="Social Studies", year="2025")
    await make_department(name="Art", year="2024")

    result = await department_service.search_departments(
        db_session, SearchOptions(query="s"), Pagination(page=1, page_size=10)
    )
    assert [d.name for d in result.data] == ["Science", "Social Studies"]

    by_year = await department_service.search_departments(db_session, SearchOptions(query="2024"))
    assert sorted(d.name for d in by_year.data) == ["Art", "Science"]


@pytest.mark.asyncio
async def test_students_in_department(db_session: AsyncSession, make_department, make_student) -> None:
    dept = await make_department()
    s = await make_student(firstname="Mansa")
    await enrollment_service.bulk_enroll(db_session, dept.id, [s.id])

    students = await department_service.get_students_in_department(db_session, dept.id)

    assert [x.firstname for x in students] == ["Mansa"]


@pytest.mark.asyncio
async def test_bill_item_crud(db_session: AsyncSession, make_department) -> None:
    dept = await make_department(items=[])

    with pytest.raises(NotFoundError):
        await bill_item_service.add_bill_item(
            db_session, BillItemCreate(name="Orphan", amount=Decimal("5"), department_id=999)
        )

    item = await bill_item_service.add_bill_item(
        db_session, BillItemCreate(name="Sports", amount=Decimal("12.5"), department_id=dept.id, category="extra")
    )
    assert item.amount == Decimal("12.5")

    with pytest.raises(ValidationError):
        await bill_item_service.update_bill_item(db_session, BillItemUpdate(amount=Decimal("1")))
    updated = await bill_item_service.update_bill_item(db_session, BillItemUpdate(id=item.id, amount=Decimal("15")))
    assert updated.amount == Decimal("15")

    found = await bill_item_service.search_bill_items(db_session, SearchOptions(query="extra"))
    assert [i.id for i in found.data] == [item.id]

    assert await bill_item_service.delete_bill_item(db_session, item.id) is True
    assert await bill_item_service.get_bill_item_by_id(db_session, item.id) is None
