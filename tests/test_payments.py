from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from school_billing.core.enums import PaymentStatus
from school_billing.core.exceptions import NotFoundError, ValidationError
from school_billing.services.bills import service as bill_service
from school_billing.services.bills.schemas import BillUpdate, DepartmentBillItemRequest
from school_billing.services.payments import service as payment_service
from school_billing.services.payments.schemas import PaymentCreate


@pytest.fixture()
def billed_student(db_session: AsyncSession, enrolled_department):
    """One enrolled student holding a single bill of 120 (Tuition 100 + Books 20)."""

    async def _make():
        dept, students = await enrolled_department(1)
        await bill_service.create_bills_for_department(
            db_session,
            dept.id,
            [DepartmentBillItemRequest(bill_item_id=bi.id) for bi in dept.bill_items],
            "Term 1 fees",
        )
        bills = await bill_service.get_bills_by_student_id(db_session, students[0].id)
        return students[0], bills[0]

    return _make


async def _status(db: AsyncSession, bill_id: int) -> str:
    return (await bill_service.get_bill_by_id(db, bill_id)).status.value


@pytest.mark.asyncio
async def test_payments_move_bill_to_partial_then_paid(db_session: AsyncSession, billed_student) -> None:
    student, bill = await billed_student()

    first = await payment_service.record_payment(
        db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("50"), method="cash", received_by=" Bursar ")
    )
    assert first.student_id == student.id
    assert first.received_by == "Bursar"
    assert await _status(db_session, bill.id) == "partial"

    await payment_service.record_payment(db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("70")))
    assert await _status(db_session, bill.id) == "paid"
    assert await payment_service.get_amount_paid(db_session, bill.id) == Decimal("120")


@pytest.mark.asyncio
async def test_overpayment_is_rejected(db_session: AsyncSession, billed_student) -> None:
    _, bill = await billed_student()
    await payment_service.record_payment(db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("100")))

    with pytest.raises(ValidationError, match="remaining balance"):
        await payment_service.record_payment(db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("20.01")))

    assert len(await payment_service.get_payments_for_bill(db_session, bill.id)) == 1
    assert await _status(db_session, bill.id) == "partial"


@pytest.mark.asyncio
async def test_non_completed_payments_do_not_count(db_session: AsyncSession, billed_student) -> None:
    _, bill = await billed_student()

    await payment_service.record_payment(
        db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("500"), status=PaymentStatus.pending)
    )

    assert await payment_service.get_amount_paid(db_session, bill.id) == Decimal("0")
    assert await _status(db_session, bill.id) == "pending"


@pytest.mark.asyncio
async def test_refund_and_delete_resync_bill(db_session: AsyncSession, billed_student) -> None:
    _, bill = await billed_student()
    a = await payment_service.record_payment(db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("20")))
    b = await payment_service.record_payment(db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("100")))
    assert await _status(db_session, bill.id) == "paid"

    refunded = await payment_service.update_payment_status(db_session, b.id, PaymentStatus.refunded)
    assert refunded.status == PaymentStatus.refunded
    assert await _status(db_session, bill.id) == "partial"

    assert await payment_service.delete_payment(db_session, a.id) is True
    assert await _status(db_session, bill.id) == "pending"
    assert (await payment_service.get_payment(db_session, a.id)).is_active is False
    assert [p.id for p in await payment_service.get_payments_for_bill(db_session, bill.id)] == [b.id]

    assert await payment_service.delete_payment(db_session, b.id, hard=True) is True
    assert await payment_service.get_payment(db_session, b.id) is None
    assert await payment_service.delete_payment(db_session, b.id) is False


@pytest.mark.asyncio
async def test_payment_errors(db_session: AsyncSession, billed_student) -> None:
    _, bill = await billed_student()

    with pytest.raises(NotFoundError):
        await payment_service.record_payment(db_session, PaymentCreate(bill_id=4242, amount=Decimal("1")))
    with pytest.raises(NotFoundError):
        await payment_service.update_payment_status(db_session, 4242, PaymentStatus.failed)

    await bill_service.update_bill(db_session, BillUpdate(id=bill.id, status="cancelled"))
    with pytest.raises(ValidationError):
        await payment_service.record_payment(db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("1")))


@pytest.mark.asyncio
async def test_payments_listed_by_payment_date(db_session: AsyncSession, billed_student) -> None:
    _, bill = await billed_student()
    late = await payment_service.record_payment(
        db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("10"), payment_date=datetime(2024, 3, 1))
    )
    early = await payment_service.record_payment(
        db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("10"), payment_date=datetime(2024, 1, 15))
    )

    listed = await payment_service.get_payments_for_bill(db_session, bill.id)

    assert [p.id for p in listed] == [early.id, late.id]


@pytest.mark.asyncio
async def test_payment_amounts_are_kept_in_cents(db_session: AsyncSession, billed_student) -> None:
    _, bill = await billed_student()

    with pytest.raises(ValidationError):
        await payment_service.record_payment(db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("0.004")))

    paid = await payment_service.record_payment(db_session, PaymentCreate(bill_id=bill.id, amount=Decimal("119.995")))

    assert paid.amount == Decimal("120.00")
    assert await _status(db_session, bill.id) == "paid"
