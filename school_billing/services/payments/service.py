"""Payments against bills. Only completed payments count toward a bill's paid amount."""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_billing.core.enums import BillStatus, PaymentStatus
from school_billing.core.exceptions import NotFoundError, ValidationError
from school_billing.core.models import Bill, Payment
from school_billing.core.money import to_decimal
from school_billing.db.session import transaction, utcnow

from .schemas import PaymentCreate, PaymentResponse

logger = logging.getLogger(__name__)

# Bill statuses that payments never move.
_FROZEN_BILL_STATUSES = {BillStatus.cancelled.value}


def _to_response(p: Payment) -> PaymentResponse:
    return PaymentResponse.model_validate(p)


async def get_amount_paid(db: AsyncSession, bill_id: int) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.bill_id == bill_id,
            Payment.status == PaymentStatus.completed.value,
            Payment.is_active.is_(True),
        )
    )
    return to_decimal(result.scalar())


async def sync_bill_status(db: AsyncSession, bill: Bill) -> str:
    """Set pending/partial/paid from completed payments. Cancelled bills are left alone."""
    if bill.status in _FROZEN_BILL_STATUSES:
        return bill.status
    paid = await get_amount_paid(db, bill.id)
    total = to_decimal(bill.total_amount)
    if paid <= 0:
        new_status = BillStatus.pending.value if bill.status != BillStatus.overdue.value else bill.status
    elif paid >= total:
        new_status = BillStatus.paid.value
    else:
        new_status = BillStatus.partial.value
    bill.status = new_status
    return new_status


async def record_payment(db: AsyncSession, payload: PaymentCreate) -> PaymentResponse:
    amount = to_decimal(payload.amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be at least 0.01")
    async with transaction(db):
        bill = (
            await db.execute(select(Bill).where(Bill.id == payload.bill_id, Bill.is_active.is_(True)))
        ).scalar_one_or_none()
        if not bill:
            raise NotFoundError(f"Bill with ID {payload.bill_id} not found")
        if bill.status == BillStatus.cancelled.value:
            raise ValidationError("Cannot record a payment against a cancelled bill")

        if payload.status == PaymentStatus.completed:
            balance = to_decimal(bill.total_amount) - await get_amount_paid(db, bill.id)
            if amount > balance:
                raise ValidationError("Payment amount cannot exceed remaining balance")

        payment = Payment(
            bill_id=bill.id,
            student_id=bill.student_id,
            amount=amount,
            payment_date=payload.payment_date or utcnow(),
            method=payload.method.value if payload.method else None,
            reference=(payload.reference or "").strip() or None,
            received_by=(payload.received_by or "").strip() or None,
            note=payload.note,
            status=payload.status.value,
            is_active=True,
        )
        db.add(payment)
        await db.flush()
        old_status = bill.status
        new_status = await sync_bill_status(db, bill)
    logger.info(
        "Recorded payment %s of %s on bill %s (status %s -> %s)",
        payment.id,
        amount,
        bill.id,
        old_status,
        new_status,
    )
    return _to_response(payment)


async def get_payment(db: AsyncSession, payment_id: int) -> Optional[PaymentResponse]:
    p = (await db.execute(select(Payment).where(Payment.id == payment_id))).scalar_one_or_none()
    if not p:
        return None
    return _to_response(p)


async def get_payments_for_bill(
    db: AsyncSession,
    bill_id: int,
    include_inactive: bool = False,
) -> List[PaymentResponse]:
    stmt = select(Payment).where(Payment.bill_id == bill_id)
    if not include_inactive:
        stmt = stmt.where(Payment.is_active.is_(True))
    result = await db.execute(stmt.order_by(Payment.payment_date, Payment.id))
    return [_to_response(p) for p in result.scalars().all()]


async def update_payment_status(db: AsyncSession, payment_id: int, status: PaymentStatus) -> PaymentResponse:
    """Move a payment to a new status (e.g. refunded) and resync its bill."""
    async with transaction(db):
        payment = (await db.execute(select(Payment).where(Payment.id == payment_id))).scalar_one_or_none()
        if not payment:
            raise NotFoundError(f"Payment with ID {payment_id} not found")
        payment.status = status.value
        await db.flush()
        bill = (await db.execute(select(Bill).where(Bill.id == payment.bill_id))).scalar_one()
        await sync_bill_status(db, bill)
    return _to_response(payment)


async def delete_payment(db: AsyncSession, payment_id: int, hard: bool = False) -> bool:
    async with transaction(db):
        payment = (await db.execute(select(Payment).where(Payment.id == payment_id))).scalar_one_or_none()
        if not payment:
            return False
        bill_id = payment.bill_id
        if hard:
            await db.delete(payment)
        else:
            payment.is_active = False
        await db.flush()
        bill = (await db.execute(select(Bill).where(Bill.id == bill_id))).scalar_one_or_none()
        if bill:
            await sync_bill_status(db, bill)
    return True
