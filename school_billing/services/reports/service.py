"""
Reporting queries: billing summaries, outstanding bills, payment history and
enrollment statistics. Pure reads; inactive rows are excluded and only
completed payments count as paid.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_billing.core.enums import BillStatus, EnrollmentStatus, PaymentStatus
from school_billing.core.models import Bill, Department, Payment, Student, StudentDepartment
from school_billing.core.money import to_decimal
from school_billing.services.bills import service as bill_service
from school_billing.services.bills.schemas import BillWithItems

from .schemas import (
    DepartmentBillingLine,
    DepartmentBillingSummary,
    DepartmentEnrollmentStats,
    OutstandingBill,
    PaymentHistoryItem,
    StudentBillingSummary,
)


def _paid_per_bill():
    """Subquery: bill_id -> sum of completed, active payments."""
    return (
        select(Payment.bill_id.label("bill_id"), func.sum(Payment.amount).label("paid"))
        .where(Payment.status == PaymentStatus.completed.value, Payment.is_active.is_(True))
        .group_by(Payment.bill_id)
        .subquery()
    )


def _student_name():
    return (Student.firstname + " " + Student.othernames).label("student_name")


async def get_student_billing_summary(db: AsyncSession, student_id: int) -> Optional[StudentBillingSummary]:
    student = (
        await db.execute(select(Student).where(Student.id == student_id, Student.is_active.is_(True)))
    ).scalar_one_or_none()
    if not student:
        return None

    paid = _paid_per_bill()
    rows = (
        await db.execute(
            select(Bill, Department.name, func.coalesce(paid.c.paid, 0))
            .join(Department, Department.id == Bill.department_id)
            .outerjoin(paid, paid.c.bill_id == Bill.id)
            .where(Bill.student_id == student_id, Bill.is_active.is_(True))
            .order_by(Department.name, Bill.created_at, Bill.id)
        )
    ).all()

    lines: "OrderedDict[int, DepartmentBillingLine]" = OrderedDict()
    for bill, dept_name, bill_paid in rows:
        line = lines.get(bill.department_id)
        if line is None:
            line = lines[bill.department_id] = DepartmentBillingLine(
                department_id=bill.department_id,
                department_name=dept_name,
                total_billed=Decimal("0"),
                total_paid=Decimal("0"),
                total_unpaid=Decimal("0"),
            )
        line.total_billed += to_decimal(bill.total_amount)
        line.total_paid += to_decimal(bill_paid)
        line.total_unpaid = line.total_billed - line.total_paid
        line.bills.append(bill_service._to_response(bill))

    return StudentBillingSummary(
        student_id=student.id,
        student_name=student.full_name,
        departments=list(lines.values()),
    )


async def get_department_billing_summary(db: AsyncSession, department_id: int) -> Optional[DepartmentBillingSummary]:
    dept = (
        await db.execute(select(Department).where(Department.id == department_id, Department.is_active.is_(True)))
    ).scalar_one_or_none()
    if not dept:
        return None

    paid = _paid_per_bill()
    total_students, total_billed, total_paid = (
        await db.execute(
            select(
                func.count(func.distinct(Bill.student_id)),
                func.coalesce(func.sum(Bill.total_amount), 0),
                func.coalesce(func.sum(paid.c.paid), 0),
            )
            .select_from(Bill)
            .outerjoin(paid, paid.c.bill_id == Bill.id)
            .where(Bill.department_id == department_id, Bill.is_active.is_(True))
        )
    ).one()
    total_billed = to_decimal(total_billed)
    total_paid = to_decimal(total_paid)
    return DepartmentBillingSummary(
        department_id=dept.id,
        department_name=dept.name,
        total_students=total_students or 0,
        total_billed=total_billed,
        total_paid=total_paid,
        total_unpaid=total_billed - total_paid,
    )


async def get_outstanding_payments(db: AsyncSession, department_id: Optional[int] = None) -> List[OutstandingBill]:
    """Bills not marked paid that still have an amount due, earliest due date first."""
    paid = _paid_per_bill()
    paid_amount = func.coalesce(paid.c.paid, 0)
    amount_due = Bill.total_amount - paid_amount
    stmt = (
        select(Bill, _student_name(), paid_amount.label("paid_amount"))
        .join(Student, Student.id == Bill.student_id)
        .outerjoin(paid, paid.c.bill_id == Bill.id)
        .where(
            Bill.status != BillStatus.paid.value,
            Bill.is_active.is_(True),
            Student.is_active.is_(True),
            amount_due > 0,
        )
        .order_by(Bill.due_date.asc().nullslast(), Bill.id)
    )
    if department_id is not None:
        stmt = stmt.where(Bill.department_id == department_id)
    rows = (await db.execute(stmt)).all()
    out: List[OutstandingBill] = []
    for bill, student_name, bill_paid in rows:
        total = to_decimal(bill.total_amount)
        bill_paid = to_decimal(bill_paid)
        out.append(
            OutstandingBill(
                bill_id=bill.id,
                bill_name=bill.name,
                student_id=bill.student_id,
                student_name=student_name,
                department_id=bill.department_id,
                total_amount=total,
                paid_amount=bill_paid,
                amount_due=total - bill_paid,
                due_date=bill.due_date,
                status=bill.status,
            )
        )
    return out


async def get_payment_history(
    db: AsyncSession,
    student_id: Optional[int] = None,
    bill_id: Optional[int] = None,
) -> List[PaymentHistoryItem]:
    """Active payments of every status, most recent first."""
    stmt = (
        select(Payment, _student_name(), Bill.name)
        .join(Student, Student.id == Payment.student_id)
        .join(Bill, Bill.id == Payment.bill_id)
        .where(Payment.is_active.is_(True))
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
    )
    if student_id is not None:
        stmt = stmt.where(Payment.student_id == student_id)
    if bill_id is not None:
        stmt = stmt.where(Payment.bill_id == bill_id)
    rows = (await db.execute(stmt)).all()
    return [
        PaymentHistoryItem(
            payment_id=p.id,
            amount=to_decimal(p.amount),
            payment_date=p.payment_date,
            method=p.method,
            reference=p.reference,
            status=p.status,
            student_id=p.student_id,
            student_name=student_name,
            bill_id=p.bill_id,
            bill_name=bill_name,
        )
        for p, student_name, bill_name in rows
    ]


def _count_status(status: EnrollmentStatus):
    return func.coalesce(func.sum(case((StudentDepartment.status == status.value, 1), else_=0)), 0)


async def get_department_enrollment_stats(
    db: AsyncSession,
    department_id: Optional[int] = None,
) -> List[DepartmentEnrollmentStats]:
    """Enrollment counts by status per active department; withdrawn rows are counted too."""
    stmt = (
        select(
            Department.id,
            Department.name,
            func.count(StudentDepartment.id),
            _count_status(EnrollmentStatus.active),
            _count_status(EnrollmentStatus.completed),
            _count_status(EnrollmentStatus.withdrawn),
        )
        .outerjoin(StudentDepartment, StudentDepartment.department_id == Department.id)
        .where(Department.is_active.is_(True))
        .group_by(Department.id, Department.name)
        .order_by(Department.name)
    )
    if department_id is not None:
        stmt = stmt.where(Department.id == department_id)
    rows = (await db.execute(stmt)).all()
    return [
        DepartmentEnrollmentStats(
            department_id=dept_id,
            department_name=name,
            total_enrollments=total or 0,
            active_enrollments=active or 0,
            completed_enrollments=completed or 0,
            withdrawn_enrollments=withdrawn or 0,
        )
        for dept_id, name, total, active, completed, withdrawn in rows
    ]


async def get_student_bills_with_details(db: AsyncSession, student_id: int) -> List[BillWithItems]:
    """Every active bill of the student with line items and payments, newest first."""
    bill_ids = (
        await db.execute(
            select(Bill.id)
            .where(Bill.student_id == student_id, Bill.is_active.is_(True))
            .order_by(Bill.created_at.desc(), Bill.id.desc())
        )
    ).scalars().all()
    out: List[BillWithItems] = []
    for bill_id in bill_ids:
        detail = await bill_service.get_bill_with_items(db, bill_id)
        if detail is not None:
            out.append(detail)
    return out
