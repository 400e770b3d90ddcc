"""Read-only reporting views."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from school_billing.services.bills.schemas import BillResponse


class DepartmentBillingLine(BaseModel):
    department_id: int
    department_name: str
    total_billed: Decimal
    total_paid: Decimal
    total_unpaid: Decimal
    bills: List[BillResponse] = Field(default_factory=list)


class StudentBillingSummary(BaseModel):
    student_id: int
    student_name: str
    departments: List[DepartmentBillingLine] = Field(default_factory=list)


class DepartmentBillingSummary(BaseModel):
    department_id: int
    department_name: str
    total_students: int
    total_billed: Decimal
    total_paid: Decimal
    total_unpaid: Decimal


class OutstandingBill(BaseModel):
    bill_id: int
    bill_name: str
    student_id: int
    student_name: str
    department_id: int
    total_amount: Decimal
    paid_amount: Decimal
    amount_due: Decimal
    due_date: Optional[date] = None
    status: str


class PaymentHistoryItem(BaseModel):
    payment_id: int
    amount: Decimal
    payment_date: datetime
    method: Optional[str] = None
    reference: Optional[str] = None
    status: str
    student_id: int
    student_name: str
    bill_id: int
    bill_name: str


class DepartmentEnrollmentStats(BaseModel):
    department_id: int
    department_name: str
    total_enrollments: int
    active_enrollments: int
    completed_enrollments: int
    withdrawn_enrollments: int
