from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from school_billing.core.enums import BillStatus
from school_billing.services.bill_items.schemas import BillItemResponse
from school_billing.services.enrollments.schemas import BulkRowError
from school_billing.services.payments.schemas import PaymentResponse
from school_billing.services.students.schemas import StudentResponse


class DepartmentBillItemRequest(BaseModel):
    """amount overrides the catalog amount; when omitted the stored BillItem amount is used."""

    bill_item_id: int
    amount: Optional[Decimal] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=1)


class BulkBillResult(BaseModel):
    bills_created: int = 0
    total_amount: Decimal = Decimal("0")
    errors: List[BulkRowError] = Field(default_factory=list)


class BillLineItemCreate(BaseModel):
    bill_item_id: int
    amount: Optional[Decimal] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=1)
    discount: Optional[Decimal] = Field(None, ge=0)


class CreateBillWithItemsPayload(BaseModel):
    student_id: int
    department_id: int
    name: str = Field(..., min_length=1, max_length=150)
    due_date: Optional[date] = None
    note: Optional[str] = None
    discount: Decimal = Field(Decimal("0"), ge=0)
    items: List[BillLineItemCreate] = Field(default_factory=list)


class BillUpdate(BaseModel):
    """total_amount is only changed when given; line item edits need recalculate_bill_total."""

    id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    student_id: Optional[int] = None
    department_id: Optional[int] = None
    total_amount: Optional[Decimal] = None
    due_date: Optional[date] = None
    status: Optional[BillStatus] = None
    discount: Optional[Decimal] = Field(None, ge=0)
    note: Optional[str] = None
    is_active: Optional[bool] = None


class BillResponse(BaseModel):
    id: int
    name: str
    student_id: int
    department_id: int
    total_amount: Decimal
    due_date: Optional[date] = None
    status: BillStatus
    discount: Decimal
    note: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BillLineItem(BaseModel):
    id: int
    bill_item_id: int
    amount: Decimal
    quantity: int
    discount: Decimal
    line_total: Decimal
    bill_item: BillItemResponse


class BillWithItems(BillResponse):
    items: List[BillLineItem] = Field(default_factory=list)
    payments: List[PaymentResponse] = Field(default_factory=list)
    student: Optional[StudentResponse] = None
    amount_paid: Decimal = Decimal("0")
    amount_due: Decimal = Decimal("0")
