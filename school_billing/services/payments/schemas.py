from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from school_billing.core.enums import PaymentMethod, PaymentStatus


class PaymentCreate(BaseModel):
    bill_id: int
    amount: Decimal = Field(..., gt=0)
    payment_date: Optional[datetime] = None
    method: Optional[PaymentMethod] = None
    reference: Optional[str] = Field(None, max_length=100)
    received_by: Optional[str] = Field(None, max_length=100)
    note: Optional[str] = None
    status: PaymentStatus = PaymentStatus.completed


class PaymentResponse(BaseModel):
    id: int
    bill_id: int
    student_id: int
    amount: Decimal
    payment_date: datetime
    method: Optional[PaymentMethod] = None
    reference: Optional[str] = None
    received_by: Optional[str] = None
    note: Optional[str] = None
    status: PaymentStatus
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
