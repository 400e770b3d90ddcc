from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from school_billing.services.bill_items.schemas import BillItemBase, BillItemResponse
from school_billing.services.students.schemas import StudentResponse


class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    term: str = Field(..., min_length=1, max_length=50)
    year: str = Field(..., min_length=1, max_length=10)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class DepartmentCreateWithBillItems(DepartmentCreate):
    bill_items: List[BillItemBase] = Field(default_factory=list)


class DepartmentUpdate(BaseModel):
    """
    id is required. When bill_items is given (even empty) the department's
    catalog is replaced wholesale; when omitted the catalog is left untouched.
    """

    id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    term: Optional[str] = Field(None, min_length=1, max_length=50)
    year: Optional[str] = Field(None, min_length=1, max_length=10)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None
    bill_items: Optional[List[BillItemBase]] = None


class DepartmentResponse(BaseModel):
    id: int
    name: str
    term: str
    year: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DepartmentWithBillItems(DepartmentResponse):
    bill_items: List[BillItemResponse] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")


class DepartmentWithStudents(DepartmentResponse):
    students: List[StudentResponse] = Field(default_factory=list)
