from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class BillItemBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=50)
    is_required: bool = False


class BillItemCreate(BillItemBase):
    department_id: int


class BillItemUpdate(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    amount: Optional[Decimal] = Field(None, ge=0)
    department_id: Optional[int] = None
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=50)
    is_required: Optional[bool] = None
    is_active: Optional[bool] = None


class BillItemResponse(BaseModel):
    id: int
    name: str
    amount: Decimal
    department_id: int
    description: Optional[str] = None
    category: Optional[str] = None
    is_required: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BillItemRelationCreate(BaseModel):
    """amount defaults to 0: the caller supplies the charged amount, catalog amounts are not looked up."""

    bill_id: int
    bill_item_id: int
    amount: Optional[Decimal] = Field(None, ge=0)
    quantity: int = Field(1, ge=1)
    discount: Decimal = Field(Decimal("0"), ge=0)


class BillItemRelationResponse(BaseModel):
    id: int
    bill_id: int
    bill_item_id: int
    amount: Decimal
    quantity: int
    discount: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
