from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from school_billing.core.enums import StudentStatus


class StudentCreate(BaseModel):
    firstname: str = Field(..., min_length=1, max_length=100)
    othernames: str = Field(..., max_length=150)
    phone: str = Field(..., max_length=30)
    address: str
    status: StudentStatus = StudentStatus.active


class StudentUpdate(BaseModel):
    """id is required; omitted fields keep their stored values."""

    id: Optional[int] = None
    firstname: Optional[str] = Field(None, min_length=1, max_length=100)
    othernames: Optional[str] = Field(None, max_length=150)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None
    status: Optional[StudentStatus] = None
    is_active: Optional[bool] = None


class StudentResponse(BaseModel):
    id: int
    firstname: str
    othernames: str
    phone: str
    address: str
    status: StudentStatus
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StudentDepartmentItem(BaseModel):
    department_id: int
    name: str
    term: str
    year: str
    enrollment_status: str
    enrollment_date: datetime


class StudentWithDepartments(StudentResponse):
    departments: List[StudentDepartmentItem] = Field(default_factory=list)
