from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class EnrollStudentsPayload(BaseModel):
    department_id: int
    student_ids: List[int] = Field(default_factory=list)
    enrollment_date: Optional[datetime] = None


class BulkRowError(BaseModel):
    """Per-student failure inside a tolerant bulk operation."""

    student_id: int
    error: str


class BulkEnrollmentResult(BaseModel):
    success_count: int = 0
    errors: List[BulkRowError] = Field(default_factory=list)


class EnrollmentResponse(BaseModel):
    id: int
    student_id: int
    department_id: int
    enrollment_date: datetime
    status: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
