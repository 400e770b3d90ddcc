from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import relationship

from school_billing.core.enums import StudentStatus
from school_billing.db.session import Base, utcnow


class Student(Base):
    """Student master data. Soft delete via is_active."""

    __tablename__ = "students"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active','inactive','graduated','suspended')",
            name="chk_student_status",
        ),
        Index("idx_students_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    firstname = Column(String(100), nullable=False)
    othernames = Column(String(150), nullable=False)
    phone = Column(String(30), nullable=False)
    address = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=StudentStatus.active.value, server_default="active")
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    enrollments = relationship("StudentDepartment", back_populates="student", passive_deletes=True)
    bills = relationship("Bill", back_populates="student", passive_deletes=True)

    @property
    def full_name(self) -> str:
        return f"{self.firstname} {self.othernames}".strip()
