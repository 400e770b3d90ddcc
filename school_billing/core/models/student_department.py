from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from school_billing.core.enums import EnrollmentStatus
from school_billing.db.session import Base, utcnow


class StudentDepartment(Base):
    """
    Enrollment of a student in a department.
    One row per (student, department); withdrawal and re-enrollment update this row in place.
    """

    __tablename__ = "student_departments"
    __table_args__ = (
        UniqueConstraint("student_id", "department_id", name="uq_student_department"),
        CheckConstraint(
            "status IN ('active','completed','withdrawn')",
            name="chk_student_department_status",
        ),
        Index("idx_student_departments_student_id", "student_id"),
        Index("idx_student_departments_department_id", "department_id"),
        Index("idx_student_departments_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False)
    enrollment_date = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    status = Column(String(20), nullable=False, default=EnrollmentStatus.active.value, server_default="active")
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    student = relationship("Student", back_populates="enrollments")
    department = relationship("Department", back_populates="enrollments")
