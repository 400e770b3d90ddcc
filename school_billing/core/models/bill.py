from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from school_billing.core.enums import BillStatus
from school_billing.db.session import Base, utcnow


class Bill(Base):
    """
    Charge issued to one student for one department.
    total_amount is derived from the line items when the bill is created and is
    only recomputed on an explicit recalculation.
    """

    __tablename__ = "bills"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','partial','paid','overdue','cancelled')",
            name="chk_bill_status",
        ),
        Index("idx_bills_student_id", "student_id"),
        Index("idx_bills_department_id", "department_id"),
        Index("idx_bills_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(150), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=BillStatus.pending.value, server_default="pending")
    discount = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    note = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    student = relationship("Student", back_populates="bills")
    department = relationship("Department")
    items = relationship("BillItemRelation", back_populates="bill", passive_deletes=True)
    payments = relationship("Payment", back_populates="bill", passive_deletes=True)
