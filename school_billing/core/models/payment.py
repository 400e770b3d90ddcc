"""Payment: records money received against a bill. Supports partial payments."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
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

from school_billing.core.enums import PaymentStatus
from school_billing.db.session import Base, utcnow


class Payment(Base):
    """Only status='completed' payments count toward paid totals."""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "status IN ('completed','pending','failed','refunded')",
            name="chk_payment_status",
        ),
        CheckConstraint(
            "method IS NULL OR method IN ('cash','transfer','check','card','other')",
            name="chk_payment_method",
        ),
        Index("idx_payments_bill_id", "bill_id"),
        Index("idx_payments_student_id", "student_id"),
        Index("idx_payments_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    bill_id = Column(Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=False)
    method = Column(String(20), nullable=True)
    reference = Column(String(100), nullable=True)
    received_by = Column(String(100), nullable=True)
    note = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.completed.value, server_default="completed")
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    bill = relationship("Bill", back_populates="payments")
    student = relationship("Student")
