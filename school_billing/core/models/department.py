from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text, func
from sqlalchemy.orm import relationship

from school_billing.db.session import Base, utcnow


class Department(Base):
    """A department offering for one term and year; owns its bill item catalog."""

    __tablename__ = "departments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    term = Column(String(50), nullable=False)
    year = Column(String(10), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    bill_items = relationship("BillItem", back_populates="department", passive_deletes=True)
    enrollments = relationship("StudentDepartment", back_populates="department", passive_deletes=True)
