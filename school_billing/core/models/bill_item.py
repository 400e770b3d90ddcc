"""Department-level bill item catalog (Tuition, Books, Uniform)."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from school_billing.db.session import Base, utcnow


class BillItem(Base):
    """Catalog entry with a default amount. Referenced by bill item relations."""

    __tablename__ = "bill_items"
    __table_args__ = (
        Index("idx_bill_items_department_id", "department_id"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)  # tuition, books, uniform, ...
    is_required = Column(Boolean, nullable=False, default=False, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    department = relationship("Department", back_populates="bill_items")
    relations = relationship("BillItemRelation", back_populates="bill_item", passive_deletes=True)
