from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, func
from sqlalchemy.orm import relationship

from school_billing.db.session import Base, utcnow


class BillItemRelation(Base):
    """Line item on a bill. amount overrides the catalog amount of the bill item."""

    __tablename__ = "bill_item_relations"
    __table_args__ = (
        Index("idx_bill_item_relations_bill_id", "bill_id"),
        Index("idx_bill_item_relations_bill_item_id", "bill_item_id"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    bill_id = Column(Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False)
    bill_item_id = Column(Integer, ForeignKey("bill_items.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1, server_default="1")
    discount = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    bill = relationship("Bill", back_populates="items")
    bill_item = relationship("BillItem", back_populates="relations")
