import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from core.clock import utcnow
from ..database import Base


class StockLevel(Base):
    __tablename__ = "stock_levels"
    __table_args__ = (
        UniqueConstraint("item_id", name="ux_stock_levels_item"),
        CheckConstraint("current_quantity >= 0", name="ck_stock_levels_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    item_id = Column(
        Uuid,
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Only the ledger writes this column.
    current_quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    item = relationship("Item", back_populates="stock_level")
