import uuid

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid, CheckConstraint
from sqlalchemy.orm import relationship

from core.clock import utcnow
from ..database import Base


class Item(Base):
    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint("minimum_quantity >= 0", name="ck_items_minimum_quantity_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    unit_of_measure = Column(String, nullable=False)
    minimum_quantity = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    stock_level = relationship(
        "StockLevel",
        back_populates="item",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "unit_of_measure": self.unit_of_measure,
            "minimum_quantity": self.minimum_quantity,
        }
