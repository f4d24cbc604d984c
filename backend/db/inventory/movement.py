import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Integer, Text, Uuid

from core.clock import utcnow
from ..database import Base


# item_id / actor_id are plain references (no FK): movements outlive catalog
# deletions and are rendered as an unknown item afterwards.


class Entry(Base):
    __tablename__ = "entries"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_entries_quantity_positive"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    item_id = Column(Uuid, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    occurred_at = Column(Date, nullable=False, index=True)
    note = Column(Text, nullable=True)
    actor_id = Column(Uuid, nullable=False)
    recorded_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "occurred_at": self.occurred_at,
            "note": self.note,
            "actor_id": self.actor_id,
            "recorded_at": self.recorded_at,
        }


class Exit(Base):
    __tablename__ = "exits"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_exits_quantity_positive"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    item_id = Column(Uuid, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    occurred_at = Column(Date, nullable=False, index=True)
    destination = Column(Text, nullable=False)
    beneficiary = Column(Text, nullable=True)
    campaign = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    actor_id = Column(Uuid, nullable=False)
    recorded_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "occurred_at": self.occurred_at,
            "destination": self.destination,
            "beneficiary": self.beneficiary,
            "campaign": self.campaign,
            "note": self.note,
            "actor_id": self.actor_id,
            "recorded_at": self.recorded_at,
        }
