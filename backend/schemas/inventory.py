from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.config import settings
from services.ledger import MAX_QUANTITY


MovementKind = Literal["entry", "exit"]
MovementKindFilter = Literal["all", "entry", "exit"]


def _strip_nullable(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class ItemCreate(BaseModel):
    name: str
    category: str
    unit_of_measure: str
    description: Optional[str] = None
    minimum_quantity: int = settings.default_minimum_quantity

    @field_validator("name", "category", "unit_of_measure")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)

    @field_validator("minimum_quantity")
    @classmethod
    def _minimum_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("minimum_quantity must be >= 0")
        if v is not None and v > MAX_QUANTITY:
            raise ValueError(f"minimum_quantity must be <= {MAX_QUANTITY}")
        return v


class ItemUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    unit_of_measure: Optional[str] = None
    description: Optional[str] = None
    minimum_quantity: Optional[int] = None

    @field_validator("name", "category", "unit_of_measure")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = (v or "").strip()
        if not v:
            raise ValueError("cannot be empty")
        return v

    @field_validator("minimum_quantity")
    @classmethod
    def _minimum_non_negative(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("minimum_quantity must be >= 0")
        if v is not None and v > MAX_QUANTITY:
            raise ValueError(f"minimum_quantity must be <= {MAX_QUANTITY}")
        return v


class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    category: str
    description: Optional[str] = None
    unit_of_measure: str
    minimum_quantity: int
    current_quantity: int = 0
    low_stock: bool = False


class EntryCreate(BaseModel):
    item_id: UUID
    # Lower bound is checked by the ledger so it reports its own error code.
    quantity: int = Field(le=MAX_QUANTITY)
    occurred_at: Optional[date] = None
    note: Optional[str] = None

    @field_validator("note")
    @classmethod
    def _strip_note(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class ExitCreate(BaseModel):
    item_id: UUID
    # Lower bound is checked by the ledger so it reports its own error code.
    quantity: int = Field(le=MAX_QUANTITY)
    occurred_at: Optional[date] = None
    destination: str
    beneficiary: Optional[str] = None
    campaign: Optional[str] = None
    note: Optional[str] = None

    @field_validator("beneficiary", "campaign", "note")
    @classmethod
    def _strip_nullable_fields(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class EntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    item_id: UUID
    quantity: int
    occurred_at: date
    note: Optional[str] = None
    actor_id: UUID
    recorded_at: datetime


class ExitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    item_id: UUID
    quantity: int
    occurred_at: date
    destination: str
    beneficiary: Optional[str] = None
    campaign: Optional[str] = None
    note: Optional[str] = None
    actor_id: UUID
    recorded_at: datetime


class StockOut(BaseModel):
    item_id: UUID
    name: str
    category: str
    unit_of_measure: str
    minimum_quantity: int
    current_quantity: int
    low_stock: bool


class EntryRecorded(BaseModel):
    movement: EntryOut
    stock: StockOut


class ExitRecorded(BaseModel):
    movement: ExitOut
    stock: StockOut


class MovementOut(BaseModel):
    id: UUID
    kind: MovementKind
    item_id: UUID
    item_name: str
    quantity: int
    occurred_at: date
    recorded_at: datetime
    actor_id: Optional[UUID] = None
    actor_name: str
    note: Optional[str] = None
    destination: Optional[str] = None
    beneficiary: Optional[str] = None
    campaign: Optional[str] = None
    details: Optional[str] = None


class MovementTotalsOut(BaseModel):
    entry_quantity: int
    exit_quantity: int
    count: int


class MovementHistoryOut(BaseModel):
    movements: List[MovementOut]
    totals: MovementTotalsOut


class DashboardOut(BaseModel):
    day: date
    total_items: int
    entries_today: int
    exits_today: int
    alerts: int
    low_stock: List[StockOut]
    recent: List[MovementOut]
