"""Low-stock alerts derived from the projection and the catalog thresholds."""

from dataclasses import dataclass
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.inventory.item import Item
from services import catalog, stock


def is_below_minimum(quantity: int, minimum_quantity: int) -> bool:
    # Inclusive: sitting exactly on the minimum already raises the alert.
    return quantity <= minimum_quantity


@dataclass(frozen=True)
class StockStatus:
    item_id: UUID
    name: str
    category: str
    unit_of_measure: str
    minimum_quantity: int
    current_quantity: int

    @property
    def low_stock(self) -> bool:
        return is_below_minimum(self.current_quantity, self.minimum_quantity)

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "category": self.category,
            "unit_of_measure": self.unit_of_measure,
            "minimum_quantity": self.minimum_quantity,
            "current_quantity": self.current_quantity,
            "low_stock": self.low_stock,
        }


async def is_low_stock(db: AsyncSession, item: Item) -> bool:
    quantity = await stock.current_quantity(db, item.id)
    return is_below_minimum(quantity, item.minimum_quantity)


async def stock_overview(db: AsyncSession, items: Optional[Sequence[Item]] = None) -> List[StockStatus]:
    """Every item with its quantity, lowest quantity first (ties by name)."""
    if items is None:
        items = await catalog.list_items(db)
    by_item = await stock.quantities(db, [it.id for it in items])
    rows = [
        StockStatus(
            item_id=it.id,
            name=it.name,
            category=it.category,
            unit_of_measure=it.unit_of_measure,
            minimum_quantity=it.minimum_quantity,
            current_quantity=by_item.get(it.id, 0),
        )
        for it in items
    ]
    rows.sort(key=lambda r: (r.current_quantity, r.name.lower()))
    return rows


async def low_stock_items(
    db: AsyncSession,
    items: Optional[Sequence[Item]] = None,
    limit: Optional[int] = None,
) -> List[StockStatus]:
    alerts = [row for row in await stock_overview(db, items) if row.low_stock]
    if limit is not None:
        alerts = alerts[:limit]
    return alerts
