"""Read side of the item catalog, as the ledger sees it."""

from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError
from db.inventory.item import Item


async def find_item(db: AsyncSession, item_id: UUID) -> Optional[Item]:
    res = await db.execute(select(Item).where(Item.id == item_id))
    return res.scalar_one_or_none()


async def get_item(db: AsyncSession, item_id: UUID) -> Item:
    item = await find_item(db, item_id)
    if item is None:
        raise NotFoundError(item_id)
    return item


async def list_items(db: AsyncSession, search: Optional[str] = None) -> List[Item]:
    """
    All catalog items ordered by name.

    ``search`` matches name, category or unit (case-insensitive substring).
    """
    stmt = select(Item)
    term = (search or "").strip().lower()
    if term:
        pattern = f"%{term}%"
        stmt = stmt.where(
            or_(
                func.lower(Item.name).like(pattern),
                func.lower(Item.category).like(pattern),
                func.lower(Item.unit_of_measure).like(pattern),
            )
        )
    res = await db.execute(stmt.order_by(func.lower(Item.name).asc()))
    return list(res.scalars().all())


async def item_names(db: AsyncSession, item_ids: Iterable[UUID]) -> Dict[UUID, str]:
    ids = set(item_ids)
    if not ids:
        return {}
    res = await db.execute(select(Item.id, Item.name).where(Item.id.in_(ids)))
    return {row.id: row.name for row in res.all()}
