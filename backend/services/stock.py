"""
Stock projection: the current quantity per item.

Reads are open to everyone. The two ``apply_*`` writers are for the ledger
only and must run inside its transaction, next to the movement insert.
"""

import uuid
from datetime import datetime
from typing import Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import PersistenceError
from db.inventory.stock import StockLevel


async def current_quantity(db: AsyncSession, item_id: UUID) -> int:
    res = await db.execute(
        select(StockLevel.current_quantity).where(StockLevel.item_id == item_id)
    )
    value = res.scalar_one_or_none()
    return int(value) if value is not None else 0


async def quantities(db: AsyncSession, item_ids: Optional[Iterable[UUID]] = None) -> Dict[UUID, int]:
    """Quantity per item; items without a stock row are simply absent."""
    stmt = select(StockLevel.item_id, StockLevel.current_quantity)
    if item_ids is not None:
        ids = set(item_ids)
        if not ids:
            return {}
        stmt = stmt.where(StockLevel.item_id.in_(ids))
    res = await db.execute(stmt)
    return {row.item_id: int(row.current_quantity) for row in res.all()}


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise PersistenceError(f"Unsupported database dialect for stock upsert: {dialect}")


async def apply_entry(db: AsyncSession, item_id: UUID, quantity: int, *, at: datetime) -> int:
    """Add ``quantity`` to the item's stock, creating the row on first use."""
    tbl = StockLevel.__table__
    insert = _insert_for(db)
    upsert = (
        insert(tbl)
        .values(
            id=uuid.uuid4(),
            item_id=item_id,
            current_quantity=quantity,
            updated_at=at,
        )
        .on_conflict_do_update(
            index_elements=[tbl.c.item_id],
            set_={"current_quantity": tbl.c.current_quantity + quantity, "updated_at": at},
        )
        .returning(tbl.c.current_quantity)
    )
    upserted = (await db.execute(upsert)).first()
    return int(upserted.current_quantity)


async def apply_exit(db: AsyncSession, item_id: UUID, quantity: int, *, at: datetime) -> Optional[int]:
    """
    Subtract ``quantity`` only if enough stock remains, as one statement.

    Returns the new quantity, or None when the row is missing or the
    decrement would go below zero. Nothing is changed in that case.
    """
    tbl = StockLevel.__table__
    stmt = (
        update(tbl)
        .where(tbl.c.item_id == item_id)
        .where(tbl.c.current_quantity >= quantity)
        .values(current_quantity=tbl.c.current_quantity - quantity, updated_at=at)
        .returning(tbl.c.current_quantity)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        return None
    return int(row.current_quantity)
