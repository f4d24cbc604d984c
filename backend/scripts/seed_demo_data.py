"""
Seed a small demo catalog with opening stock.

This script:
- Creates a handful of catalog items (skips names that already exist).
- Records an opening entry for each new item through the ledger, so the
  stock rows and the movement log agree from the start.
- Records one exit to show the history merge.

Run:
  cd backend && PYTHONPATH=. python scripts/seed_demo_data.py

Optional env vars:
- SEED_ACTOR_ID (default: a fixed demo uuid)
- OPENING_QTY (default: 20)
"""

from __future__ import annotations

import asyncio
import os
import uuid

from sqlalchemy import func, select

from core import clock
from db.database import async_session_maker, create_db_and_tables
from db.inventory.item import Item
from db.inventory.stock import StockLevel
from services import ledger

DEMO_ACTOR_ID = uuid.UUID("00000000-0000-0000-0000-00000000d3e0")

DEMO_ITEMS = [
    # name, category, unit, minimum
    ("Rice", "Food", "kg", 10),
    ("Beans", "Food", "kg", 10),
    ("Cooking oil", "Food", "l", 5),
    ("Blanket", "Clothing", "unit", 3),
    ("Soap", "Hygiene", "unit", 12),
]


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)).strip())
    except ValueError:
        return default


async def main() -> None:
    actor_id = uuid.UUID(os.getenv("SEED_ACTOR_ID", str(DEMO_ACTOR_ID)))
    opening = _env_int("OPENING_QTY", 20)
    today = clock.today()

    await create_db_and_tables()

    async with async_session_maker() as db:
        created = []
        for name, category, unit, minimum in DEMO_ITEMS:
            res = await db.execute(select(Item).where(func.lower(Item.name) == name.lower()))
            if res.scalar_one_or_none():
                continue
            item = Item(name=name, category=category, unit_of_measure=unit, minimum_quantity=minimum)
            item.stock_level = StockLevel(current_quantity=0)
            db.add(item)
            created.append(item)
        await db.commit()

        for item in created:
            await ledger.record_entry(
                db,
                actor_id=actor_id,
                item_id=item.id,
                quantity=opening,
                occurred_at=today,
                note="Opening stock",
            )

        if created:
            await ledger.record_exit(
                db,
                actor_id=actor_id,
                item_id=created[0].id,
                quantity=min(opening, 5),
                occurred_at=today,
                destination="Demo shelter",
            )

        print(f"Seed complete. Items created: {len(created)} (opening quantity {opening}).")


if __name__ == "__main__":
    asyncio.run(main())
