# tests/conftest.py
from __future__ import annotations

import os
import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# The app modules build their engine at import time; point them at SQLite
# before anything from backend/ is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./estoque-test.db")
os.environ.setdefault("STOCK_TIMEZONE", "America/Sao_Paulo")

from db.database import Base, register_models  # noqa: E402
from db.inventory.item import Item  # noqa: E402
from db.inventory.stock import StockLevel  # noqa: E402


# ==========================
# One SQLite file per test
# ==========================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'estoque.db'}",
        poolclass=NullPool,
    )
    register_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine: AsyncEngine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as sess:
        yield sess


@pytest.fixture
def actor_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_item(db: AsyncSession):
    """Create a catalog item with a zero stock row, the way the items API does."""

    async def _make(name: str = "Rice", minimum_quantity: int = 5, category: str = "Food", unit: str = "kg") -> Item:
        item = Item(name=name, category=category, unit_of_measure=unit, minimum_quantity=minimum_quantity)
        item.stock_level = StockLevel(current_quantity=0)
        db.add(item)
        await db.commit()
        return item

    return _make
