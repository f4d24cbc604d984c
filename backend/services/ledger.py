"""
Ledger engine: the only writer of stock state.

Each command validates its input, then under a per-item lock reads the
projection, inserts the movement and moves the StockLevel in one
transaction. Exits use a conditional decrement (``current_quantity >= q``)
so the database rejects an overdraw even if another process raced us past
the in-process lock. A lost race surfaces as ConcurrencyConflictError and
is retried from a fresh read up to ``settings.ledger_max_retries`` times.

The session is committed or rolled back here; callers never see partial
state.
"""

import asyncio
import logging
import uuid
import weakref
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.config import settings
from core.errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    PersistenceError,
    StockLedgerError,
    ValidationError,
)
from db.inventory.movement import Entry, Exit
from services import catalog, stock

logger = logging.getLogger("estoque.ledger")

T = TypeVar("T")

# Postgres SQLSTATEs for serialization failure / deadlock / lock not available
_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
_CONFLICT_MARKERS = ("database is locked", "deadlock", "could not serialize", "lock not available")

# Integer columns hold 32-bit values on every supported backend.
MAX_QUANTITY = 2**31 - 1

# Integrity failures that mean another writer touched the same stock row
_STOCK_CONSTRAINTS = ("stock_levels.", "ux_stock_levels_item", "ck_stock_levels_non_negative")
_RACE_SQLSTATES = {"23505", "23514"}
_RACE_MARKERS = ("unique constraint", "duplicate key", "check constraint")


class ItemLocks:
    """In-process mutual exclusion per item id. Different items never wait on each other."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, item_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(item_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[item_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, item_id: UUID):
        lock = self.lock_for(item_id)
        async with lock:
            yield


item_locks = ItemLocks()


def _positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", field="quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0", field="quantity")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"quantity must be <= {MAX_QUANTITY}", field="quantity")
    return quantity


def _movement_date(occurred_at) -> date:
    if isinstance(occurred_at, datetime):
        return occurred_at.date()
    if not isinstance(occurred_at, date):
        raise ValidationError("occurred_at must be a date", field="occurred_at")
    return occurred_at


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _required_text(value: Optional[str], field: str) -> str:
    value = _optional_text(value)
    if not value:
        raise ValidationError(f"{field} is required", field=field)
    return value


def _require_actor(actor_id) -> UUID:
    if actor_id is None:
        raise ValidationError("actor_id is required", field="actor_id")
    return actor_id


def _is_conflict(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, IntegrityError):
        # Only a lost race on the stock row is retryable; NOT NULL and the like are not.
        orig = getattr(exc, "orig", None)
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        text = str(orig or exc).lower()
        on_stock = any(name in text for name in _STOCK_CONSTRAINTS)
        return on_stock and (sqlstate in _RACE_SQLSTATES or any(m in text for m in _RACE_MARKERS))
    if isinstance(exc, (OperationalError, DBAPIError)):
        orig = getattr(exc, "orig", None)
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in _CONFLICT_SQLSTATES:
            return True
        text = str(orig or exc).lower()
        return any(marker in text for marker in _CONFLICT_MARKERS)
    return False


async def _apply(
    db: AsyncSession,
    item_id: UUID,
    action: Callable[[], Awaitable[T]],
    describe: str,
) -> T:
    attempts = max(1, settings.ledger_max_retries)
    for attempt in range(1, attempts + 1):
        async with item_locks.hold(item_id):
            try:
                result = await action()
                await db.commit()
                return result
            except ConcurrencyConflictError:
                await db.rollback()
                if attempt >= attempts:
                    logger.warning("%s on item %s gave up after %d attempts", describe, item_id, attempt)
                    raise
                logger.info("%s on item %s conflicted (attempt %d), retrying", describe, item_id, attempt)
            except StockLedgerError:
                await db.rollback()
                raise
            except DataError as e:
                # Numeric overflow and similar out-of-range input.
                await db.rollback()
                raise ValidationError(f"{describe} value out of range for storage", field="quantity") from e
            except SQLAlchemyError as e:
                await db.rollback()
                if not _is_conflict(e):
                    logger.exception("%s on item %s failed to commit", describe, item_id)
                    raise PersistenceError(f"Failed to record {describe}") from e
                if attempt >= attempts:
                    logger.warning("%s on item %s gave up after %d attempts", describe, item_id, attempt)
                    raise ConcurrencyConflictError(item_id) from e
                logger.info("%s on item %s hit %s (attempt %d), retrying", describe, item_id, type(e).__name__, attempt)
            except Exception:
                await db.rollback()
                raise
    raise ConcurrencyConflictError(item_id)


async def record_entry(
    db: AsyncSession,
    *,
    actor_id: UUID,
    item_id: UUID,
    quantity: int,
    occurred_at: date,
    note: Optional[str] = None,
) -> Entry:
    """Append a stock-in movement and raise the item's quantity by ``quantity``."""
    quantity = _positive_quantity(quantity)
    occurred_at = _movement_date(occurred_at)
    note = _optional_text(note)
    actor_id = _require_actor(actor_id)

    async def _do() -> Entry:
        await catalog.get_item(db, item_id)
        available = await stock.current_quantity(db, item_id)
        if available + quantity > MAX_QUANTITY:
            raise ValidationError(
                f"entry would push stock past {MAX_QUANTITY} (current={available})", field="quantity"
            )
        now = utcnow()
        entry = Entry(
            id=uuid.uuid4(),
            item_id=item_id,
            quantity=quantity,
            occurred_at=occurred_at,
            note=note,
            actor_id=actor_id,
            recorded_at=now,
        )
        db.add(entry)
        new_quantity = await stock.apply_entry(db, item_id, quantity, at=now)
        logger.info("entry %s: item=%s +%d -> %d", entry.id, item_id, quantity, new_quantity)
        return entry

    return await _apply(db, item_id, _do, "entry")


async def record_exit(
    db: AsyncSession,
    *,
    actor_id: UUID,
    item_id: UUID,
    quantity: int,
    occurred_at: date,
    destination: str,
    beneficiary: Optional[str] = None,
    campaign: Optional[str] = None,
    note: Optional[str] = None,
) -> Exit:
    """
    Append a stock-out movement and lower the item's quantity.

    Raises InsufficientStockError (nothing written) when the item holds less
    than ``quantity``.
    """
    quantity = _positive_quantity(quantity)
    occurred_at = _movement_date(occurred_at)
    destination = _required_text(destination, "destination")
    beneficiary = _optional_text(beneficiary)
    campaign = _optional_text(campaign)
    note = _optional_text(note)
    actor_id = _require_actor(actor_id)

    async def _do() -> Exit:
        await catalog.get_item(db, item_id)
        available = await stock.current_quantity(db, item_id)
        if available < quantity:
            logger.info("exit rejected: item=%s available=%d requested=%d", item_id, available, quantity)
            raise InsufficientStockError(item_id, available, quantity)

        now = utcnow()
        exit_ = Exit(
            id=uuid.uuid4(),
            item_id=item_id,
            quantity=quantity,
            occurred_at=occurred_at,
            destination=destination,
            beneficiary=beneficiary,
            campaign=campaign,
            note=note,
            actor_id=actor_id,
            recorded_at=now,
        )
        db.add(exit_)
        remaining = await stock.apply_exit(db, item_id, quantity, at=now)
        if remaining is None:
            # Another writer moved the stock between our read and the decrement.
            raise ConcurrencyConflictError(item_id)
        logger.info("exit %s: item=%s -%d -> %d", exit_.id, item_id, quantity, remaining)
        return exit_

    return await _apply(db, item_id, _do, "exit")
