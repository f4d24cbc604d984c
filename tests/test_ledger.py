from datetime import date
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DataError, IntegrityError, OperationalError

from core.errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from db.inventory.movement import Entry, Exit
from services import ledger, stock

pytestmark = pytest.mark.asyncio

DAY = date(2024, 1, 5)


async def _log_balance(db, item_id) -> int:
    entries = (
        await db.execute(select(func.coalesce(func.sum(Entry.quantity), 0)).where(Entry.item_id == item_id))
    ).scalar_one()
    exits = (
        await db.execute(select(func.coalesce(func.sum(Exit.quantity), 0)).where(Exit.item_id == item_id))
    ).scalar_one()
    return int(entries) - int(exits)


async def _count(db, model) -> int:
    return int((await db.execute(select(func.count()).select_from(model))).scalar_one())


async def test_rice_scenario(db, make_item, actor_id):
    rice_id = (await make_item("Rice")).id
    assert await stock.current_quantity(db, rice_id) == 0

    await ledger.record_entry(db, actor_id=actor_id, item_id=rice_id, quantity=50, occurred_at=DAY)
    assert await stock.current_quantity(db, rice_id) == 50

    await ledger.record_exit(
        db, actor_id=actor_id, item_id=rice_id, quantity=20, occurred_at=DAY, destination="Shelter A"
    )
    assert await stock.current_quantity(db, rice_id) == 30

    with pytest.raises(InsufficientStockError) as exc_info:
        await ledger.record_exit(
            db, actor_id=actor_id, item_id=rice_id, quantity=40, occurred_at=DAY, destination="Shelter B"
        )
    assert exc_info.value.available == 30
    assert exc_info.value.requested == 40
    assert await stock.current_quantity(db, rice_id) == 30
    assert await _count(db, Exit) == 1


async def test_projection_matches_log_after_mixed_movements(db, make_item, actor_id):
    item_id = (await make_item("Beans")).id
    script = [("in", 7), ("out", 3), ("in", 10), ("out", 14), ("out", 1), ("in", 2), ("out", 5)]
    for kind, qty in script:
        try:
            if kind == "in":
                await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=qty, occurred_at=DAY)
            else:
                await ledger.record_exit(
                    db, actor_id=actor_id, item_id=item_id, quantity=qty, occurred_at=DAY, destination="Kitchen"
                )
        except InsufficientStockError:
            pass
        current = await stock.current_quantity(db, item_id)
        assert current >= 0
        assert current == await _log_balance(db, item_id)


async def test_entry_creates_stock_row_lazily(db, actor_id):
    from db.inventory.item import Item

    item = Item(name="Soap", category="Hygiene", unit_of_measure="unit", minimum_quantity=2)
    db.add(item)
    await db.commit()
    item_id = item.id

    await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=4, occurred_at=DAY)
    assert await stock.current_quantity(db, item_id) == 4


async def test_exit_on_item_without_stock_row_is_insufficient(db, actor_id):
    from db.inventory.item import Item

    item = Item(name="Towel", category="Hygiene", unit_of_measure="unit", minimum_quantity=0)
    db.add(item)
    await db.commit()
    item_id = item.id

    with pytest.raises(InsufficientStockError):
        await ledger.record_exit(
            db, actor_id=actor_id, item_id=item_id, quantity=1, occurred_at=DAY, destination="Room 3"
        )
    assert await stock.current_quantity(db, item_id) == 0


@pytest.mark.parametrize("quantity", [0, -3])
async def test_non_positive_quantity_is_rejected(db, make_item, actor_id, quantity):
    item_id = (await make_item()).id
    with pytest.raises(ValidationError):
        await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=quantity, occurred_at=DAY)
    with pytest.raises(ValidationError):
        await ledger.record_exit(
            db, actor_id=actor_id, item_id=item_id, quantity=quantity, occurred_at=DAY, destination="X"
        )
    assert await _count(db, Entry) == 0
    assert await _count(db, Exit) == 0


async def test_exit_requires_destination(db, make_item, actor_id):
    item_id = (await make_item()).id
    await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=5, occurred_at=DAY)
    with pytest.raises(ValidationError) as exc_info:
        await ledger.record_exit(db, actor_id=actor_id, item_id=item_id, quantity=1, occurred_at=DAY, destination="  ")
    assert exc_info.value.field == "destination"
    assert await stock.current_quantity(db, item_id) == 5


async def test_unknown_item_is_not_found(db, actor_id):
    missing = uuid.uuid4()
    with pytest.raises(NotFoundError):
        await ledger.record_entry(db, actor_id=actor_id, item_id=missing, quantity=1, occurred_at=DAY)
    with pytest.raises(NotFoundError):
        await ledger.record_exit(
            db, actor_id=actor_id, item_id=missing, quantity=1, occurred_at=DAY, destination="X"
        )
    assert await _count(db, Entry) == 0


async def test_movement_keeps_actor_and_optional_fields(db, make_item, actor_id):
    item_id = (await make_item()).id
    await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=9, occurred_at=DAY, note="  donation ")
    exit_ = await ledger.record_exit(
        db,
        actor_id=actor_id,
        item_id=item_id,
        quantity=2,
        occurred_at=DAY,
        destination="Shelter A",
        beneficiary="",
        campaign="Winter",
    )
    entry = (await db.execute(select(Entry))).scalar_one()
    assert entry.actor_id == actor_id
    assert entry.note == "donation"
    assert exit_.beneficiary is None
    assert exit_.campaign == "Winter"


async def test_failed_write_leaves_no_partial_state(db, make_item, actor_id, monkeypatch):
    item_id = (await make_item()).id

    async def broken_apply_entry(session, item_id, quantity, *, at):
        await session.flush()  # the entry row is already written in the transaction
        raise OperationalError("UPDATE stock_levels", {}, Exception("disk I/O error"))

    monkeypatch.setattr(stock, "apply_entry", broken_apply_entry)
    with pytest.raises(PersistenceError):
        await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=3, occurred_at=DAY)

    assert await _count(db, Entry) == 0
    assert await stock.current_quantity(db, item_id) == 0


async def test_lost_race_is_retried_from_a_fresh_read(db, make_item, actor_id, monkeypatch):
    item_id = (await make_item()).id
    await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=10, occurred_at=DAY)

    real_apply_exit = stock.apply_exit
    calls = []

    async def flaky_apply_exit(session, item_id, quantity, *, at):
        calls.append(quantity)
        if len(calls) == 1:
            return None
        return await real_apply_exit(session, item_id, quantity, at=at)

    monkeypatch.setattr(stock, "apply_exit", flaky_apply_exit)
    await ledger.record_exit(db, actor_id=actor_id, item_id=item_id, quantity=4, occurred_at=DAY, destination="A")

    assert len(calls) == 2
    assert await stock.current_quantity(db, item_id) == 6
    assert await _count(db, Exit) == 1


async def test_persistent_conflict_surfaces_without_writing(db, make_item, actor_id, monkeypatch):
    item_id = (await make_item()).id
    await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=10, occurred_at=DAY)

    async def always_lost(session, item_id, quantity, *, at):
        return None

    monkeypatch.setattr(stock, "apply_exit", always_lost)
    with pytest.raises(ConcurrencyConflictError):
        await ledger.record_exit(db, actor_id=actor_id, item_id=item_id, quantity=4, occurred_at=DAY, destination="A")

    assert await _count(db, Exit) == 0
    assert await stock.current_quantity(db, item_id) == 10


async def test_conditional_decrement_refuses_overdraw(db, make_item, actor_id):
    from core.clock import utcnow

    item_id = (await make_item()).id
    await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=3, occurred_at=DAY)

    assert await stock.apply_exit(db, item_id, 4, at=utcnow()) is None
    assert await stock.apply_exit(db, item_id, 3, at=utcnow()) == 0
    await db.rollback()
    assert await stock.current_quantity(db, item_id) == 3


async def test_quantity_beyond_integer_column_is_rejected(db, make_item, actor_id):
    item_id = (await make_item()).id
    with pytest.raises(ValidationError) as exc_info:
        await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=10**20, occurred_at=DAY)
    assert exc_info.value.field == "quantity"
    with pytest.raises(ValidationError):
        await ledger.record_exit(
            db, actor_id=actor_id, item_id=item_id, quantity=ledger.MAX_QUANTITY + 1, occurred_at=DAY, destination="X"
        )
    assert await _count(db, Entry) == 0
    assert await stock.current_quantity(db, item_id) == 0


async def test_entry_that_would_overflow_the_total_is_rejected(db, make_item, actor_id):
    item_id = (await make_item()).id
    await ledger.record_entry(
        db, actor_id=actor_id, item_id=item_id, quantity=ledger.MAX_QUANTITY - 5, occurred_at=DAY
    )
    with pytest.raises(ValidationError):
        await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=10, occurred_at=DAY)

    assert not db.in_transaction()
    assert await stock.current_quantity(db, item_id) == ledger.MAX_QUANTITY - 5
    assert await _count(db, Entry) == 1


async def test_out_of_range_write_is_a_validation_error(db, make_item, actor_id, monkeypatch):
    item_id = (await make_item()).id

    async def overflowing_apply_entry(session, item_id, quantity, *, at):
        raise DataError("UPDATE stock_levels", {}, Exception("numeric value out of range"))

    monkeypatch.setattr(stock, "apply_entry", overflowing_apply_entry)
    with pytest.raises(ValidationError):
        await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=3, occurred_at=DAY)

    assert not db.in_transaction()
    assert await _count(db, Entry) == 0


async def test_unexpected_error_rolls_back_and_propagates(db, make_item, actor_id, monkeypatch):
    item_id = (await make_item()).id

    async def exploding_apply_entry(session, item_id, quantity, *, at):
        await session.flush()
        raise RuntimeError("driver went away")

    monkeypatch.setattr(stock, "apply_entry", exploding_apply_entry)
    with pytest.raises(RuntimeError):
        await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=3, occurred_at=DAY)

    assert not db.in_transaction()
    assert await _count(db, Entry) == 0
    assert await stock.current_quantity(db, item_id) == 0


async def test_unrelated_integrity_error_is_not_retried(db, make_item, actor_id, monkeypatch):
    item_id = (await make_item()).id
    calls = []

    async def not_null_apply_entry(session, item_id, quantity, *, at):
        calls.append(quantity)
        raise IntegrityError("INSERT INTO entries", {}, Exception("NOT NULL constraint failed: entries.actor_id"))

    monkeypatch.setattr(stock, "apply_entry", not_null_apply_entry)
    with pytest.raises(PersistenceError):
        await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=3, occurred_at=DAY)

    assert len(calls) == 1
    assert await _count(db, Entry) == 0


async def test_duplicate_stock_row_race_is_retried(db, make_item, actor_id, monkeypatch):
    item_id = (await make_item()).id
    real_apply_entry = stock.apply_entry
    calls = []

    async def racing_apply_entry(session, item_id, quantity, *, at):
        calls.append(quantity)
        if len(calls) == 1:
            raise IntegrityError(
                "INSERT INTO stock_levels", {}, Exception("UNIQUE constraint failed: stock_levels.item_id")
            )
        return await real_apply_entry(session, item_id, quantity, at=at)

    monkeypatch.setattr(stock, "apply_entry", racing_apply_entry)
    await ledger.record_entry(db, actor_id=actor_id, item_id=item_id, quantity=3, occurred_at=DAY)

    assert len(calls) == 2
    assert await stock.current_quantity(db, item_id) == 3
    assert await _count(db, Entry) == 1
