from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from core import clock
from core.auth import current_active_user
from core.errors import StockLedgerError, to_http_exception
from db.database import get_async_session
from db.users import User
from schemas.inventory import (
    EntryCreate,
    EntryRecorded,
    ExitCreate,
    ExitRecorded,
    MovementHistoryOut,
    MovementKindFilter,
    MovementOut,
)
from services import alerts, catalog, history, ledger

router = APIRouter()


async def _stock_row(db: AsyncSession, item_id) -> dict:
    item = await catalog.get_item(db, item_id)
    (row,) = await alerts.stock_overview(db, [item])
    return row.to_dict()


@router.post("/entries", response_model=EntryRecorded, status_code=status.HTTP_201_CREATED)
async def create_entry(
    payload: EntryCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        entry = await ledger.record_entry(
            db,
            actor_id=user.id,
            item_id=payload.item_id,
            quantity=payload.quantity,
            occurred_at=payload.occurred_at or clock.today(),
            note=payload.note,
        )
        return {"movement": entry.to_schema, "stock": await _stock_row(db, entry.item_id)}
    except StockLedgerError as e:
        raise to_http_exception(e)


@router.post("/exits", response_model=ExitRecorded, status_code=status.HTTP_201_CREATED)
async def create_exit(
    payload: ExitCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        exit_ = await ledger.record_exit(
            db,
            actor_id=user.id,
            item_id=payload.item_id,
            quantity=payload.quantity,
            occurred_at=payload.occurred_at or clock.today(),
            destination=payload.destination,
            beneficiary=payload.beneficiary,
            campaign=payload.campaign,
            note=payload.note,
        )
        return {"movement": exit_.to_schema, "stock": await _stock_row(db, exit_.item_id)}
    except StockLedgerError as e:
        raise to_http_exception(e)


@router.get("/entries", response_model=List[MovementOut])
async def list_entries(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await history.list_movements(db, history.MovementFilter(kind="entry"))
    return [m.to_dict() for m in res.movements]


@router.get("/exits", response_model=List[MovementOut])
async def list_exits(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await history.list_movements(db, history.MovementFilter(kind="exit"))
    return [m.to_dict() for m in res.movements]


@router.get("/history", response_model=MovementHistoryOut)
async def list_history(
    kind: MovementKindFilter = "all",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    item: Optional[str] = None,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Entries and exits merged, newest first.

    Every filter is optional and they are combined with AND; totals cover
    only the filtered rows.
    """
    flt = history.MovementFilter(kind=kind, date_from=date_from, date_to=date_to, item=item)
    res = await history.list_movements(db, flt)
    return {
        "movements": [m.to_dict() for m in res.movements],
        "totals": {
            "entry_quantity": res.totals.entry_quantity,
            "exit_quantity": res.totals.exit_quantity,
            "count": res.totals.count,
        },
    }
