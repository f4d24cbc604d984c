from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.errors import NotFoundError, to_http_exception
from db.database import get_async_session
from db.users import User
from schemas.inventory import StockOut
from services import alerts, catalog

router = APIRouter()


@router.get("/", response_model=List[StockOut])
async def get_stock(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Current quantity of every item, lowest first."""
    return [row.to_dict() for row in await alerts.stock_overview(db)]


@router.get("/{item_id}", response_model=StockOut)
async def get_stock_for_item(
    item_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        item = await catalog.get_item(db, item_id)
    except NotFoundError as e:
        raise to_http_exception(e)
    (row,) = await alerts.stock_overview(db, [item])
    return row.to_dict()
