import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_superuser, current_active_user
from core.errors import NotFoundError, to_http_exception
from db.database import get_async_session
from db.inventory.item import Item as ItemModel
from db.inventory.stock import StockLevel as StockLevelModel
from db.users import User
from schemas.inventory import ItemCreate, ItemOut, ItemUpdate
from services import alerts, catalog, stock

router = APIRouter()
logger = logging.getLogger("estoque.api")


async def _item_out(db: AsyncSession, item: ItemModel) -> ItemOut:
    quantity = await stock.current_quantity(db, item.id)
    return ItemOut(
        **item.to_schema,
        current_quantity=quantity,
        low_stock=alerts.is_below_minimum(quantity, item.minimum_quantity),
    )


async def _get_or_404(db: AsyncSession, item_id: UUID) -> ItemModel:
    try:
        return await catalog.get_item(db, item_id)
    except NotFoundError as e:
        raise to_http_exception(e)


@router.get("/", response_model=List[ItemOut])
async def list_items(
    q: Optional[str] = None,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """List catalog items (optionally searched by name, category or unit) with their stock."""
    items = await catalog.list_items(db, search=q)
    by_item = await stock.quantities(db, [it.id for it in items])
    out = []
    for it in items:
        quantity = by_item.get(it.id, 0)
        out.append(
            ItemOut(
                **it.to_schema,
                current_quantity=quantity,
                low_stock=alerts.is_below_minimum(quantity, it.minimum_quantity),
            )
        )
    return out


@router.get("/{item_id}", response_model=ItemOut)
async def get_item(
    item_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    item = await _get_or_404(db, item_id)
    return await _item_out(db, item)


@router.post("/", response_model=ItemOut, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: ItemCreate,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    item = ItemModel(
        name=payload.name,
        category=payload.category,
        description=payload.description,
        unit_of_measure=payload.unit_of_measure,
        minimum_quantity=payload.minimum_quantity,
    )
    # Stock row starts at zero; only the ledger moves it afterwards.
    item.stock_level = StockLevelModel(current_quantity=0)
    db.add(item)
    await db.commit()
    await db.refresh(item)
    logger.info("item %s created (%s)", item.id, item.name)
    return ItemOut(**item.to_schema, current_quantity=0, low_stock=alerts.is_below_minimum(0, item.minimum_quantity))


@router.patch("/{item_id}", response_model=ItemOut)
async def update_item(
    item_id: UUID,
    payload: ItemUpdate,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    item = await _get_or_404(db, item_id)

    data = payload.model_dump(exclude_unset=True)
    for field in ("name", "category", "unit_of_measure", "minimum_quantity"):
        if field in data:
            if data[field] is None:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} cannot be null")
            setattr(item, field, data[field])
    if "description" in data:
        item.description = (data["description"] or "").strip() or None

    await db.commit()
    await db.refresh(item)
    return await _item_out(db, item)


@router.delete("/{item_id}", response_model=dict)
async def delete_item(
    item_id: UUID,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Remove an item from the catalog.

    Its stock row goes with it; recorded movements stay in the log and show
    up as an unknown item in the history.
    """
    item = await _get_or_404(db, item_id)
    await db.delete(item)
    await db.commit()
    logger.info("item %s deleted", item_id)
    return {"ok": True}
