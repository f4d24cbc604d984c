from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from db.database import get_async_session
from db.users import User
from schemas.inventory import DashboardOut, StockOut
from services import alerts, dashboard

router = APIRouter()


@router.get("/", response_model=DashboardOut)
async def get_dashboard(
    low_stock_limit: int = Query(5, ge=1, le=100),
    recent_limit: int = Query(5, ge=1, le=100),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Totals for today (reference time zone), alert count, lowest stock and latest movements."""
    summary = await dashboard.dashboard_summary(
        db, low_stock_limit=low_stock_limit, recent_limit=recent_limit
    )
    return summary.to_dict()


@router.get("/alerts", response_model=List[StockOut])
async def get_alerts(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    return [row.to_dict() for row in await alerts.low_stock_items(db, limit=limit)]
