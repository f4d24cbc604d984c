from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core import clock
from db.inventory.movement import Entry, Exit
from services import alerts, history


@dataclass(frozen=True)
class DashboardSummary:
    day: date
    total_items: int
    entries_today: int
    exits_today: int
    alerts: int
    low_stock: List[alerts.StockStatus] = field(default_factory=list)
    recent: List[history.Movement] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "total_items": self.total_items,
            "entries_today": self.entries_today,
            "exits_today": self.exits_today,
            "alerts": self.alerts,
            "low_stock": [row.to_dict() for row in self.low_stock],
            "recent": [m.to_dict() for m in self.recent],
        }


async def _quantity_on(db: AsyncSession, model, day: date) -> int:
    res = await db.execute(
        select(func.coalesce(func.sum(model.quantity), 0)).where(model.occurred_at == day)
    )
    return int(res.scalar_one())


async def dashboard_summary(
    db: AsyncSession,
    *,
    today: Optional[date] = None,
    low_stock_limit: int = 5,
    recent_limit: int = 5,
) -> DashboardSummary:
    day = today or clock.today()
    overview = await alerts.stock_overview(db)
    low = [row for row in overview if row.low_stock]
    return DashboardSummary(
        day=day,
        total_items=len(overview),
        entries_today=await _quantity_on(db, Entry, day),
        exits_today=await _quantity_on(db, Exit, day),
        alerts=len(low),
        low_stock=low[:low_stock_limit],
        recent=await history.recent_movements(db, recent_limit),
    )
