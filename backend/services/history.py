"""
Movement history: entries and exits merged into one list, newest first.

The merge, filter and totals are plain functions over in-memory movements so
they can be tested without a database; ``list_movements`` only loads the rows
and hands them over.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Literal, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ValidationError
from db.inventory.movement import Entry, Exit
from db.users import User
from services import catalog

MovementKind = Literal["entry", "exit"]
KIND_FILTERS = ("all", "entry", "exit")

UNKNOWN_ITEM = "unknown"
UNKNOWN_ACTOR = "N/A"


@dataclass(frozen=True)
class Movement:
    id: UUID
    kind: MovementKind
    item_id: UUID
    item_name: str
    quantity: int
    occurred_at: date
    recorded_at: datetime
    actor_id: Optional[UUID]
    actor_name: str = UNKNOWN_ACTOR
    note: Optional[str] = None
    destination: Optional[str] = None
    beneficiary: Optional[str] = None
    campaign: Optional[str] = None

    @property
    def details(self) -> Optional[str]:
        if self.kind == "entry":
            return self.note
        parts = [
            f"Destination: {self.destination}" if self.destination else None,
            f"Beneficiary: {self.beneficiary}" if self.beneficiary else None,
            f"Campaign: {self.campaign}" if self.campaign else None,
        ]
        return ", ".join(p for p in parts if p) or None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "occurred_at": self.occurred_at,
            "recorded_at": self.recorded_at,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "note": self.note,
            "destination": self.destination,
            "beneficiary": self.beneficiary,
            "campaign": self.campaign,
            "details": self.details,
        }


@dataclass(frozen=True)
class MovementFilter:
    kind: str = "all"
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    item: Optional[str] = None

    def __post_init__(self):
        if self.kind not in KIND_FILTERS:
            raise ValidationError(f"kind must be one of {', '.join(KIND_FILTERS)}", field="kind")


@dataclass(frozen=True)
class MovementTotals:
    entry_quantity: int = 0
    exit_quantity: int = 0
    count: int = 0


@dataclass(frozen=True)
class MovementHistory:
    movements: List[Movement] = field(default_factory=list)
    totals: MovementTotals = field(default_factory=MovementTotals)


def entry_movement(entry: Entry, item_names: Dict[UUID, str], actor_names: Dict[UUID, str]) -> Movement:
    return Movement(
        id=entry.id,
        kind="entry",
        item_id=entry.item_id,
        item_name=item_names.get(entry.item_id, UNKNOWN_ITEM),
        quantity=entry.quantity,
        occurred_at=entry.occurred_at,
        recorded_at=entry.recorded_at,
        actor_id=entry.actor_id,
        actor_name=actor_names.get(entry.actor_id, UNKNOWN_ACTOR),
        note=entry.note,
    )


def exit_movement(exit_: Exit, item_names: Dict[UUID, str], actor_names: Dict[UUID, str]) -> Movement:
    return Movement(
        id=exit_.id,
        kind="exit",
        item_id=exit_.item_id,
        item_name=item_names.get(exit_.item_id, UNKNOWN_ITEM),
        quantity=exit_.quantity,
        occurred_at=exit_.occurred_at,
        recorded_at=exit_.recorded_at,
        actor_id=exit_.actor_id,
        actor_name=actor_names.get(exit_.actor_id, UNKNOWN_ACTOR),
        note=exit_.note,
        destination=exit_.destination,
        beneficiary=exit_.beneficiary,
        campaign=exit_.campaign,
    )


def sort_movements(movements: Iterable[Movement]) -> List[Movement]:
    # Newest date first; same date -> most recently recorded first; id settles exact ties.
    return sorted(movements, key=lambda m: (m.occurred_at, m.recorded_at, m.id), reverse=True)


def merge_movements(
    entries: Sequence[Entry],
    exits: Sequence[Exit],
    item_names: Dict[UUID, str],
    actor_names: Optional[Dict[UUID, str]] = None,
) -> List[Movement]:
    actor_names = actor_names or {}
    merged = [entry_movement(e, item_names, actor_names) for e in entries]
    merged.extend(exit_movement(s, item_names, actor_names) for s in exits)
    return sort_movements(merged)


def matches(movement: Movement, flt: MovementFilter) -> bool:
    if flt.kind != "all" and movement.kind != flt.kind:
        return False
    if flt.date_from and movement.occurred_at < flt.date_from:
        return False
    if flt.date_to and movement.occurred_at > flt.date_to:
        return False
    term = (flt.item or "").strip().lower()
    if term and term not in movement.item_name.lower():
        return False
    return True


def apply_filter(movements: Iterable[Movement], flt: MovementFilter) -> List[Movement]:
    return [m for m in movements if matches(m, flt)]


def compute_totals(movements: Iterable[Movement]) -> MovementTotals:
    entry_qty = 0
    exit_qty = 0
    count = 0
    for m in movements:
        count += 1
        if m.kind == "entry":
            entry_qty += m.quantity
        else:
            exit_qty += m.quantity
    return MovementTotals(entry_quantity=entry_qty, exit_quantity=exit_qty, count=count)


async def actor_names(db: AsyncSession, actor_ids: Iterable[UUID]) -> Dict[UUID, str]:
    ids = {a for a in actor_ids if a is not None}
    if not ids:
        return {}
    res = await db.execute(select(User.id, User.name, User.email).where(User.id.in_(ids)))
    return {row.id: (row.name or row.email) for row in res.all()}


def _newest_first(model, limit: Optional[int]):
    stmt = select(model).order_by(model.occurred_at.desc(), model.recorded_at.desc(), model.id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt


async def load_movements(db: AsyncSession, kind: str = "all", limit: Optional[int] = None) -> List[Movement]:
    """Merged movements, newest first. With ``limit`` each kind is capped in SQL before merging."""
    entries: List[Entry] = []
    exits: List[Exit] = []
    if kind in ("all", "entry"):
        entries = list((await db.execute(_newest_first(Entry, limit))).scalars().all())
    if kind in ("all", "exit"):
        exits = list((await db.execute(_newest_first(Exit, limit))).scalars().all())

    names = await catalog.item_names(db, [m.item_id for m in (*entries, *exits)])
    actors = await actor_names(db, [m.actor_id for m in (*entries, *exits)])
    merged = merge_movements(entries, exits, names, actors)
    return merged[:limit] if limit is not None else merged


async def list_movements(db: AsyncSession, flt: Optional[MovementFilter] = None) -> MovementHistory:
    flt = flt or MovementFilter()
    movements = apply_filter(await load_movements(db, flt.kind), flt)
    return MovementHistory(movements=movements, totals=compute_totals(movements))


async def recent_movements(db: AsyncSession, limit: int = 5) -> List[Movement]:
    return await load_movements(db, limit=limit)
