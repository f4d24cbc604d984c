"""
Typed errors raised by the stock ledger.

    StockLedgerError
    +-- ValidationError            bad input, nothing was written
    +-- NotFoundError              referenced item does not exist
    +-- InsufficientStockError     exit larger than current quantity
    +-- ConcurrencyConflictError   contention on the item, retry from a fresh read
    +-- PersistenceError           backing store failed, nothing was written

Every error carries a machine-readable ``code`` so the API layer can map it
without parsing messages.
"""

from typing import Optional
from uuid import UUID

from fastapi import HTTPException


class StockLedgerError(Exception):
    code = "stock_ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(StockLedgerError):
    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(StockLedgerError):
    code = "not_found"

    def __init__(self, item_id: UUID):
        super().__init__(f"Item {item_id} not found")
        self.item_id = item_id


class InsufficientStockError(StockLedgerError):
    code = "insufficient_stock"

    def __init__(self, item_id: UUID, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for this exit. Available={available} requested={requested}"
        )
        self.item_id = item_id
        self.available = available
        self.requested = requested


class ConcurrencyConflictError(StockLedgerError):
    code = "concurrency_conflict"

    def __init__(self, item_id: UUID, message: Optional[str] = None):
        super().__init__(message or f"Concurrent update on item {item_id}, retry the request")
        self.item_id = item_id


class PersistenceError(StockLedgerError):
    code = "persistence_error"


_HTTP_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    InsufficientStockError: 409,
    ConcurrencyConflictError: 409,
    PersistenceError: 503,
}


def to_http_exception(exc: StockLedgerError):
    """Map a ledger error onto the HTTPException the routers raise."""
    status_code = next(
        (code for cls, code in _HTTP_STATUS.items() if isinstance(exc, cls)),
        500,
    )
    return HTTPException(status_code=status_code, detail=exc.to_detail())
