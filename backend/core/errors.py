"""
Typed errors raised by the stock ledger.

    StockError (base)
    +-- ValidationError       rejected before a transaction starts
    +-- NotFoundError         referenced node does not exist
    +-- ConflictError         row changed under us, resubmit with fresh data
    |   +-- LedgerImmutableError
    +-- PersistenceError      storage unavailable, transient

Every error carries a machine-readable `code` and a `details` dict that the
HTTP layer returns as-is.
"""

from typing import Any, Optional
from uuid import UUID


class StockError(Exception):
    code = "stock_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.details}


class ValidationError(StockError):
    code = "validation_error"

    def __init__(self, errors: list[dict[str, str]], message: str = "Invalid stock mutation"):
        super().__init__(message, {"errors": errors})
        self.errors = errors

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}], message=message)


class NotFoundError(StockError):
    code = "not_found"

    def __init__(self, node_kind: str, node_id: Optional[UUID]):
        super().__init__(
            f"{node_kind.title()} {node_id} not found",
            {"node_kind": node_kind, "node_id": str(node_id) if node_id else None},
        )
        self.node_kind = node_kind
        self.node_id = node_id


class ConflictError(StockError):
    code = "conflict"


class LedgerImmutableError(ConflictError):
    code = "ledger_immutable"

    def __init__(self, movement_id: Optional[int], operation: str):
        super().__init__(
            f"Stock movements are append-only ({operation} refused)",
            {"movement_id": movement_id, "operation": operation},
        )


class PersistenceError(StockError):
    code = "persistence_error"
