"""
Stock ledger.

Models:
- StockMovement (append-only, one row per direct quantity change)

Codes:
- NodeKind (PRODUCT / COLOR / SIZE)
- ReasonCode (closed enumeration of why a quantity changed)
"""

from .codes import NodeKind, ReasonCode
from .movement import StockMovement

__all__ = ["NodeKind", "ReasonCode", "StockMovement"]
