"""
Movement ledger: write-once, read-many.

No update or delete is exposed; db.immutability also refuses them at the
ORM level.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.inventory.codes import NodeKind, ReasonCode
from db.inventory.movement import StockMovement
from services.stock_store import NodeRef


MAX_HISTORY = 100


@dataclass(frozen=True)
class MovementEntry:
    target: NodeRef
    reason_code: ReasonCode
    previous_quantity: int
    new_quantity: int
    note: Optional[str]
    created_by: str

    @property
    def quantity_delta(self) -> int:
        return self.new_quantity - self.previous_quantity


async def append(db: AsyncSession, entry: MovementEntry) -> StockMovement:
    """Insert one ledger row and return it with its generated id and timestamp."""
    movement = StockMovement(
        product_id=entry.target.product_id,
        color_variant_id=entry.target.color_variant_id,
        size_variant_id=entry.target.size_variant_id,
        node_kind=entry.target.kind.value,
        reason_code=entry.reason_code.value,
        previous_quantity=entry.previous_quantity,
        new_quantity=entry.new_quantity,
        quantity_delta=entry.quantity_delta,
        note=entry.note,
        created_by=entry.created_by,
    )
    db.add(movement)
    await db.flush()
    await db.refresh(movement)
    return movement


async def list_movements(
    db: AsyncSession,
    ref: NodeRef,
    limit: int = 20,
    include_variants: bool = False,
) -> list[StockMovement]:
    """
    Newest first.

    A product ref with include_variants=True returns every entry under the
    product; otherwise only entries that targeted exactly this node.
    """
    limit = max(1, min(int(limit), MAX_HISTORY))
    stmt = select(StockMovement).where(StockMovement.product_id == ref.product_id)

    if ref.kind == NodeKind.SIZE:
        stmt = stmt.where(StockMovement.size_variant_id == ref.id)
    elif ref.kind == NodeKind.COLOR:
        stmt = stmt.where(StockMovement.color_variant_id == ref.id)
    elif not include_variants:
        stmt = stmt.where(StockMovement.node_kind == NodeKind.PRODUCT.value)

    res = await db.execute(stmt.order_by(StockMovement.id.desc()).limit(limit))
    return list(res.scalars().all())
