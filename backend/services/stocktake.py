"""
Stocktake (physical count) workflow.

preview -> operator sees the discrepancy, nothing is written
confirm -> reconciler sets the node to the counted quantity
history -> recent ledger entries for context, read-only
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ValidationError
from db.inventory.codes import ReasonCode
from db.inventory.movement import StockMovement
from services import ledger, stock_store
from services.reconciliation import ReconcileResult, StockMutation, StockReconciler
from services.stock_store import NodeRef


@dataclass(frozen=True)
class StocktakePreview:
    target: NodeRef
    last_known_quantity: int
    counted_quantity: int

    @property
    def discrepancy(self) -> int:
        return self.counted_quantity - self.last_known_quantity


def _check_count(counted_quantity) -> int:
    if isinstance(counted_quantity, bool) or not isinstance(counted_quantity, int):
        raise ValidationError.for_field("counted_quantity", "counted_quantity must be an integer")
    if counted_quantity < 0:
        raise ValidationError.for_field("counted_quantity", "counted_quantity must be >= 0")
    return counted_quantity


class StocktakeWorkflow:
    def __init__(self, reconciler: StockReconciler):
        self.reconciler = reconciler

    async def preview(
        self,
        db: AsyncSession,
        target: NodeRef,
        counted_quantity: int,
        last_known_quantity: Optional[int] = None,
    ) -> StocktakePreview:
        counted_quantity = _check_count(counted_quantity)
        if last_known_quantity is None:
            last_known_quantity = await stock_store.get_quantity(db, target)
        return StocktakePreview(
            target=target,
            last_known_quantity=int(last_known_quantity),
            counted_quantity=counted_quantity,
        )

    async def confirm(
        self,
        db: AsyncSession,
        target: NodeRef,
        counted_quantity: int,
        reason_code: ReasonCode = ReasonCode.STOCKTAKE,
        note: Optional[str] = None,
        actor: str = "admin",
        background: Optional[BackgroundTasks] = None,
    ) -> ReconcileResult:
        counted_quantity = _check_count(counted_quantity)
        if reason_code not in {r.value for r in ReasonCode.audit_codes()}:
            raise ValidationError.for_field(
                "reason_code",
                f"stocktake reason must be one of {', '.join(r.value for r in ReasonCode.audit_codes())}",
            )
        return await self.reconciler.reconcile(
            db,
            StockMutation(
                product_id=target.product_id,
                color_variant_id=target.color_variant_id,
                size_variant_id=target.size_variant_id,
                new_quantity=counted_quantity,
                reason_code=reason_code,
                note=note,
            ),
            actor=actor,
            background=background,
        )

    async def history(self, db: AsyncSession, target: NodeRef, limit: int = 20) -> list[StockMovement]:
        return await ledger.list_movements(db, target, limit=limit)
