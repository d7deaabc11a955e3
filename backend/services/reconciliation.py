"""
Reconciliation engine.

One call changes exactly one stock node, appends exactly one ledger entry for
that node, and re-sums the derived ancestors (colour, product) from the
database at write time. All of it commits together or not at all.

    SIZE     -> write size, ledger, re-sum colour row (if any), re-sum product
    COLOR    -> write colour (leaf only), ledger, re-sum product
    PRODUCT  -> write product (leaf only), ledger

Aggregates are never written directly: a colour with sizes or a product with
variants is rejected, so children can never be left stale.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from core.errors import ConflictError, PersistenceError, StockError, ValidationError
from core.logging import get_logger
from core.storefront_client import StorefrontNotifier
from db.inventory.codes import NodeKind, ReasonCode
from db.inventory.movement import StockMovement
from services import ledger, stock_store
from services.ledger import MovementEntry
from services.stock_store import Aggregate, NodeRef

logger = get_logger(__name__)

MAX_NOTE_LENGTH = 500

_TARGET_FIELDS = {
    NodeKind.PRODUCT: "product_id",
    NodeKind.COLOR: "color_variant_id",
    NodeKind.SIZE: "size_variant_id",
}


def _clean_note(note: Optional[str], errors: list[dict]) -> Optional[str]:
    if note is None:
        return None
    if not isinstance(note, str):
        errors.append({"field": "note", "message": "note must be text"})
        return None
    note = note.strip()
    if len(note) > MAX_NOTE_LENGTH:
        errors.append({"field": "note", "message": f"note must be at most {MAX_NOTE_LENGTH} characters"})
    return note or None


def _check_reason(reason_code, errors: list[dict]) -> Optional[ReasonCode]:
    try:
        return ReasonCode(reason_code)
    except ValueError:
        errors.append({
            "field": "reason_code",
            "message": f"reason_code must be one of {', '.join(r.value for r in ReasonCode)}",
        })
        return None


def _check_target(product_id, color_variant_id, size_variant_id, errors: list[dict]) -> Optional[NodeRef]:
    if product_id is None:
        errors.append({"field": "product_id", "message": "product_id is required"})
        return None
    if color_variant_id is not None and size_variant_id is not None:
        errors.append({
            "field": "size_variant_id",
            "message": "give either color_variant_id or size_variant_id, not both",
        })
        return None
    return NodeRef.from_ids(product_id, color_variant_id, size_variant_id)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class StockMutation:
    """Set one node to an absolute quantity."""

    product_id: UUID
    new_quantity: int
    reason_code: ReasonCode = ReasonCode.ADJUSTMENT
    color_variant_id: Optional[UUID] = None
    size_variant_id: Optional[UUID] = None
    note: Optional[str] = None

    def validate(self) -> tuple[NodeRef, ReasonCode, Optional[str]]:
        errors: list[dict] = []
        if not _is_int(self.new_quantity):
            errors.append({"field": "new_quantity", "message": "new_quantity must be an integer"})
        elif self.new_quantity < 0:
            errors.append({"field": "new_quantity", "message": "new_quantity must be >= 0"})
        reason = _check_reason(self.reason_code, errors)
        note = _clean_note(self.note, errors)
        target = _check_target(self.product_id, self.color_variant_id, self.size_variant_id, errors)
        if errors:
            raise ValidationError(errors)
        return target, reason, note


@dataclass(frozen=True)
class StockAdjustment:
    """Move one leaf by a signed delta (sales, returns, restocks)."""

    product_id: UUID
    delta: int
    reason_code: ReasonCode
    color_variant_id: Optional[UUID] = None
    size_variant_id: Optional[UUID] = None
    note: Optional[str] = None

    def validate(self) -> tuple[NodeRef, ReasonCode, Optional[str]]:
        errors: list[dict] = []
        if not _is_int(self.delta):
            errors.append({"field": "delta", "message": "delta must be an integer"})
        elif self.delta == 0:
            errors.append({"field": "delta", "message": "delta must not be 0"})
        reason = _check_reason(self.reason_code, errors)
        if reason == ReasonCode.SALE and _is_int(self.delta) and self.delta > 0:
            errors.append({"field": "delta", "message": "SALE movements must have a negative delta"})
        if reason in (ReasonCode.RETURN, ReasonCode.RESTOCK) and _is_int(self.delta) and self.delta < 0:
            errors.append({"field": "delta", "message": f"{reason.value} movements must have a positive delta"})
        note = _clean_note(self.note, errors)
        target = _check_target(self.product_id, self.color_variant_id, self.size_variant_id, errors)
        if errors:
            raise ValidationError(errors)
        return target, reason, note


@dataclass(frozen=True)
class ReconcileResult:
    target: NodeRef
    previous_quantity: int
    new_quantity: int
    previous_product_quantity: int
    product_quantity: int
    color_quantity: Optional[int]
    movement: StockMovement = field(compare=False)

    @property
    def quantity_delta(self) -> int:
        return self.new_quantity - self.previous_quantity

    @property
    def product_changed(self) -> bool:
        return self.product_quantity != self.previous_product_quantity


class StockReconciler:
    """
    Storefront notifications never hold up the caller: they run as a FastAPI
    background task when one is passed in, otherwise as a detached asyncio
    task. `drain_notifications()` waits for the detached ones.
    """

    def __init__(self, notifier: Optional[StorefrontNotifier] = None):
        self.notifier = notifier
        self._pending: set[asyncio.Task] = set()

    async def reconcile(
        self,
        db: AsyncSession,
        mutation: StockMutation,
        actor: str = "admin",
        background: Optional[BackgroundTasks] = None,
    ) -> ReconcileResult:
        """Set the target node to `mutation.new_quantity` and re-sum its ancestors."""
        target, reason, note = mutation.validate()
        result = await self._commit(db, target, lambda _current: mutation.new_quantity, reason, note, actor)
        self._schedule_notify(result, background)
        return result

    async def adjust(
        self,
        db: AsyncSession,
        adjustment: StockAdjustment,
        actor: str = "admin",
        background: Optional[BackgroundTasks] = None,
    ) -> ReconcileResult:
        """Apply a signed delta to the current quantity read under the product lock."""
        target, reason, note = adjustment.validate()

        def resolve(current: int) -> int:
            new_quantity = current + adjustment.delta
            if new_quantity < 0:
                raise ValidationError(
                    [{"field": "delta", "message": f"insufficient stock: available={current} requested={-adjustment.delta}"}],
                    message="insufficient_stock",
                )
            return new_quantity

        result = await self._commit(db, target, resolve, reason, note, actor)
        self._schedule_notify(result, background)
        return result

    async def drain_notifications(self) -> None:
        """Wait for detached storefront notifications (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _commit(
        self,
        db: AsyncSession,
        target: NodeRef,
        resolve: Callable[[int], int],
        reason: ReasonCode,
        note: Optional[str],
        actor: str,
    ) -> ReconcileResult:
        # NOTE: the session may already have autobegun, so we must NOT call `db.begin()` here.
        try:
            result = await self._apply(db, target, resolve, reason, note, actor)
            await db.commit()
        except StockError as e:
            await db.rollback()
            logger.warning(
                "stock_mutation_rejected",
                node_kind=target.kind.value,
                node_id=str(target.id),
                product_id=str(target.product_id),
                code=e.code,
                error=e.message,
            )
            raise
        except (IntegrityError, StaleDataError) as e:
            await db.rollback()
            logger.warning("stock_mutation_conflict", node_id=str(target.id), error=repr(e))
            raise ConflictError(
                "Stock row changed during the update, resubmit with fresh data",
                {"node_kind": target.kind.value, "node_id": str(target.id)},
            ) from e
        except DBAPIError as e:
            await db.rollback()
            logger.error("stock_mutation_storage_failed", node_id=str(target.id), error=repr(e))
            raise PersistenceError(
                "Stock storage unavailable, retry later",
                {"node_kind": target.kind.value, "node_id": str(target.id)},
            ) from e

        logger.info(
            "stock_reconciled",
            product_id=str(target.product_id),
            node_kind=target.kind.value,
            node_id=str(target.id),
            previous_quantity=result.previous_quantity,
            new_quantity=result.new_quantity,
            delta=result.quantity_delta,
            product_quantity=result.product_quantity,
            reason_code=reason.value,
            movement_id=result.movement.id,
            actor=actor,
        )
        return result

    async def _apply(
        self,
        db: AsyncSession,
        target: NodeRef,
        resolve: Callable[[int], int],
        reason: ReasonCode,
        note: Optional[str],
        actor: str,
    ) -> ReconcileResult:
        product = await stock_store.lock_product(db, target.product_id)
        previous_product_quantity = int(product.quantity or 0)

        node = await stock_store.load_node(db, target)
        if isinstance(node, Aggregate):
            raise ValidationError.for_field(
                _TARGET_FIELDS[target.kind],
                f"{target.kind.value.title()} {target.id} is derived from its "
                f"{node.child_kind.value.lower()} variants; adjust a {node.child_kind.value.lower()} instead",
            )

        previous = node.quantity
        color = getattr(node.row, "color", None)
        new_quantity = resolve(previous)
        await stock_store.set_quantity(db, target, new_quantity, expected=previous)

        movement = await ledger.append(
            db,
            MovementEntry(
                target=target,
                reason_code=reason,
                previous_quantity=previous,
                new_quantity=new_quantity,
                note=note,
                created_by=actor,
            ),
        )

        color_quantity = None
        if target.kind == NodeKind.SIZE:
            color_quantity = await stock_store.recompute_color(db, target.product_id, color)
            product_quantity = await stock_store.recompute_product(db, target.product_id)
        elif target.kind == NodeKind.COLOR:
            color_quantity = new_quantity
            product_quantity = await stock_store.recompute_product(db, target.product_id)
        else:
            product_quantity = new_quantity

        return ReconcileResult(
            target=target,
            previous_quantity=previous,
            new_quantity=new_quantity,
            previous_product_quantity=previous_product_quantity,
            product_quantity=product_quantity,
            color_quantity=color_quantity,
            movement=movement,
        )

    async def _notify(self, product_id: UUID, quantity: int) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.product_stock_changed(product_id, quantity)
        except Exception as e:
            # already committed; a cache problem must not surface as a failed mutation
            logger.warning("storefront_notify_failed", product_id=str(product_id), error=repr(e))

    def _schedule_notify(self, result: ReconcileResult, background: Optional[BackgroundTasks]) -> None:
        if self.notifier is None or not result.product_changed:
            return
        product_id, quantity = result.target.product_id, result.product_quantity
        if background is not None:
            # runs after the response has been sent
            background.add_task(self._notify, product_id, quantity)
            return
        task = asyncio.create_task(self._notify(product_id, quantity))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
