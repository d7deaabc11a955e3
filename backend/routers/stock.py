from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_actor
from core.errors import ConflictError, NotFoundError, PersistenceError, StockError, ValidationError
from core.storefront_client import StorefrontNotifier
from db.database import get_async_session
from db.inventory.codes import NodeKind
from schemas.stock import (
    StockAdjust,
    StockListOut,
    StockMovementOut,
    StocktakeConfirm,
    StocktakePreviewOut,
    StocktakePreviewRequest,
    StockUpdate,
    StockUpdateOut,
)
from services import reporting
from services.ledger import MAX_HISTORY, list_movements
from services.reconciliation import ReconcileResult, StockAdjustment, StockMutation, StockReconciler
from services.stock_store import NodeRef
from services.stocktake import StocktakeWorkflow

router = APIRouter()

_reconciler = StockReconciler(notifier=StorefrontNotifier())


def get_reconciler() -> StockReconciler:
    return _reconciler


def get_stocktake(reconciler: StockReconciler = Depends(get_reconciler)) -> StocktakeWorkflow:
    return StocktakeWorkflow(reconciler)


def _http_error(e: StockError) -> HTTPException:
    if isinstance(e, ValidationError):
        code = 422  # Unprocessable Content
    elif isinstance(e, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, ConflictError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, PersistenceError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=e.to_dict())


def _result_out(result: ReconcileResult) -> StockUpdateOut:
    return StockUpdateOut(
        node_kind=result.target.kind,
        node_id=result.target.id,
        previous_quantity=result.previous_quantity,
        new_quantity=result.new_quantity,
        quantity_delta=result.quantity_delta,
        product_quantity=result.product_quantity,
        color_quantity=result.color_quantity,
        movement=StockMovementOut.model_validate(result.movement),
    )


@router.get("", response_model=StockListOut)
async def list_stock(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=reporting.MAX_PAGE_SIZE),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_async_session),
):
    """
    Paged products with nested colour/size stock.

    `stats` covers every product matching `search`, not just this page.
    """
    stock_page = await reporting.list_stock(db, page=page, page_size=page_size, search=search)
    stats = await reporting.inventory_stats(db, search=search)
    return {
        "items": stock_page.items,
        "meta": {
            "total": stock_page.total,
            "page": stock_page.page,
            "page_size": stock_page.page_size,
            "total_pages": stock_page.total_pages,
        },
        "stats": {
            "total_value_minor": stats.total_value_minor,
            "total_value": stats.total_value,
            "low_stock": stats.low_stock,
            "out_of_stock": stats.out_of_stock,
        },
    }


@router.put("", response_model=StockUpdateOut)
async def update_stock(
    payload: StockUpdate,
    background_tasks: BackgroundTasks,
    actor: str = Depends(current_actor),
    reconciler: StockReconciler = Depends(get_reconciler),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        result = await reconciler.reconcile(
            db,
            StockMutation(
                product_id=payload.product_id,
                color_variant_id=payload.color_variant_id,
                size_variant_id=payload.size_variant_id,
                new_quantity=payload.new_quantity,
                reason_code=payload.reason_code,
                note=payload.note,
            ),
            actor=actor,
            background=background_tasks,
        )
    except StockError as e:
        raise _http_error(e)
    return _result_out(result)


@router.post("/adjust", response_model=StockUpdateOut)
async def adjust_stock(
    payload: StockAdjust,
    background_tasks: BackgroundTasks,
    actor: str = Depends(current_actor),
    reconciler: StockReconciler = Depends(get_reconciler),
    db: AsyncSession = Depends(get_async_session),
):
    """Relative change for operational movements (SALE negative, RETURN/RESTOCK positive)."""
    try:
        result = await reconciler.adjust(
            db,
            StockAdjustment(
                product_id=payload.product_id,
                color_variant_id=payload.color_variant_id,
                size_variant_id=payload.size_variant_id,
                delta=payload.delta,
                reason_code=payload.reason_code,
                note=payload.note,
            ),
            actor=actor,
            background=background_tasks,
        )
    except StockError as e:
        raise _http_error(e)
    return _result_out(result)


@router.post("/stocktake/preview", response_model=StocktakePreviewOut)
async def preview_stocktake(
    payload: StocktakePreviewRequest,
    workflow: StocktakeWorkflow = Depends(get_stocktake),
    db: AsyncSession = Depends(get_async_session),
):
    target = NodeRef.from_ids(payload.product_id, payload.color_variant_id, payload.size_variant_id)
    try:
        preview = await workflow.preview(
            db,
            target,
            counted_quantity=payload.counted_quantity,
            last_known_quantity=payload.last_known_quantity,
        )
    except StockError as e:
        raise _http_error(e)
    return StocktakePreviewOut(
        node_kind=target.kind,
        node_id=target.id,
        last_known_quantity=preview.last_known_quantity,
        counted_quantity=preview.counted_quantity,
        discrepancy=preview.discrepancy,
    )


@router.post("/stocktake", response_model=StockUpdateOut, status_code=status.HTTP_201_CREATED)
async def confirm_stocktake(
    payload: StocktakeConfirm,
    background_tasks: BackgroundTasks,
    actor: str = Depends(current_actor),
    workflow: StocktakeWorkflow = Depends(get_stocktake),
    db: AsyncSession = Depends(get_async_session),
):
    target = NodeRef.from_ids(payload.product_id, payload.color_variant_id, payload.size_variant_id)
    try:
        result = await workflow.confirm(
            db,
            target,
            counted_quantity=payload.counted_quantity,
            reason_code=payload.reason_code,
            note=payload.note,
            actor=actor,
            background=background_tasks,
        )
    except StockError as e:
        raise _http_error(e)
    return _result_out(result)


@router.get("/{product_id}/history", response_model=List[StockMovementOut])
async def stock_history(
    product_id: UUID,
    color_variant_id: Optional[UUID] = None,
    size_variant_id: Optional[UUID] = None,
    include_variants: bool = False,
    limit: int = Query(20, ge=1, le=MAX_HISTORY),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Most recent ledger entries, newest first.

    With only product_id, returns entries that targeted the product itself,
    or the whole product tree when include_variants=true.
    """
    target = NodeRef.from_ids(product_id, color_variant_id, size_variant_id)
    if target.kind != NodeKind.PRODUCT and include_variants:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="include_variants only applies to product history",
        )
    movements = await list_movements(db, target, limit=limit, include_variants=include_variants)
    return [StockMovementOut.model_validate(m) for m in movements]
