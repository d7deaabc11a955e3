from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from db.inventory.codes import NodeKind, ReasonCode


def _strip_nullable(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class _TargetIds(BaseModel):
    product_id: UUID
    color_variant_id: Optional[UUID] = None
    size_variant_id: Optional[UUID] = None

    @model_validator(mode="after")
    def _single_variant(self):
        # one node per request: a colour and a size together is contradictory
        if self.color_variant_id and self.size_variant_id:
            raise ValueError("give either color_variant_id or size_variant_id, not both")
        return self


class StockUpdate(_TargetIds):
    new_quantity: int
    reason_code: ReasonCode = ReasonCode.ADJUSTMENT
    note: Optional[str] = None

    @field_validator("new_quantity")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("new_quantity must be >= 0")
        return v

    @field_validator("note")
    @classmethod
    def _strip_note(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class StockAdjust(_TargetIds):
    delta: int
    reason_code: ReasonCode
    note: Optional[str] = None

    @field_validator("delta")
    @classmethod
    def _non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("delta must not be 0")
        return v

    @field_validator("note")
    @classmethod
    def _strip_note(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class StocktakePreviewRequest(_TargetIds):
    counted_quantity: int
    last_known_quantity: Optional[int] = None

    @field_validator("counted_quantity")
    @classmethod
    def _counted_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("counted_quantity must be >= 0")
        return v


class StocktakeConfirm(_TargetIds):
    counted_quantity: int
    reason_code: ReasonCode = ReasonCode.STOCKTAKE
    note: Optional[str] = None

    @field_validator("counted_quantity")
    @classmethod
    def _counted_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("counted_quantity must be >= 0")
        return v

    @field_validator("note")
    @classmethod
    def _strip_note(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class StockMovementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: UUID
    color_variant_id: Optional[UUID] = None
    size_variant_id: Optional[UUID] = None
    node_kind: NodeKind
    reason_code: ReasonCode
    previous_quantity: int
    new_quantity: int
    quantity_delta: int
    note: Optional[str] = None
    created_by: str
    created_at: datetime


class StockUpdateOut(BaseModel):
    node_kind: NodeKind
    node_id: UUID
    previous_quantity: int
    new_quantity: int
    quantity_delta: int
    product_quantity: int
    color_quantity: Optional[int] = None
    movement: StockMovementOut


class StocktakePreviewOut(BaseModel):
    node_kind: NodeKind
    node_id: UUID
    last_known_quantity: int
    counted_quantity: int
    discrepancy: int


class SizeVariantOut(BaseModel):
    id: UUID
    color: str
    size: str
    reference: Optional[str] = None
    quantity: int


class ColorVariantOut(BaseModel):
    id: UUID
    color: str
    reference: Optional[str] = None
    quantity: int
    sizes: List[SizeVariantOut] = []


class StockItemOut(BaseModel):
    id: UUID
    name: str
    reference: Optional[str] = None
    price_minor: int
    price: float
    quantity: int
    colors: List[ColorVariantOut] = []
    unassigned_sizes: List[SizeVariantOut] = []


class InventoryStatsOut(BaseModel):
    total_value_minor: int
    total_value: float
    low_stock: int
    out_of_stock: int


class PageMeta(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int


class StockListOut(BaseModel):
    items: List[StockItemOut]
    meta: PageMeta
    stats: InventoryStatsOut
