"""
Stock aggregate store.

Reads and rewrites `quantity` on the three stock tables. Every function takes
the caller's AsyncSession and never commits; the reconciler owns the
transaction boundary.
"""

from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, NotFoundError, ValidationError
from db.inventory.codes import NodeKind
from db.product import Product, ProductColor, ProductSize


_MODELS = {
    NodeKind.PRODUCT: Product,
    NodeKind.COLOR: ProductColor,
    NodeKind.SIZE: ProductSize,
}


@dataclass(frozen=True)
class NodeRef:
    """Points at exactly one node of a product's stock tree."""

    kind: NodeKind
    id: UUID
    product_id: UUID

    @classmethod
    def from_ids(
        cls,
        product_id: Optional[UUID],
        color_variant_id: Optional[UUID] = None,
        size_variant_id: Optional[UUID] = None,
    ) -> "NodeRef":
        # size > color > product
        if product_id is None:
            raise ValidationError.for_field("product_id", "product_id is required")
        if size_variant_id is not None:
            return cls(NodeKind.SIZE, size_variant_id, product_id)
        if color_variant_id is not None:
            return cls(NodeKind.COLOR, color_variant_id, product_id)
        return cls(NodeKind.PRODUCT, product_id, product_id)

    @property
    def color_variant_id(self) -> Optional[UUID]:
        return self.id if self.kind == NodeKind.COLOR else None

    @property
    def size_variant_id(self) -> Optional[UUID]:
        return self.id if self.kind == NodeKind.SIZE else None


@dataclass(frozen=True)
class Leaf:
    """Node whose quantity is authoritative and set directly."""

    row: Union[Product, ProductColor, ProductSize]
    quantity: int


@dataclass(frozen=True)
class Aggregate:
    """Node whose quantity is derived from its children."""

    row: Union[Product, ProductColor]
    quantity: int
    child_kind: NodeKind
    child_count: int


StockNode = Union[Leaf, Aggregate]


def model_for(kind: NodeKind):
    return _MODELS[kind]


async def lock_product(db: AsyncSession, product_id: UUID) -> Product:
    """SELECT ... FOR UPDATE on the product row; serializes writers per product."""
    res = await db.execute(
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    product = res.scalar_one_or_none()
    if product is None:
        raise NotFoundError(NodeKind.PRODUCT.value, product_id)
    return product


async def _fetch_row(db: AsyncSession, ref: NodeRef):
    model = model_for(ref.kind)
    stmt = select(model).where(model.id == ref.id).execution_options(populate_existing=True)
    if ref.kind != NodeKind.PRODUCT:
        stmt = stmt.where(model.product_id == ref.product_id)
    row = (await db.execute(stmt)).scalar_one_or_none()
    if row is None:
        raise NotFoundError(ref.kind.value, ref.id)
    return row


async def _count(db: AsyncSession, stmt) -> int:
    return int((await db.execute(stmt)).scalar_one())


async def load_node(db: AsyncSession, ref: NodeRef) -> StockNode:
    """Load the referenced row and tag it as a Leaf or an Aggregate."""
    row = await _fetch_row(db, ref)
    quantity = int(row.quantity or 0)

    if ref.kind == NodeKind.SIZE:
        return Leaf(row=row, quantity=quantity)

    if ref.kind == NodeKind.COLOR:
        sizes = await _count(
            db,
            select(func.count(ProductSize.id)).where(
                ProductSize.product_id == ref.product_id,
                ProductSize.color == row.color,
            ),
        )
        if sizes:
            return Aggregate(row=row, quantity=quantity, child_kind=NodeKind.SIZE, child_count=sizes)
        return Leaf(row=row, quantity=quantity)

    sizes = await _count(db, select(func.count(ProductSize.id)).where(ProductSize.product_id == ref.id))
    if sizes:
        return Aggregate(row=row, quantity=quantity, child_kind=NodeKind.SIZE, child_count=sizes)
    colors = await _count(db, select(func.count(ProductColor.id)).where(ProductColor.product_id == ref.id))
    if colors:
        return Aggregate(row=row, quantity=quantity, child_kind=NodeKind.COLOR, child_count=colors)
    return Leaf(row=row, quantity=quantity)


async def get_quantity(db: AsyncSession, ref: NodeRef) -> int:
    model = model_for(ref.kind)
    stmt = select(model.quantity).where(model.id == ref.id)
    if ref.kind != NodeKind.PRODUCT:
        stmt = stmt.where(model.product_id == ref.product_id)
    value = (await db.execute(stmt)).scalar_one_or_none()
    if value is None:
        raise NotFoundError(ref.kind.value, ref.id)
    return int(value)


async def set_quantity(db: AsyncSession, ref: NodeRef, value: int, expected: int) -> int:
    """
    Compare-and-set the node quantity. Returns the previous value.

    Zero matched rows means someone changed the node after we read it.
    """
    model = model_for(ref.kind)
    res = await db.execute(
        update(model)
        .where(model.id == ref.id, model.quantity == expected)
        .values(quantity=value)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise ConflictError(
            f"{ref.kind.value.title()} {ref.id} changed during the update",
            {"node_kind": ref.kind.value, "node_id": str(ref.id), "expected_quantity": expected},
        )
    return expected


async def recompute_color(db: AsyncSession, product_id: UUID, color: str) -> Optional[int]:
    """
    Re-sum the sizes of one colour into its ColorVariant row.

    Returns the new colour quantity, or None when no colour row exists.
    """
    total = (
        select(func.coalesce(func.sum(ProductSize.quantity), 0))
        .where(ProductSize.product_id == product_id, ProductSize.color == color)
        .scalar_subquery()
    )
    res = await db.execute(
        update(ProductColor)
        .where(ProductColor.product_id == product_id, ProductColor.color == color)
        .values(quantity=total)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        return None
    value = await db.execute(
        select(ProductColor.quantity).where(
            ProductColor.product_id == product_id, ProductColor.color == color
        )
    )
    return int(value.scalar_one())


async def recompute_product(db: AsyncSession, product_id: UUID) -> int:
    """
    Re-sum the product from its leaves: every size, plus every colour that
    has no sizes of its own.
    """
    sizes_total = (
        select(func.coalesce(func.sum(ProductSize.quantity), 0))
        .where(ProductSize.product_id == product_id)
        .scalar_subquery()
    )
    has_sizes = (
        select(ProductSize.id)
        .where(ProductSize.product_id == ProductColor.product_id, ProductSize.color == ProductColor.color)
        .correlate(ProductColor)
        .exists()
    )
    leaf_colors_total = (
        select(func.coalesce(func.sum(ProductColor.quantity), 0))
        .where(ProductColor.product_id == product_id, ~has_sizes)
        .scalar_subquery()
    )
    await db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(quantity=sizes_total + leaf_colors_total)
        .execution_options(synchronize_session=False)
    )
    return await get_quantity(db, NodeRef(NodeKind.PRODUCT, product_id, product_id))
