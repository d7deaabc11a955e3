"""
Read-only stock listing and inventory statistics.

Runs outside mutation transactions; a slightly stale snapshot is fine here.
"""

import math
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.config import settings
from db.product import Product, ProductColor, ProductSize

MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class InventoryStats:
    total_value_minor: int
    low_stock: int
    out_of_stock: int

    @property
    def total_value(self) -> float:
        return float(self.total_value_minor) / 100.0


@dataclass(frozen=True)
class StockPage:
    items: list[dict]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


def _search_filter(search: Optional[str]):
    search = (search or "").strip()
    if not search:
        return None
    # plain substring: % and _ in the search text match themselves
    return or_(
        Product.name.icontains(search, autoescape=True),
        func.coalesce(Product.reference, "").icontains(search, autoescape=True),
    )


def _serialize_product(p: Product) -> dict:
    out = p.to_schema
    sizes_by_color: dict[str, list[dict]] = {}
    for s in sorted(p.sizes, key=lambda s: (s.color.lower(), s.size.lower())):
        sizes_by_color.setdefault(s.color, []).append(s.to_schema)

    colors = []
    for c in sorted(p.colors, key=lambda c: c.color.lower()):
        row = c.to_schema
        row["sizes"] = sizes_by_color.pop(c.color, [])
        colors.append(row)

    out["colors"] = colors
    # sizes whose colour has no ColorVariant row
    out["unassigned_sizes"] = [s for rows in sizes_by_color.values() for s in rows]
    return out


async def list_stock(
    db: AsyncSession,
    page: int = 1,
    page_size: Optional[int] = None,
    search: Optional[str] = None,
) -> StockPage:
    page = max(1, int(page))
    page_size = int(page_size or settings.stock_page_size)
    page_size = max(1, min(page_size, MAX_PAGE_SIZE))

    where = _search_filter(search)

    count_stmt = select(func.count(Product.id))
    stmt = (
        select(Product)
        .options(selectinload(Product.colors), selectinload(Product.sizes))
        .execution_options(populate_existing=True)
    )
    if where is not None:
        count_stmt = count_stmt.where(where)
        stmt = stmt.where(where)

    total = int((await db.execute(count_stmt)).scalar_one())
    res = await db.execute(
        stmt.order_by(func.lower(Product.name).asc(), Product.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = [_serialize_product(p) for p in res.scalars().all()]
    return StockPage(items=items, total=total, page=page, page_size=page_size)


async def inventory_stats(db: AsyncSession, search: Optional[str] = None) -> InventoryStats:
    """Stats over the whole filtered set, not just one page."""
    threshold = settings.low_stock_threshold
    stmt = select(
        func.coalesce(func.sum(Product.quantity * Product.price_minor), 0),
        func.coalesce(func.sum(case((and_(Product.quantity > 0, Product.quantity < threshold), 1), else_=0)), 0),
        func.coalesce(func.sum(case((Product.quantity == 0, 1), else_=0)), 0),
    )
    where = _search_filter(search)
    if where is not None:
        stmt = stmt.where(where)

    total_value_minor, low_stock, out_of_stock = (await db.execute(stmt)).one()
    return InventoryStats(
        total_value_minor=int(total_value_minor or 0),
        low_stock=int(low_stock or 0),
        out_of_stock=int(out_of_stock or 0),
    )


@dataclass(frozen=True)
class StockDrift:
    node_kind: str
    node_id: UUID
    product_id: UUID
    recorded: int
    expected: int


async def find_drift(db: AsyncSession) -> list[StockDrift]:
    """
    Aggregates whose stored quantity no longer matches the sum of their leaves.

    Products with sizes must equal the sum of sizes plus leaf colours; colour
    rows with sizes must equal the sum of their sizes.
    """
    drift: list[StockDrift] = []

    color_sums = (
        select(
            ProductColor.id,
            ProductColor.product_id,
            ProductColor.quantity,
            func.sum(ProductSize.quantity).label("expected"),
        )
        .join(
            ProductSize,
            and_(ProductSize.product_id == ProductColor.product_id, ProductSize.color == ProductColor.color),
        )
        .group_by(ProductColor.id, ProductColor.product_id, ProductColor.quantity)
    )
    for color_id, product_id, recorded, expected in (await db.execute(color_sums)).all():
        if int(recorded) != int(expected):
            drift.append(StockDrift("COLOR", color_id, product_id, int(recorded), int(expected)))

    res = await db.execute(
        select(Product).options(selectinload(Product.colors), selectinload(Product.sizes))
        .execution_options(populate_existing=True)
    )
    for p in res.scalars().all():
        if not p.sizes and not p.colors:
            continue
        sized_colors = {s.color for s in p.sizes}
        expected = sum(int(s.quantity) for s in p.sizes) + sum(
            int(c.quantity) for c in p.colors if c.color not in sized_colors
        )
        if int(p.quantity) != expected:
            drift.append(StockDrift("PRODUCT", p.id, p.id, int(p.quantity), expected))
    return drift
