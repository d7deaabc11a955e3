"""Test doubles and seed helpers.

The catalog owns product rows in production; tests create them directly.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import func, select

from db.database import Base
from db.immutability import register_immutability_listeners
from db.inventory.movement import StockMovement
from db.product import Product, ProductColor, ProductSize


def sqlite_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'stock.db'}"


async def create_schema(engine) -> None:
    register_immutability_listeners()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class RecordingNotifier:
    """Stands in for StorefrontNotifier and remembers every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[UUID, int]] = []

    async def product_stock_changed(self, product_id: UUID, quantity: int) -> bool:
        self.calls.append((product_id, quantity))
        return True


class GatedNotifier(RecordingNotifier):
    """Records only once `release` is set, like a storefront that is slow to answer."""

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def product_stock_changed(self, product_id: UUID, quantity: int) -> bool:
        await self.release.wait()
        return await super().product_stock_changed(product_id, quantity)


class ExplodingNotifier:
    async def product_stock_changed(self, product_id: UUID, quantity: int) -> bool:
        raise RuntimeError("storefront is down")


@dataclass(frozen=True)
class SeededRow:
    id: UUID
    quantity: int


@dataclass
class SeededProduct:
    """Plain ids and quantities; never an ORM instance that a rollback could expire."""

    id: UUID
    quantity: int
    colors: dict[str, SeededRow] = field(default_factory=dict)
    sizes: dict[tuple[str, str], SeededRow] = field(default_factory=dict)


async def _snapshot(db, product: Product, colors: list[ProductColor], sizes: list[ProductSize]) -> SeededProduct:
    await db.flush()
    seeded = SeededProduct(id=product.id, quantity=product.quantity)
    for c in colors:
        seeded.colors[c.color] = SeededRow(c.id, c.quantity)
    for s in sizes:
        seeded.sizes[(s.color, s.size)] = SeededRow(s.id, s.quantity)
    await db.commit()
    return seeded


async def seed_sized_product(
    db,
    sizes: dict[tuple[str, str], int] | None = None,
    color_rows: tuple[str, ...] | None = None,
    leaf_colors: dict[str, int] | None = None,
    name: str = "Linen Shirt",
    reference: str | None = "LS-001",
    price_minor: int = 4900,
) -> SeededProduct:
    """
    Product -> colours -> sizes, with every aggregate consistent.

    `leaf_colors` adds colour rows that carry no sizes (a mixed tree).
    """
    if sizes is None:
        sizes = {("Red", "S"): 3, ("Red", "M"): 2, ("Blue", "M"): 5}
    if color_rows is None:
        color_rows = tuple(dict.fromkeys(color for color, _ in sizes))
    leaf_colors = leaf_colors or {}

    product = Product(
        name=name,
        reference=reference,
        price_minor=price_minor,
        quantity=sum(sizes.values()) + sum(leaf_colors.values()),
    )
    db.add(product)
    await db.flush()

    colors = [
        ProductColor(product_id=product.id, color=color, quantity=sum(q for (c, _), q in sizes.items() if c == color))
        for color in color_rows
    ]
    colors += [ProductColor(product_id=product.id, color=color, quantity=qty) for color, qty in leaf_colors.items()]
    size_rows = [
        ProductSize(product_id=product.id, color=color, size=size, quantity=qty) for (color, size), qty in sizes.items()
    ]
    db.add_all(colors + size_rows)
    return await _snapshot(db, product, colors, size_rows)


async def seed_color_product(
    db,
    colors: dict[str, int] | None = None,
    name: str = "Canvas Tote",
    reference: str | None = "CT-010",
    price_minor: int = 1900,
) -> SeededProduct:
    """Product -> colours only (colours are leaves)."""
    if colors is None:
        colors = {"Natural": 12, "Black": 4}
    product = Product(name=name, reference=reference, price_minor=price_minor, quantity=sum(colors.values()))
    db.add(product)
    await db.flush()

    rows = [ProductColor(product_id=product.id, color=color, quantity=qty) for color, qty in colors.items()]
    db.add_all(rows)
    return await _snapshot(db, product, rows, [])


async def seed_simple_product(
    db,
    quantity: int = 10,
    name: str = "Gift Card",
    reference: str | None = "GC-100",
    price_minor: int = 2500,
) -> SeededProduct:
    product = Product(name=name, reference=reference, price_minor=price_minor, quantity=quantity)
    db.add(product)
    return await _snapshot(db, product, [], [])


async def quantity_of(db, model, row_id: UUID) -> int:
    res = await db.execute(select(model.quantity).where(model.id == row_id))
    return int(res.scalar_one())


async def movement_count(db, product_id: UUID | None = None) -> int:
    stmt = select(func.count(StockMovement.id))
    if product_id is not None:
        stmt = stmt.where(StockMovement.product_id == product_id)
    return int((await db.execute(stmt)).scalar_one())
