"""
Seed a few demo products with colour/size stock for local development.

In production the catalog service owns these rows; this script only exists so
the stock API has something to work on.

Run locally:
  cd backend && python -m scripts.seed_stock_demo

Optional env vars:
- RESET_STOCK (default: false) wipe existing products first
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import delete, func, select

from core.logging import configure_logging, get_logger
from db.database import async_session_maker, create_db_and_tables
from db.product import Product, ProductColor, ProductSize

logger = get_logger(__name__)


@dataclass(frozen=True)
class SeedProduct:
    name: str
    reference: str
    price_minor: int
    quantity: int = 0
    # color -> {size: qty}; an empty dict means a colour without sizes
    colors: dict[str, dict[str, int]] = field(default_factory=dict)
    color_quantities: Optional[dict[str, int]] = None


SEED_PRODUCTS: list[SeedProduct] = [
    SeedProduct(
        name="Linen Shirt",
        reference="LS-001",
        price_minor=4900,
        colors={"Red": {"S": 3, "M": 2}, "Blue": {"M": 5}},
    ),
    SeedProduct(
        name="Canvas Tote",
        reference="CT-010",
        price_minor=1900,
        colors={"Natural": {}, "Black": {}},
        color_quantities={"Natural": 12, "Black": 4},
    ),
    SeedProduct(name="Gift Card", reference="GC-100", price_minor=2500, quantity=10),
    SeedProduct(name="Wool Scarf", reference="WS-020", price_minor=3500, quantity=0),
]


async def main() -> None:
    configure_logging()
    await create_db_and_tables()

    async with async_session_maker() as db:
        if os.getenv("RESET_STOCK", "false").lower() == "true":
            await db.execute(delete(Product))
            await db.commit()

        created = 0
        for sp in SEED_PRODUCTS:
            existing = await db.execute(select(Product).where(func.lower(Product.reference) == sp.reference.lower()))
            if existing.scalar_one_or_none():
                continue

            product = Product(name=sp.name, reference=sp.reference, price_minor=sp.price_minor, quantity=sp.quantity)
            db.add(product)
            await db.flush()

            total = 0
            for color, sizes in sp.colors.items():
                if sizes:
                    color_qty = sum(sizes.values())
                else:
                    color_qty = (sp.color_quantities or {}).get(color, 0)
                db.add(ProductColor(product_id=product.id, color=color, quantity=color_qty))
                for size, qty in sizes.items():
                    db.add(ProductSize(product_id=product.id, color=color, size=size, quantity=qty))
                total += color_qty
            if sp.colors:
                product.quantity = total
            created += 1

        await db.commit()

    logger.info("stock_demo_seeded", products_created=created)


if __name__ == "__main__":
    asyncio.run(main())
