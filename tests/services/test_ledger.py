"""
Movement ledger tests: ordering, scoping and append-only enforcement.
"""

import pytest
from sqlalchemy import delete, update

from core.errors import LedgerImmutableError
from db.inventory.codes import ReasonCode
from db.inventory.movement import StockMovement
from fakes import movement_count, seed_simple_product, seed_sized_product
from services import ledger
from services.ledger import MovementEntry
from services.reconciliation import StockMutation
from services.stock_store import NodeRef


async def _entry(db, ref: NodeRef, previous: int, new: int) -> StockMovement:
    movement = await ledger.append(
        db,
        MovementEntry(
            target=ref,
            reason_code=ReasonCode.ADJUSTMENT,
            previous_quantity=previous,
            new_quantity=new,
            note=None,
            created_by="admin",
        ),
    )
    await db.commit()
    return movement


class TestAppend:
    async def test_append_fills_generated_columns(self, db):
        tree = await seed_simple_product(db)
        ref = NodeRef.from_ids(tree.id)

        movement = await _entry(db, ref, 10, 7)

        assert movement.id is not None
        assert movement.created_at is not None
        assert movement.quantity_delta == -3
        assert movement.node_kind == "PRODUCT"
        assert movement.color_variant_id is None
        assert movement.size_variant_id is None

    def test_entry_delta_is_derived(self):
        entry = MovementEntry(
            target=None,
            reason_code=ReasonCode.DAMAGE,
            previous_quantity=10,
            new_quantity=0,
            note="Water damage",
            created_by="admin",
        )
        assert entry.quantity_delta == -10


class TestListMovements:
    async def test_newest_first_and_limited(self, db):
        tree = await seed_simple_product(db)
        ref = NodeRef.from_ids(tree.id)
        for previous, new in ((10, 9), (9, 8), (8, 7)):
            await _entry(db, ref, previous, new)

        rows = await ledger.list_movements(db, ref, limit=2)

        assert [r.new_quantity for r in rows] == [7, 8]

    async def test_limit_is_clamped(self, db):
        tree = await seed_simple_product(db)
        ref = NodeRef.from_ids(tree.id)
        await _entry(db, ref, 10, 9)

        assert len(await ledger.list_movements(db, ref, limit=0)) == 1
        assert len(await ledger.list_movements(db, ref, limit=10_000)) == 1

    async def test_scoped_to_node(self, db, reconciler):
        tree = await seed_sized_product(db)
        s1 = tree.sizes[("Red", "S")]
        s3 = tree.sizes[("Blue", "M")]
        await reconciler.reconcile(db, StockMutation(product_id=tree.id, size_variant_id=s1.id, new_quantity=1))
        await reconciler.reconcile(db, StockMutation(product_id=tree.id, size_variant_id=s3.id, new_quantity=2))

        s1_rows = await ledger.list_movements(db, NodeRef.from_ids(tree.id, size_variant_id=s1.id))
        product_rows = await ledger.list_movements(db, NodeRef.from_ids(tree.id))
        all_rows = await ledger.list_movements(db, NodeRef.from_ids(tree.id), include_variants=True)

        assert [r.size_variant_id for r in s1_rows] == [s1.id]
        assert product_rows == []
        assert [r.size_variant_id for r in all_rows] == [s3.id, s1.id]

    async def test_other_products_are_excluded(self, db, reconciler):
        a = await seed_simple_product(db, name="Gift Card", reference="GC-100")
        b = await seed_simple_product(db, name="Wool Scarf", reference="WS-020")
        await reconciler.reconcile(db, StockMutation(product_id=a.id, new_quantity=1))
        await reconciler.reconcile(db, StockMutation(product_id=b.id, new_quantity=2))

        rows = await ledger.list_movements(db, NodeRef.from_ids(a.id), include_variants=True)

        assert [r.product_id for r in rows] == [a.id]


class TestImmutability:
    async def test_flush_update_is_refused(self, db):
        tree = await seed_simple_product(db)
        movement = await _entry(db, NodeRef.from_ids(tree.id), 10, 9)

        movement.note = "rewritten"
        with pytest.raises(LedgerImmutableError):
            await db.flush()
        await db.rollback()

    async def test_flush_delete_is_refused(self, db):
        tree = await seed_simple_product(db)
        movement = await _entry(db, NodeRef.from_ids(tree.id), 10, 9)

        await db.delete(movement)
        with pytest.raises(LedgerImmutableError):
            await db.flush()
        await db.rollback()

        assert await movement_count(db) == 1

    async def test_bulk_update_is_refused(self, db):
        tree = await seed_simple_product(db)
        await _entry(db, NodeRef.from_ids(tree.id), 10, 9)

        with pytest.raises(LedgerImmutableError):
            await db.execute(update(StockMovement).values(note="rewritten"))

    async def test_bulk_delete_is_refused(self, db):
        tree = await seed_simple_product(db)
        await _entry(db, NodeRef.from_ids(tree.id), 10, 9)

        with pytest.raises(LedgerImmutableError):
            await db.execute(delete(StockMovement))

        assert await movement_count(db) == 1
