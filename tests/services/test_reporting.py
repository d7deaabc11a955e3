from sqlalchemy import update

from db.product import Product, ProductColor
from fakes import seed_color_product, seed_simple_product, seed_sized_product
from services.reporting import find_drift, inventory_stats, list_stock


async def _catalog(db):
    shirt = await seed_sized_product(db)                                  # 10 x 49.00
    tote = await seed_color_product(db)                                   # 16 x 19.00
    card = await seed_simple_product(db, quantity=3)                      # 3 x 25.00, low stock
    scarf = await seed_simple_product(db, quantity=0, name="Wool Scarf", reference="WS-020", price_minor=3500)
    return shirt, tote, card, scarf


class TestListStock:
    async def test_nested_tree_and_name_order(self, db):
        await _catalog(db)

        page = await list_stock(db, page=1, page_size=10)

        assert page.total == 4
        assert page.total_pages == 1
        assert [item["name"] for item in page.items] == ["Canvas Tote", "Gift Card", "Linen Shirt", "Wool Scarf"]

        shirt = page.items[2]
        assert shirt["quantity"] == 10
        assert shirt["price"] == 49.0
        assert [c["color"] for c in shirt["colors"]] == ["Blue", "Red"]
        red = shirt["colors"][1]
        assert red["quantity"] == 5
        assert [(s["size"], s["quantity"]) for s in red["sizes"]] == [("M", 2), ("S", 3)]
        assert shirt["unassigned_sizes"] == []

    async def test_sizes_without_color_row_are_unassigned(self, db):
        await seed_sized_product(db, sizes={("Green", "L"): 4}, color_rows=())

        page = await list_stock(db)

        item = page.items[0]
        assert item["colors"] == []
        assert [s["size"] for s in item["unassigned_sizes"]] == ["L"]

    async def test_pagination(self, db):
        await _catalog(db)

        page = await list_stock(db, page=2, page_size=3)

        assert page.total == 4
        assert page.total_pages == 2
        assert [item["name"] for item in page.items] == ["Wool Scarf"]

    async def test_search_matches_name_or_reference_case_insensitively(self, db):
        await _catalog(db)

        by_name = await list_stock(db, search="  linen ")
        by_reference = await list_stock(db, search="ct-0")

        assert [i["name"] for i in by_name.items] == ["Linen Shirt"]
        assert [i["name"] for i in by_reference.items] == ["Canvas Tote"]

    async def test_search_treats_wildcards_as_text(self, db):
        await seed_simple_product(db)
        await seed_simple_product(db, name="Tote 100% cotton", reference="TT_100")

        percent = await list_stock(db, search="%")
        underscore = await list_stock(db, search="_")
        mixed_case = await list_stock(db, search="100% COTTON")

        assert [i["name"] for i in percent.items] == ["Tote 100% cotton"]
        assert [i["name"] for i in underscore.items] == ["Tote 100% cotton"]
        assert [i["name"] for i in mixed_case.items] == ["Tote 100% cotton"]

    async def test_empty_result(self, db):
        await _catalog(db)

        page = await list_stock(db, search="nothing like this")

        assert page.items == []
        assert page.total == 0
        assert page.total_pages == 0


class TestInventoryStats:
    async def test_stats_cover_every_product(self, db):
        await _catalog(db)

        stats = await inventory_stats(db)

        assert stats.total_value_minor == 10 * 4900 + 16 * 1900 + 3 * 2500
        assert stats.total_value == stats.total_value_minor / 100
        assert stats.low_stock == 1
        assert stats.out_of_stock == 1

    async def test_stats_follow_search_not_page(self, db):
        await _catalog(db)

        stats = await inventory_stats(db, search="w")

        # "Wool Scarf" only
        assert stats.total_value_minor == 0
        assert stats.out_of_stock == 1
        assert stats.low_stock == 0

    async def test_stats_search_treats_wildcards_as_text(self, db):
        await _catalog(db)

        stats = await inventory_stats(db, search="_")

        assert stats.total_value_minor == 0
        assert stats.low_stock == 0
        assert stats.out_of_stock == 0

    async def test_empty_catalog(self, db):
        stats = await inventory_stats(db)

        assert (stats.total_value_minor, stats.low_stock, stats.out_of_stock) == (0, 0, 0)


class TestFindDrift:
    async def test_consistent_tree_has_no_drift(self, db):
        await _catalog(db)

        assert await find_drift(db) == []

    async def test_reports_stale_aggregates(self, db):
        shirt, tote, _, _ = await _catalog(db)
        await db.execute(update(ProductColor).where(ProductColor.id == shirt.colors["Red"].id).values(quantity=1))
        await db.execute(update(Product).where(Product.id == tote.id).values(quantity=99))
        await db.commit()

        drift = {(d.node_kind, d.node_id): (d.recorded, d.expected) for d in await find_drift(db)}

        assert drift == {
            ("COLOR", shirt.colors["Red"].id): (1, 5),
            ("PRODUCT", tote.id): (99, 16),
        }
