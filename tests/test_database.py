"""Tests for the SQLite catalog and ledger store."""
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

import pytest

from database import SEED_PRODUCTS, Database, StorageError
from models import Category, PriceMode, Product, Sale, SaleLine


def _sale(sale_id="s1", timestamp=None, items=None):
    items = items or (SaleLine("1", "Organic Almond Milk", 2, Decimal("5.50")),)
    return Sale(
        id=sale_id,
        timestamp=timestamp or datetime(2026, 10, 19, 9, 30),
        type=PriceMode.RETAIL,
        items=tuple(items),
        total=sum((i.line_total for i in items), Decimal("0")),
    )


def test_seed_only_fills_empty_catalog(db):
    assert len(db.list_products()) == len(SEED_PRODUCTS)
    assert db.seed_products() == 0


def test_products_round_trip_exactly(db):
    serum = db.get_product("3")
    assert serum.name == "Retinol Face Serum"
    assert serum.category is Category.BEAUTY
    assert serum.retail_price == Decimal("24.99")
    assert serum.wholesale_price == Decimal("15.00")
    assert serum.stock == 8
    assert serum.reorder_point == 10


def test_upsert_replaces_existing_product(db):
    bread = db.get_product("2")
    db.upsert_product(replace(bread, name="Rye Bread", stock=30))

    stored = db.get_product("2")
    assert stored.name == "Rye Bread"
    assert stored.stock == 30
    assert len(db.list_products()) == len(SEED_PRODUCTS)


def test_upsert_inserts_new_product(db):
    db.upsert_product(Product(id="6", name="Lip Balm", category="Beauty",
                              retail_price="3.25", wholesale_price="2.00", stock=15))
    assert db.get_product("6").retail_price == Decimal("3.25")


def test_get_missing_product(db):
    assert db.get_product("missing") is None


def test_delete_product(db):
    assert db.delete_product("2") is True
    assert db.delete_product("2") is False
    assert db.get_product("2") is None


def test_decrement_stock_clamps_at_zero(db):
    assert db.decrement_stock("3", 5) is True
    assert db.get_product("3").stock == 3
    assert db.decrement_stock("3", 10) is True
    assert db.get_product("3").stock == 0


def test_decrement_stock_of_missing_product(db):
    assert db.decrement_stock("missing", 1) is False


def test_append_and_read_sales(db):
    first = _sale("s1", datetime(2026, 10, 18, 17, 0))
    second = _sale("s2", datetime(2026, 10, 19, 9, 0), items=[
        SaleLine("3", "Retinol Face Serum", 1, Decimal("24.99")),
        SaleLine("5", "Jasmine Rice (5kg)", 3, Decimal("12.00")),
    ])
    db.append_sale(first)
    db.append_sale(second)

    assert db.list_sales() == [first, second]
    assert db.get_sale("s2").total == Decimal("60.99")
    assert db.get_sale("missing") is None


def test_list_sales_date_range(db):
    db.append_sale(_sale("old", datetime(2026, 10, 1, 12, 0)))
    db.append_sale(_sale("new", datetime(2026, 10, 19, 12, 0)))

    assert [s.id for s in db.list_sales(date_from="2026-10-10")] == ["new"]
    assert [s.id for s in db.list_sales(date_to="2026-10-10")] == ["old"]
    assert [s.id for s in db.list_sales("2026-09-01", "2026-10-31")] == ["old", "new"]


def test_duplicate_sale_id_is_rejected_atomically(db):
    db.append_sale(_sale("s1"))

    with pytest.raises(StorageError):
        db.append_sale(_sale("s1", items=[SaleLine("2", "Sourdough Bread", 1, Decimal("6.00"))]))

    [stored] = db.list_sales()
    assert stored.items[0].product_id == "1"


def test_low_stock_products(db):
    low = db.get_low_stock_products()
    assert [p.id for p in low] == ["3", "2"]


def test_search_products(db):
    assert [p.id for p in db.search_products("cream")] == ["4"]
    assert [p.id for p in db.search_products(category="Beauty")] == ["3", "4"]
    assert db.search_products("milk", category="Beauty") == []


def test_closed_database_raises_storage_error(db):
    db.close()
    with pytest.raises(StorageError):
        db.list_products()


def test_file_database_persists(tmp_path):
    path = str(tmp_path / "pos.db")
    db = Database(path)
    db.seed_products()
    db.decrement_stock("1", 5)
    db.close()

    reopened = Database(path)
    assert reopened.get_product("1").stock == 40
    reopened.close()


def test_list_sales_single_day(db):
    db.append_sale(_sale("morning", datetime(2026, 10, 19, 9, 30)))
    db.append_sale(_sale("late", datetime(2026, 10, 19, 23, 59, 59, 500000)))
    db.append_sale(_sale("next", datetime(2026, 10, 20, 0, 0, 1)))

    assert [s.id for s in db.list_sales("2026-10-19", "2026-10-19")] == ["morning", "late"]
    assert [s.id for s in db.list_sales(date_to="2026-10-19")] == ["morning", "late"]
    assert [s.id for s in db.list_sales(date_from="2026-10-20")] == ["next"]


def test_corrupt_file_raises_storage_error(tmp_path):
    path = tmp_path / "pos.db"
    path.write_bytes(b"not a database " * 64)

    with pytest.raises(StorageError, match="Cannot open database"):
        Database(str(path))
