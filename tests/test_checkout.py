"""Tests for committing a cart as a sale."""
import logging
from dataclasses import replace
from decimal import Decimal

import pytest

from database import StorageError
from models import (CashierSystem, EmptyCartError, PriceMode, ProductNotFoundError,
                    Sale)


def _ring_up(system, db, *product_ids):
    for product_id in product_ids:
        system.cart.add_line(db.get_product(product_id))


def test_commit_records_sale_and_decrements_stock(system, db):
    _ring_up(system, db, "1", "1", "3")

    sale = system.commit()

    assert isinstance(sale, Sale)
    assert sale.total == Decimal("35.99")
    assert sale.type is PriceMode.RETAIL
    assert [(i.product_id, i.quantity, i.price) for i in sale.items] == [
        ("1", 2, Decimal("5.50")),
        ("3", 1, Decimal("24.99")),
    ]
    assert db.get_product("1").stock == 43
    assert db.get_product("3").stock == 7
    assert db.list_sales() == [sale]


def test_cart_total_equals_sale_total(system, db):
    _ring_up(system, db, "2", "4", "4", "5")
    system.cart.adjust_quantity("5", 2)
    before = system.cart.total()

    sale = system.commit()

    assert sale.total == before
    assert sale.total == sum(i.quantity * i.price for i in sale.items)


def test_commit_clears_cart(system, db):
    _ring_up(system, db, "1", "2")

    system.commit()

    assert system.cart.is_empty()
    assert system.cart.line_items() == []
    assert system.cart.total() == 0


def test_empty_commit_is_rejected(system, db):
    stock_before = {p.id: p.stock for p in db.list_products()}

    with pytest.raises(EmptyCartError):
        system.commit()

    assert db.list_sales() == []
    assert {p.id: p.stock for p in db.list_products()} == stock_before


def test_sequential_commits_have_distinct_ids(system, db):
    _ring_up(system, db, "1")
    first = system.commit()
    assert len(db.list_sales()) == 1

    _ring_up(system, db, "2")
    second = system.commit()

    assert first.id != second.id
    assert len(db.list_sales()) == 2


def test_wholesale_commit(system, db):
    _ring_up(system, db, "5", "5")
    system.cart.set_price_mode(PriceMode.WHOLESALE)

    sale = system.commit()

    assert sale.type is PriceMode.WHOLESALE
    assert sale.total == Decimal("19.00")
    assert db.get_sale(sale.id).type is PriceMode.WHOLESALE


def test_default_price_mode_from_config(db):
    system = CashierSystem(db, db, {"default_price_mode": "Wholesale"})
    _ring_up(system, db, "1")
    assert system.cart.active_mode() is PriceMode.WHOLESALE
    assert system.commit().total == Decimal("3.80")


def test_sale_is_decoupled_from_later_product_changes(system, db):
    _ring_up(system, db, "3")
    sale = system.commit()

    db.upsert_product(replace(db.get_product("3"), name="Night Serum",
                              retail_price=Decimal("29.99")))

    stored = db.get_sale(sale.id)
    assert stored.items[0].name == "Retinol Face Serum"
    assert stored.items[0].price == Decimal("24.99")
    assert stored.total == Decimal("24.99")


def test_vanished_product_still_sold_but_not_decremented(system, db, caplog):
    _ring_up(system, db, "1", "3")
    db.delete_product("3")

    with caplog.at_level(logging.WARNING, logger="bizmate.models"):
        sale = system.commit()

    assert sale.total == Decimal("30.49")
    assert [i.product_id for i in sale.items] == ["1", "3"]
    assert db.get_product("1").stock == 44
    assert db.get_product("3") is None
    assert any("no longer in catalog" in r.message for r in caplog.records)


def test_stock_never_goes_negative_at_commit(system, db):
    _ring_up(system, db, "3", "3", "3")
    db.upsert_product(replace(db.get_product("3"), stock=1))

    system.commit()

    assert db.get_product("3").stock == 0


def test_failed_append_leaves_cart_and_stock(db, failing_ledger):
    system = CashierSystem(db, failing_ledger)
    _ring_up(system, db, "1", "1")

    with pytest.raises(StorageError):
        system.commit()

    assert failing_ledger.attempts == 1
    assert system.cart.quantity_of("1") == 2
    assert db.get_product("1").stock == 45

    # retry against a working ledger
    system.ledger = db
    sale = system.commit()
    assert db.list_sales() == [sale]
    assert db.get_product("1").stock == 43


def test_failed_stock_update_keeps_committed_sale(db, failing_stock_catalog):
    system = CashierSystem(failing_stock_catalog, db)
    _ring_up(system, db, "1", "4")

    with pytest.raises(StorageError) as excinfo:
        system.commit()

    sale = excinfo.value.sale
    assert sale is not None
    assert db.list_sales() == [sale]
    assert system.cart.is_empty()
    assert db.get_product("1").stock == 45


def test_add_by_id(system):
    assert system.add_by_id("2", 3) == 3
    assert system.add_by_id("2") == 4


def test_add_by_id_caps_at_stock(system):
    assert system.add_by_id("3", 20) == 8


def test_add_by_id_unknown_product(system):
    with pytest.raises(ProductNotFoundError):
        system.add_by_id("nope")
    assert system.cart.is_empty()
