"""Pytest fixtures: an in-memory database seeded with the demo catalog."""
import pytest

from database import Database, StorageError
from models import CashierSystem


@pytest.fixture
def db():
    db = Database(":memory:")
    db.seed_products()
    yield db
    db.close()


@pytest.fixture
def system(db):
    return CashierSystem(db, db)


class FailingLedger:
    """Ledger whose writes always fail."""
    def __init__(self):
        self.attempts = 0

    def list_sales(self):
        return []

    def append_sale(self, sale):
        self.attempts += 1
        raise StorageError("disk full")


class FailingStockCatalog:
    """Delegates to a real catalog but fails every stock decrement."""
    def __init__(self, catalog):
        self.catalog = catalog

    def list_products(self):
        return self.catalog.list_products()

    def get_product(self, product_id):
        return self.catalog.get_product(product_id)

    def upsert_product(self, product):
        self.catalog.upsert_product(product)

    def delete_product(self, product_id):
        return self.catalog.delete_product(product_id)

    def decrement_stock(self, product_id, qty):
        raise StorageError("products table is locked")


@pytest.fixture
def failing_ledger():
    return FailingLedger()


@pytest.fixture
def failing_stock_catalog(db):
    return FailingStockCatalog(db)
