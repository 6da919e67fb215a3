# database.py
import logging
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from models import POSError, PriceMode, Product, Sale, SaleLine

logger = logging.getLogger("bizmate.database")

# Demo catalog inserted into an empty database
SEED_PRODUCTS = [
    {'id': '1', 'name': 'Organic Almond Milk', 'category': 'Groceries',
     'retail_price': '5.50', 'wholesale_price': '3.80', 'stock': 45, 'reorder_point': 20},
    {'id': '2', 'name': 'Sourdough Bread', 'category': 'Groceries',
     'retail_price': '6.00', 'wholesale_price': '4.00', 'stock': 12, 'reorder_point': 15},
    {'id': '3', 'name': 'Retinol Face Serum', 'category': 'Beauty',
     'retail_price': '24.99', 'wholesale_price': '15.00', 'stock': 8, 'reorder_point': 10},
    {'id': '4', 'name': 'Moisturizing Cream', 'category': 'Beauty',
     'retail_price': '18.50', 'wholesale_price': '11.25', 'stock': 50, 'reorder_point': 10},
    {'id': '5', 'name': 'Jasmine Rice (5kg)', 'category': 'Groceries',
     'retail_price': '12.00', 'wholesale_price': '9.50', 'stock': 100, 'reorder_point': 20},
]


class StorageError(POSError):
    """A read or write against the store failed."""
    sale = None


class Database:
    """
    Manages the SQLite connection and serves as both the catalog store
    (products) and the ledger store (sales and their line items).
    Amounts are stored as TEXT to keep them exact decimals.
    """
    def __init__(self, db_name: str = "pos.db"):
        self.conn = None
        try:
            self.conn = sqlite3.connect(db_name)
            self.conn.row_factory = sqlite3.Row
            self._create_tables()
        except sqlite3.Error as e:
            if self.conn is not None:
                self.conn.close()
            logger.error(f"Cannot open database {db_name}: {e}")
            raise StorageError(f"Cannot open database {db_name}: {e}") from e

    def _create_tables(self):
        cur = self.conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            category TEXT NOT NULL,
            retail_price TEXT NOT NULL,
            wholesale_price TEXT NOT NULL,
            stock INTEGER NOT NULL CHECK (stock >= 0),
            reorder_point INTEGER NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL
        )
        """)
        # Sales master table
        cur.execute("""
        CREATE TABLE IF NOT EXISTS sales (
            id TEXT PRIMARY KEY,
            timestamp TEXT NOT NULL,
            type TEXT NOT NULL,
            total TEXT NOT NULL
        )
        """)
        # Sale items (value copies, no foreign key to products)
        cur.execute("""
        CREATE TABLE IF NOT EXISTS sale_items (
            sale_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            product_id TEXT NOT NULL,
            name TEXT NOT NULL,
            quantity INTEGER NOT NULL,
            price TEXT NOT NULL,
            PRIMARY KEY (sale_id, position),
            FOREIGN KEY(sale_id) REFERENCES sales(id)
        )
        """)
        self.conn.commit()

    def close(self):
        self.conn.close()

    def _execute(self, query: str, params=()):
        try:
            cur = self.conn.cursor()
            cur.execute(query, params)
            self.conn.commit()
            return cur
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Database error: {e}")
            raise StorageError(str(e)) from e

    def _query(self, query: str, params=()):
        try:
            cur = self.conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Database error: {e}")
            raise StorageError(str(e)) from e

    # Product operations
    def list_products(self) -> List[Product]:
        """Return all products ordered by id."""
        return [Product.from_row(r) for r in self._query("SELECT * FROM products ORDER BY id")]

    def get_product(self, product_id: str) -> Optional[Product]:
        rows = self._query("SELECT * FROM products WHERE id = ?", (product_id,))
        return Product.from_row(rows[0]) if rows else None

    def upsert_product(self, product: Product):
        """Insert a product or replace every field of the existing one."""
        self._execute("""
        INSERT INTO products (id, name, category, retail_price, wholesale_price,
                              stock, reorder_point, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            name = excluded.name,
            category = excluded.category,
            retail_price = excluded.retail_price,
            wholesale_price = excluded.wholesale_price,
            stock = excluded.stock,
            reorder_point = excluded.reorder_point,
            updated_at = excluded.updated_at
        """, (product.id, product.name, product.category.value,
              str(product.retail_price), str(product.wholesale_price),
              product.stock, product.reorder_point, product.updated_at.isoformat()))

    def delete_product(self, product_id: str) -> bool:
        """Delete a product. Returns True if a row was deleted."""
        cur = self._execute("DELETE FROM products WHERE id = ?", (product_id,))
        return cur.rowcount > 0

    def decrement_stock(self, product_id: str, qty: int) -> bool:
        """
        Reduce stock by qty, never below zero.
        Returns False if the product does not exist.
        """
        cur = self._execute("""
        UPDATE products
        SET stock = MAX(0, stock - ?)
        WHERE id = ?
        """, (qty, product_id))
        return cur.rowcount > 0

    def search_products(self, keyword: str = "", category: Optional[str] = None) -> List[Product]:
        """Search products by name, optionally within one category."""
        q = "SELECT * FROM products WHERE name LIKE ?"
        params = [f"%{keyword}%"]
        if category:
            q += " AND category = ?"
            params.append(category)
        q += " ORDER BY id"
        return [Product.from_row(r) for r in self._query(q, params)]

    def get_low_stock_products(self) -> List[Product]:
        """Products at or below their reorder point."""
        rows = self._query("""
        SELECT * FROM products
        WHERE stock <= reorder_point
        ORDER BY stock ASC
        """)
        return [Product.from_row(r) for r in rows]

    def seed_products(self) -> int:
        """Insert the demo catalog if the products table is empty."""
        if self._query("SELECT 1 FROM products LIMIT 1"):
            return 0
        now = datetime.now()
        for record in SEED_PRODUCTS:
            self.upsert_product(Product(updated_at=now, **record))
        logger.info(f"Seeded {len(SEED_PRODUCTS)} demo products")
        return len(SEED_PRODUCTS)

    # Sales operations
    def append_sale(self, sale: Sale):
        """Record a sale and its line items in one transaction."""
        try:
            cur = self.conn.cursor()
            cur.execute("INSERT INTO sales (id, timestamp, type, total) VALUES (?, ?, ?, ?)",
                        (sale.id, sale.timestamp.isoformat(), sale.type.value, str(sale.total)))
            for position, item in enumerate(sale.items):
                cur.execute("""
                INSERT INTO sale_items (sale_id, position, product_id, name, quantity, price)
                VALUES (?, ?, ?, ?, ?, ?)
                """, (sale.id, position, item.product_id, item.name, item.quantity, str(item.price)))
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Failed to record sale {sale.id}: {e}")
            raise StorageError(f"Failed to record sale {sale.id}: {e}") from e

    def _load_sale(self, row) -> Sale:
        items = self._query("""
        SELECT * FROM sale_items WHERE sale_id = ? ORDER BY position
        """, (row['id'],))
        return Sale(
            id=row['id'],
            timestamp=datetime.fromisoformat(row['timestamp']),
            type=PriceMode(row['type']),
            items=tuple(SaleLine(product_id=i['product_id'], name=i['name'],
                                 quantity=i['quantity'], price=Decimal(i['price']))
                        for i in items),
            total=Decimal(row['total']),
        )

    def list_sales(self, date_from: str = None, date_to: str = None) -> List[Sale]:
        """List sales whose date falls within an optional inclusive range, oldest first."""
        q = "SELECT * FROM sales"
        params = []
        if date_from and date_to:
            q += " WHERE date(timestamp) BETWEEN date(?) AND date(?)"
            params = [date_from, date_to]
        elif date_from:
            q += " WHERE date(timestamp) >= date(?)"
            params = [date_from]
        elif date_to:
            q += " WHERE date(timestamp) <= date(?)"
            params = [date_to]

        q += " ORDER BY timestamp ASC, rowid ASC"
        return [self._load_sale(r) for r in self._query(q, params)]

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        rows = self._query("SELECT * FROM sales WHERE id = ?", (sale_id,))
        return self._load_sale(rows[0]) if rows else None
