# models.py
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger("bizmate.models")


class POSError(Exception):
    """Base class for errors surfaced to the operator."""


class EmptyCartError(POSError):
    """Checkout attempted with no lines in the cart."""


class ProductNotFoundError(POSError, LookupError):
    pass


class Category(str, Enum):
    GROCERIES = "Groceries"
    BEAUTY = "Beauty"


class PriceMode(str, Enum):
    RETAIL = "Retail"
    WHOLESALE = "Wholesale"


def _to_decimal(value) -> Decimal:
    # floats go through str() so 5.5 becomes Decimal("5.5"), not its binary expansion
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass
class Product:
    """A catalog entry. Stock is the authoritative on-hand quantity."""
    id: str
    name: str
    category: Category
    retail_price: Decimal
    wholesale_price: Decimal
    stock: int
    reorder_point: int = 0
    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        self.category = Category(self.category)
        self.retail_price = _to_decimal(self.retail_price)
        self.wholesale_price = _to_decimal(self.wholesale_price)
        self.stock = int(self.stock)
        self.reorder_point = int(self.reorder_point)
        if isinstance(self.updated_at, str):
            self.updated_at = datetime.fromisoformat(self.updated_at)
        if self.retail_price < 0 or self.wholesale_price < 0:
            raise ValueError(f"Prices of product {self.id} must not be negative.")
        if self.stock < 0:
            raise ValueError(f"Stock of product {self.id} must not be negative.")
        if self.reorder_point < 0:
            raise ValueError(f"Reorder point of product {self.id} must not be negative.")

    @classmethod
    def from_row(cls, row) -> "Product":
        """Build a product from a DB row (sqlite3.Row or dict)."""
        return cls(
            id=row['id'],
            name=row['name'],
            category=row['category'],
            retail_price=Decimal(row['retail_price']),
            wholesale_price=Decimal(row['wholesale_price']),
            stock=row['stock'],
            reorder_point=row['reorder_point'],
            updated_at=row['updated_at'],
        )

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.reorder_point


@dataclass
class CartLine:
    """One line in the current cart. Holds the product id, never the product."""
    product_id: str
    name: str
    quantity: int
    price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class SaleLine:
    product_id: str
    name: str
    quantity: int
    price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class Sale:
    """A committed sale. Never mutated once appended to the ledger."""
    id: str
    timestamp: datetime
    type: PriceMode
    items: Tuple[SaleLine, ...]
    total: Decimal

    @classmethod
    def from_cart(cls, cart: "Cart") -> "Sale":
        items = tuple(
            SaleLine(
                product_id=line.product_id,
                name=line.name,
                quantity=line.quantity,
                price=line.price,
            )
            for line in cart.line_items()
        )
        return cls(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(),
            type=cart.active_mode(),
            items=items,
            total=sum((item.line_total for item in items), Decimal("0")),
        )


class CatalogStore(Protocol):
    def list_products(self) -> List[Product]: ...

    def get_product(self, product_id: str) -> Optional[Product]: ...

    def upsert_product(self, product: Product) -> None: ...

    def delete_product(self, product_id: str) -> bool: ...

    def decrement_stock(self, product_id: str, qty: int) -> bool: ...


class LedgerStore(Protocol):
    def list_sales(self) -> List[Sale]: ...

    def append_sale(self, sale: Sale) -> None: ...


def resolve_price(product: Product, mode: PriceMode) -> Decimal:
    """Unit price of a product under the given price mode."""
    if PriceMode(mode) is PriceMode.WHOLESALE:
        return product.wholesale_price
    return product.retail_price


def can_hold(product: Product, quantity: int) -> bool:
    """True if a cart line of `quantity` units fits the product's current stock."""
    return 1 <= quantity <= product.stock


class Cart:
    """
    Holds the sale in progress.
    Every stock check re-reads the product from the catalog, since stock
    may change between cart operations.
    """
    def __init__(self, catalog: CatalogStore, mode: PriceMode = PriceMode.RETAIL):
        self.catalog = catalog
        self._mode = PriceMode(mode)
        self._lines: Dict[str, CartLine] = {}

    def __len__(self):
        return len(self._lines)

    def add_line(self, product: Product):
        current = self.catalog.get_product(product.id) or product
        if current.stock == 0:
            logger.debug(f"Rejected add of {current.id}: out of stock")
            return

        line = self._lines.get(current.id)
        if line is None:
            self._lines[current.id] = CartLine(
                product_id=current.id,
                name=current.name,
                quantity=1,
                price=resolve_price(current, self._mode),
            )
            return

        if not can_hold(current, line.quantity + 1):
            logger.debug(f"Rejected add of {current.id}: only {current.stock} in stock")
            return
        line.quantity += 1

    def remove_line(self, product_id: str):
        self._lines.pop(product_id, None)

    def adjust_quantity(self, product_id: str, delta: int):
        line = self._lines.get(product_id)
        if line is None:
            return
        product = self.catalog.get_product(product_id)
        if product is None:
            return

        new_quantity = line.quantity + delta
        # removal only happens through remove_line
        if new_quantity <= 0:
            return
        if not can_hold(product, new_quantity):
            logger.debug(f"Rejected quantity {new_quantity} for {product_id}: "
                         f"only {product.stock} in stock")
            return
        line.quantity = new_quantity

    def set_price_mode(self, mode: PriceMode):
        self._mode = PriceMode(mode)
        for line in self._lines.values():
            product = self.catalog.get_product(line.product_id)
            if product is None:
                # keep the last known price
                continue
            line.price = resolve_price(product, self._mode)

    def active_mode(self) -> PriceMode:
        return self._mode

    def line_items(self) -> List[CartLine]:
        return [replace(line) for line in self._lines.values()]

    def quantity_of(self, product_id: str) -> int:
        line = self._lines.get(product_id)
        return line.quantity if line else 0

    def is_empty(self) -> bool:
        return not self._lines

    def total(self) -> Decimal:
        return sum((line.line_total for line in self._lines.values()), Decimal("0"))

    def clear(self):
        self._lines.clear()


class CashierSystem:
    """
    Coordinates the cart and checkout against the catalog and the ledger.
    """
    def __init__(self, catalog: CatalogStore, ledger: LedgerStore, config=None):
        self.catalog = catalog
        self.ledger = ledger
        self.config = config or {}
        mode = self.config.get("default_price_mode", PriceMode.RETAIL.value)
        self.cart = Cart(catalog, PriceMode(mode))

    def add_by_id(self, product_id: str, qty: int = 1) -> int:
        """
        Look a product up by id and add up to `qty` units to the cart.
        Returns the resulting quantity of its line.
        Raises ProductNotFoundError if the catalog does not know the id.
        """
        product = self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product not found: {product_id}")
        for _ in range(qty):
            before = self.cart.quantity_of(product_id)
            self.cart.add_line(product)
            if self.cart.quantity_of(product_id) == before:
                break
        return self.cart.quantity_of(product_id)

    def commit(self) -> Sale:
        """
        Finalize the cart: append the sale to the ledger, decrement stock,
        clear the cart. Returns the committed Sale.
        """
        if self.cart.is_empty():
            raise EmptyCartError("Cannot check out an empty cart.")

        sale = Sale.from_cart(self.cart)
        # a failed append leaves the cart untouched so the operator can retry
        self.ledger.append_sale(sale)
        logger.info(f"Sale {sale.id} recorded: {len(sale.items)} lines, "
                    f"total {sale.total} ({sale.type.value})")

        try:
            for item in sale.items:
                if not self.catalog.decrement_stock(item.product_id, item.quantity):
                    logger.warning(f"Product {item.product_id} no longer in catalog; "
                                   f"stock not decremented for sale {sale.id}")
        except POSError as e:
            e.sale = sale
            logger.error(f"Sale {sale.id} committed but stock update failed: {e}")
            raise
        finally:
            self.cart.clear()

        return sale
