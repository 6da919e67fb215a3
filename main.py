# main.py
import os
import sys
import copy
import logging
import argparse
import json
import uuid
from pathlib import Path

from database import Database, StorageError
from logger import setup_logger
from models import CashierSystem, Category, POSError, PriceMode, Product
from utils import (dashboard_summary, export_inventory_csv, generate_pdf_receipt,
                   generate_sales_report, generate_txt_receipt, import_inventory_csv)

logger = logging.getLogger("bizmate.main")

# Default configuration
DEFAULT_CONFIG = {
    "store_name": "BizMate",
    "currency": "$",
    "default_price_mode": "Retail",
    "database": {
        "name": "pos.db",
        "seed_demo_data": True
    },
    "receipt": {
        "receipt_dir": "receipts"
    },
    "export": {
        "default_dir": "exports"
    },
    "logging": {
        "level": "INFO",
        "file": "logs/pos.log",
        "max_size": 1048576,
        "backup_count": 3
    }
}


def _merge(defaults, overrides):
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path="config.json"):
    """Load configuration from JSON file or create default if not exists"""
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = json.load(f)
            logger.info(f"Configuration loaded from {config_path}")
            return _merge(DEFAULT_CONFIG, config)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config: {e}")
            return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(DEFAULT_CONFIG, f, indent=4)
    logger.info(f"Created default configuration at {config_path}")

    return copy.deepcopy(DEFAULT_CONFIG)


def setup_directories(config):
    """Create required directories if they don't exist."""
    dir_mappings = {
        'receipt_dir': config['receipt']['receipt_dir'],
        'export_dir': config['export']['default_dir'],
        'log_dir': os.path.dirname(config['logging'].get('file') or ''),
    }

    for dir_key, dir_path in dir_mappings.items():
        if not dir_path:
            continue
        path = Path(dir_path)
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created directory: {path}")


def parse_sell_item(text):
    """Parse 'ID' or 'ID:QTY' into (id, qty)."""
    product_id, _, qty = text.partition(':')
    try:
        qty = int(qty) if qty else 1
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid quantity in '{text}'")
    if not product_id or qty <= 0:
        raise argparse.ArgumentTypeError(f"Invalid item '{text}', expected ID or ID:QTY")
    return product_id, qty


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="BizMate point of sale and inventory")
    parser.add_argument("--config", help="Path to configuration file", default="config.json")
    parser.add_argument("--debug", help="Enable debug mode", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("products", help="List the catalog")
    p.add_argument("--search", default="")
    p.add_argument("--category", choices=[c.value for c in Category])

    p = sub.add_parser("add-product", help="Create or update a product")
    p.add_argument("name")
    p.add_argument("--id", help="Existing id to update; a new id is generated if omitted")
    p.add_argument("--category", choices=[c.value for c in Category], required=True)
    p.add_argument("--retail", required=True)
    p.add_argument("--wholesale", required=True)
    p.add_argument("--stock", type=int, default=0)
    p.add_argument("--reorder-point", type=int, default=0)

    p = sub.add_parser("delete-product", help="Remove a product from the catalog")
    p.add_argument("id")

    p = sub.add_parser("sell", help="Ring up and commit a sale")
    p.add_argument("items", nargs="+", type=parse_sell_item, metavar="ID[:QTY]")
    p.add_argument("--mode", choices=[m.value for m in PriceMode])
    p.add_argument("--receipt", choices=["txt", "pdf"])

    p = sub.add_parser("history", help="List committed sales")
    p.add_argument("--from", dest="date_from")
    p.add_argument("--to", dest="date_to")

    p = sub.add_parser("show-sale", help="Show one sale with its lines")
    p.add_argument("sale_id")

    sub.add_parser("dashboard", help="Today's revenue, low stock and category totals")

    p = sub.add_parser("export-inventory", help="Write the catalog to CSV")
    p.add_argument("path", nargs="?")

    p = sub.add_parser("import-inventory", help="Upsert products from CSV")
    p.add_argument("path")

    p = sub.add_parser("sales-report", help="Summarize sales over a date range")
    p.add_argument("--from", dest="date_from")
    p.add_argument("--to", dest="date_to")
    p.add_argument("--out")

    p = sub.add_parser("receipt", help="Write the receipt of a past sale")
    p.add_argument("sale_id")
    p.add_argument("--pdf", action="store_true")

    return parser.parse_args(argv)


def print_sale(sale, currency):
    print(f"Sale {sale.id}  {sale.timestamp:%Y-%m-%d %H:%M:%S}  {sale.type.value}")
    for item in sale.items:
        print(f"  {item.name:25} {item.quantity:4} x {currency}{item.price:.2f}"
              f" = {currency}{item.line_total:.2f}")
    print(f"  Total: {currency}{sale.total:.2f}")


def write_receipt(sale, config, pdf=False):
    receipt_dir = Path(config['receipt']['receipt_dir'])
    receipt_dir.mkdir(parents=True, exist_ok=True)
    kwargs = {'currency': config['currency'], 'store_name': config['store_name']}
    if pdf:
        path = generate_pdf_receipt(sale, str(receipt_dir / f"receipt_{sale.id}.pdf"), **kwargs)
    else:
        path = generate_txt_receipt(sale, str(receipt_dir / f"receipt_{sale.id}.txt"), **kwargs)
    logger.info(f"Receipt written to {path}")
    return path


def run_command(args, db, config):
    currency = config['currency']

    if args.command == "products":
        for p in db.search_products(args.search, args.category):
            flag = " (low)" if p.is_low_stock else ""
            print(f"{p.id:6} {p.name:25} {p.category.value:10} "
                  f"{currency}{p.retail_price:>8.2f} {currency}{p.wholesale_price:>8.2f} "
                  f"{p.stock:5}{flag}")

    elif args.command == "add-product":
        product = Product(id=args.id or str(uuid.uuid4()), name=args.name,
                          category=args.category,
                          retail_price=args.retail, wholesale_price=args.wholesale,
                          stock=args.stock, reorder_point=args.reorder_point)
        db.upsert_product(product)
        logger.info(f"Saved product {product.id}")
        print(f"Saved product {product.id}")

    elif args.command == "delete-product":
        if not db.delete_product(args.id):
            print(f"No product with id {args.id}")
            return 1

    elif args.command == "sell":
        system = CashierSystem(db, db, config)
        if args.mode:
            system.cart.set_price_mode(args.mode)
        for product_id, qty in args.items:
            before = system.cart.quantity_of(product_id)
            added = system.add_by_id(product_id, qty) - before
            if added < qty:
                print(f"Only {added} more of {product_id} available ({qty} requested)")
        sale = system.commit()
        print_sale(sale, currency)
        if args.receipt:
            print(f"Receipt: {write_receipt(sale, config, pdf=args.receipt == 'pdf')}")

    elif args.command == "history":
        # newest first
        for sale in reversed(db.list_sales(args.date_from, args.date_to)):
            print(f"{sale.timestamp:%Y-%m-%d %H:%M} {sale.id} {sale.type.value:9} "
                  f"{currency}{sale.total:.2f}")

    elif args.command == "show-sale":
        sale = db.get_sale(args.sale_id)
        if sale is None:
            print(f"No sale with id {args.sale_id}")
            return 1
        print_sale(sale, currency)

    elif args.command == "dashboard":
        stats = dashboard_summary(db.list_products(), db.list_sales())
        print(f"Today's revenue: {currency}{stats['todays_revenue']:.2f} "
              f"({stats['todays_transactions']} transactions)")
        print(f"Low stock: {len(stats['low_stock_items'])} items")
        for p in stats['low_stock_items']:
            print(f"  {p.name}: {p.stock} (reorder at {p.reorder_point})")
        print("Sales by category:")
        for category, amount in stats['sales_by_category'].items():
            print(f"  {category}: {currency}{amount:.2f}")

    elif args.command == "export-inventory":
        path = args.path or str(Path(config['export']['default_dir']) / "inventory.csv")
        print(f"Exported to {export_inventory_csv(db, path)}")

    elif args.command == "import-inventory":
        print(f"Imported {import_inventory_csv(db, args.path)} products")

    elif args.command == "sales-report":
        df, summary = generate_sales_report(db, args.date_from, args.date_to, args.out)
        if df is None:
            print(summary)
        else:
            for key, value in summary.items():
                print(f"{key.replace('_', ' ').title()}: {value}")

    elif args.command == "receipt":
        sale = db.get_sale(args.sale_id)
        if sale is None:
            print(f"No sale with id {args.sale_id}")
            return 1
        print(f"Receipt: {write_receipt(sale, config, pdf=args.pdf)}")

    return 0


def main(argv=None):
    args = parse_arguments(argv)
    config = load_config(args.config)
    if args.debug:
        config['logging']['level'] = "DEBUG"
    setup_logger(config)
    setup_directories(config)

    db = None
    try:
        db = Database(config['database']['name'])
        if config['database'].get('seed_demo_data'):
            db.seed_products()
        logger.debug(f"Database initialized: {config['database']['name']}")
        return run_command(args, db, config)
    except StorageError as e:
        logger.critical(f"Storage failure: {e}", exc_info=args.debug)
        return 1
    except (POSError, ValueError, ArithmeticError) as e:
        print(f"Error: {e}")
        return 1
    finally:
        if db is not None:
            db.close()


if __name__ == "__main__":
    sys.exit(main())
