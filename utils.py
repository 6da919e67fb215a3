# utils.py
import datetime
import logging
from decimal import Decimal

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from database import Database
from models import Product, Sale

logger = logging.getLogger("bizmate.utils")

INVENTORY_COLUMNS = ['id', 'name', 'category', 'retail_price', 'wholesale_price',
                     'stock', 'reorder_point', 'updated_at']


def sales_lines_frame(sales, products) -> pd.DataFrame:
    """
    One row per sold line, with the category of the product as it is now.
    Lines whose product has been deleted get category 'Unknown'.
    """
    categories = {p.id: p.category.value for p in products}
    rows = [{
        'sale_id': s.id,
        'timestamp': s.timestamp,
        'type': s.type.value,
        'product_id': item.product_id,
        'name': item.name,
        'quantity': item.quantity,
        'amount': float(item.line_total),
        'category': categories.get(item.product_id, 'Unknown'),
    } for s in sales for item in s.items]
    return pd.DataFrame(rows, columns=['sale_id', 'timestamp', 'type', 'product_id',
                                       'name', 'quantity', 'amount', 'category'])


def dashboard_summary(products, sales, today: datetime.date = None) -> dict:
    """Low stock, today's revenue and transactions, revenue by category (all time)."""
    today = today or datetime.date.today()

    low_stock_items = [p for p in products if p.is_low_stock]

    todays_sales = [s for s in sales if s.timestamp.date() == today]
    todays_revenue = sum((s.total for s in todays_sales), Decimal("0"))

    lines = sales_lines_frame(sales, products)
    if lines.empty:
        by_category = {}
    else:
        by_category = lines.groupby('category')['amount'].sum().round(2).to_dict()

    return {
        'low_stock_items': low_stock_items,
        'todays_revenue': todays_revenue,
        'todays_transactions': len(todays_sales),
        'sales_by_category': by_category,
    }


def export_inventory_csv(db: Database, file_path: str):
    """Dump inventory to CSV."""
    df = pd.DataFrame([{
        'id': p.id,
        'name': p.name,
        'category': p.category.value,
        'retail_price': str(p.retail_price),
        'wholesale_price': str(p.wholesale_price),
        'stock': p.stock,
        'reorder_point': p.reorder_point,
        'updated_at': p.updated_at.isoformat(),
    } for p in db.list_products()], columns=INVENTORY_COLUMNS)
    df.to_csv(file_path, index=False)
    logger.info(f"Exported {len(df)} products to {file_path}")
    return file_path


def import_inventory_csv(db: Database, file_path: str):
    """
    Read CSV with columns id,name,category,retail_price,wholesale_price,stock,reorder_point
    (updated_at optional) and upsert into the products table.
    Invalid rows raise ValueError before anything is written.
    """
    # read everything as text so prices keep their exact decimal form
    df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
    missing = set(INVENTORY_COLUMNS[:-1]) - set(df.columns)
    if missing:
        raise ValueError(f"Missing columns in {file_path}: {', '.join(sorted(missing))}")

    now = datetime.datetime.now()
    products = []
    for index, row in df.iterrows():
        try:
            products.append(Product(
                id=row['id'].strip(),
                name=row['name'].strip(),
                category=row['category'].strip(),
                retail_price=Decimal(row['retail_price']),
                wholesale_price=Decimal(row['wholesale_price']),
                stock=int(row['stock']),
                reorder_point=int(row['reorder_point'] or 0),
                updated_at=row.get('updated_at') or now,
            ))
        except (ArithmeticError, ValueError) as e:
            raise ValueError(f"Invalid row {index + 1} in {file_path}: {e}") from e

    for product in products:
        db.upsert_product(product)
    logger.info(f"Imported {len(products)} products from {file_path}")
    return len(products)


def generate_sales_report(db: Database, start_date=None, end_date=None, file_path=None):
    """Generate a sales report for a given date range."""
    sales = db.list_sales(start_date, end_date)

    if not sales:
        return None, "No sales data found for the specified period."

    df = pd.DataFrame([{
        'id': s.id,
        'timestamp': s.timestamp,
        'type': s.type.value,
        'items': sum(item.quantity for item in s.items),
        'total': float(s.total),
    } for s in sales])
    df['date'] = pd.to_datetime(df['timestamp']).dt.date

    summary = {
        'total_sales': round(float(df['total'].sum()), 2),
        'average_sale': round(float(df['total'].mean()), 2),
        'num_transactions': len(df),
        'start_date': start_date or df['date'].min(),
        'end_date': end_date or df['date'].max()
    }

    if file_path:
        df.to_csv(file_path, index=False)
        logger.info(f"Sales report written to {file_path}")

    return df, summary


def generate_txt_receipt(sale: Sale, file_path: str, currency="$", store_name="BizMate"):
    """Write a simple text receipt."""
    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(f"{store_name}\n")
        f.write(f"Date: {sale.timestamp.strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"Sale: {sale.id}\n")
        f.write(f"Mode: {sale.type.value}\n")
        f.write("-" * 40 + "\n")
        f.write("Item               QTY    Price    Total\n")
        for item in sale.items:
            f.write(f"{item.name[:15]:15} {item.quantity:5}  {currency}{item.price:7.2f} "
                    f"{currency}{item.line_total:7.2f}\n")
        f.write("-" * 40 + "\n")
        f.write(f"Total:        {currency}{sale.total:8.2f}\n")
        f.write("-" * 40 + "\n")
        f.write("Thank you for your purchase!\n")
    return file_path


def generate_pdf_receipt(sale: Sale, file_path: str, currency="$", store_name="BizMate"):
    """Generate a PDF receipt using ReportLab."""
    doc = SimpleDocTemplate(file_path, pagesize=letter)
    elements = []

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name='RightAlign',
        parent=styles['Normal'],
        alignment=2,  # 2 is right alignment
    ))

    elements.append(Paragraph(store_name, styles['Heading1']))
    elements.append(Paragraph(f"Date: {sale.timestamp.strftime('%Y-%m-%d %H:%M:%S')}",
                              styles['Normal']))
    elements.append(Paragraph(f"Sale: {sale.id} ({sale.type.value})", styles['Normal']))
    elements.append(Spacer(1, 0.2 * inch))

    data = [["Item", "Quantity", "Price", "Total"]]
    for item in sale.items:
        data.append([item.name, str(item.quantity),
                     f"{currency}{item.price:.2f}", f"{currency}{item.line_total:.2f}"])

    data.append(["" for _ in range(4)])
    data.append(["Total:", "", "", f"{currency}{sale.total:.2f}"])

    table = Table(data, colWidths=[2.5*inch, 1*inch, 1*inch, 1*inch])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (3, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (3, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (3, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (3, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (3, 0), 12),
        ('BOTTOMPADDING', (0, 0), (3, 0), 12),
        ('BACKGROUND', (0, 1), (3, -1), colors.white),
        ('GRID', (0, 0), (-1, -3), 1, colors.black),
        ('ALIGN', (1, 1), (3, -1), 'RIGHT'),
        ('FONTNAME', (0, -1), (3, -1), 'Helvetica-Bold'),
    ]))

    elements.append(table)
    elements.append(Spacer(1, 0.5 * inch))
    elements.append(Paragraph("Thank you for your purchase!", styles['RightAlign']))

    doc.build(elements)

    return file_path
