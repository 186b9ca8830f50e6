# utils.py
import json
import logging
import random
from datetime import datetime

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from database import COLLECTIONS, Database
from models import Bill, Product, ShopProfile

logger = logging.getLogger("billing.utils")

INVENTORY_COLUMNS = ['barcode', 'name', 'sku', 'category', 'price', 'quantity']
PRIVATE_USER_FIELDS = ('password_hash',)


def format_currency(amount, currency="₹"):
    return f"{currency}{float(amount):.2f}"


def format_date(value):
    """ISO string or datetime -> 'Jan 05, 2025 14:30'."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    return value.strftime("%b %d, %Y %H:%M")


def generate_barcode():
    """Random 13 digit numeric barcode for new products."""
    return str(random.randint(1000000000000, 9999999999999))


def export_inventory_csv(db: Database, file_path: str):
    """Dump inventory to CSV."""
    df = pd.DataFrame(db.list_products())
    df.to_csv(file_path, index=False)
    return file_path


def export_inventory_excel(db: Database, file_path: str):
    """Export inventory to Excel format."""
    df = pd.DataFrame(db.list_products())
    df.to_excel(file_path, index=False, sheet_name='Inventory')
    return file_path


def _upsert_inventory(db: Database, df):
    missing = {'name', 'price', 'quantity'} - set(df.columns)
    if missing:
        raise ValueError(f"Missing columns: {', '.join(sorted(missing))}")
    df = df.astype(object).where(pd.notna(df), None)
    count = 0
    for _, row in df.iterrows():
        fields = {
            'name': row['name'],
            'price': float(row['price']),
            'quantity': int(row['quantity']),
        }
        for col in ('sku', 'category', 'barcode'):
            if col in df.columns and row[col] is not None:
                fields[col] = str(row[col])
        # validate before writing
        Product(id=None, **fields)
        existing = db.get_product_by_barcode(fields['barcode']) if fields.get('barcode') else None
        if existing:
            db.update_product(existing['id'], fields)
        else:
            db.create_product(fields)
        count += 1
    return count


def import_inventory_csv(db: Database, file_path: str):
    """
    Read CSV with columns name,price,quantity (plus optional barcode,sku,category)
    and upsert into the catalog, matching on barcode.
    """
    return _upsert_inventory(db, pd.read_csv(file_path, dtype={'barcode': str, 'sku': str}))


def import_inventory_excel(db: Database, file_path: str):
    """Same as import_inventory_csv for .xlsx files."""
    return _upsert_inventory(db, pd.read_excel(file_path, dtype={'barcode': str, 'sku': str}))


def export_data(db: Database, file_path: str):
    """Full JSON export of products, bills and shop settings."""
    data = {
        'products': db.list_products(),
        'bills': db.list_bills(),
        'settings': db.get_shop_profile().to_dict(),
        'exportedAt': datetime.now().isoformat(timespec='seconds'),
    }
    with open(file_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return file_path


def import_data(db: Database, file_path: str):
    """
    Load an export file. Only products are imported, each as a new product.
    Returns how many were added.
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    # every row is validated before any is written
    products = [Product.from_fields(p) for p in data.get('products', [])]
    for product in products:
        fields = {k: v for k, v in product.to_dict().items() if k != 'id'}
        db.create_product(fields)
    logger.info(f"Imported {len(products)} product(s) from {file_path}")
    return len(products)


def export_collection(db: Database, collection: str, fmt: str = 'json'):
    """Serialise one collection as JSON text or CSV text."""
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")
    documents = db.dump_collection(collection)
    if collection == 'users':
        documents = [{k: v for k, v in doc.items() if k not in PRIVATE_USER_FIELDS}
                     for doc in documents]
    if fmt == 'csv':
        if not documents:
            return ''
        df = pd.DataFrame(documents)
        for col in df.columns:
            df[col] = df[col].map(lambda v: json.dumps(v) if isinstance(v, (dict, list)) else v)
        return df.to_csv(index=False)
    return json.dumps(documents, indent=2, ensure_ascii=False)


def _receipt_rows(bill: Bill, currency):
    return [(item.name, item.quantity, format_currency(item.amount, currency))
            for item in bill.items]


def generate_txt_receipt(bill: Bill, shop: ShopProfile, file_path: str, currency="₹"):
    """Write a plain text receipt sized for a thermal printer."""
    width = 32
    divider = "-" * width + "\n"
    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(f"{shop.name:^{width}}\n")
        if shop.address:
            f.write(f"{shop.address:^{width}}\n")
        if shop.phone:
            f.write(f"{'Tel: ' + shop.phone:^{width}}\n")
        if shop.gst_number:
            f.write(f"{'GST: ' + shop.gst_number:^{width}}\n")
        f.write(divider)
        f.write(f"Bill #: {bill.number}\n")
        f.write(f"Date: {format_date(bill.created_at)}\n")
        f.write(f"Payment: {bill.payment_method.upper()}\n")
        f.write(divider)
        f.write(f"{'Item':16}{'Qty':>4}{'Amount':>12}\n")
        for name, qty, amount in _receipt_rows(bill, currency):
            f.write(f"{name[:16]:16}{qty:>4}{amount:>12}\n")
        f.write(divider)
        f.write(f"{'Subtotal:':20}{format_currency(bill.subtotal, currency):>12}\n")
        if bill.gst_applied:
            label = f"GST ({bill.tax_rate * 100:g}%):"
            f.write(f"{label:20}{format_currency(bill.tax, currency):>12}\n")
        f.write(f"{'TOTAL:':20}{format_currency(bill.total, currency):>12}\n")
        f.write(f"{'Paid:':20}{format_currency(bill.paid, currency):>12}\n")
        f.write(f"{'Change:':20}{format_currency(bill.change, currency):>12}\n")
        f.write(divider)
        f.write(f"{'Thank you for your purchase!':^{width}}\n")
        f.write(f"{'Please visit again':^{width}}\n")
    return file_path


def generate_pdf_receipt(bill: Bill, shop: ShopProfile, file_path: str, currency="₹"):
    """Generate a PDF receipt using ReportLab."""
    doc = SimpleDocTemplate(file_path, pagesize=A4)
    elements = []

    styles = getSampleStyleSheet()
    centered = ParagraphStyle(name='Centered', parent=styles['Normal'], alignment=1)

    elements.append(Paragraph(shop.name, styles['Title']))
    if shop.address:
        elements.append(Paragraph(shop.address, centered))
    if shop.phone:
        elements.append(Paragraph(f"Tel: {shop.phone}", centered))
    if shop.gst_number:
        elements.append(Paragraph(f"GST: {shop.gst_number}", centered))
    elements.append(Spacer(1, 0.2 * inch))

    elements.append(Paragraph(f"Bill #: {bill.number}", styles['Normal']))
    elements.append(Paragraph(f"Date: {format_date(bill.created_at)}", styles['Normal']))
    elements.append(Paragraph(f"Payment: {bill.payment_method.upper()}", styles['Normal']))
    elements.append(Spacer(1, 0.2 * inch))

    data = [["Item", "Qty", "Price", "Amount"]]
    for item in bill.items:
        data.append([item.name, str(item.quantity), format_currency(item.price, currency),
                     format_currency(item.amount, currency)])

    data.append(["", "", "", ""])
    data.append(["Subtotal:", "", "", format_currency(bill.subtotal, currency)])
    if bill.gst_applied:
        data.append([f"GST ({bill.tax_rate * 100:g}%):", "", "", format_currency(bill.tax, currency)])
    data.append(["Total:", "", "", format_currency(bill.total, currency)])
    data.append(["Paid:", "", "", format_currency(bill.paid, currency)])
    data.append(["Change:", "", "", format_currency(bill.change, currency)])

    table = Table(data, colWidths=[2.5 * inch, 1 * inch, 1 * inch, 1.2 * inch])
    summary_rows = 5 if bill.gst_applied else 4
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (3, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (3, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (3, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (3, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (3, 0), 12),
        ('GRID', (0, 0), (-1, len(bill.items)), 1, colors.black),
        ('ALIGN', (1, 1), (3, -1), 'RIGHT'),
        ('FONTNAME', (0, -summary_rows), (3, -1), 'Helvetica-Bold'),
    ]))
    elements.append(table)
    elements.append(Spacer(1, 0.4 * inch))

    elements.append(Paragraph("Thank you for your purchase!", centered))
    elements.append(Paragraph("Please visit again", centered))

    doc.build(elements)
    return file_path
