# reports.py
import logging
from datetime import datetime, timedelta

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from auth import ADMIN

logger = logging.getLogger("billing.reports")

LOW_STOCK_THRESHOLD = 10


def _bills_frame(bills):
    """One row per bill with a parsed timestamp."""
    df = pd.DataFrame(bills, columns=['id', 'items', 'subtotal', 'tax', 'gstApplied', 'total',
                                      'paid', 'change', 'paymentMethod', 'createdAt'])
    df['createdAt'] = pd.to_datetime(df['createdAt'])
    df['total'] = df['total'].astype(float)
    return df


def _items_frame(bills):
    """One row per sold line."""
    rows = [
        {'bill_id': bill['id'], 'name': item['name'], 'price': float(item['price']),
         'quantity': int(item['quantity'])}
        for bill in bills for item in bill.get('items', [])
    ]
    df = pd.DataFrame(rows, columns=['bill_id', 'name', 'price', 'quantity'])
    df['revenue'] = df['price'] * df['quantity']
    return df


def _is_low(quantity, threshold):
    return quantity <= threshold


def stock_status(quantity, threshold=LOW_STOCK_THRESHOLD):
    if quantity == 0:
        return 'out'
    if quantity <= threshold:
        return 'low'
    return 'ok'


def dashboard_stats(products, bills, role, now=None, threshold=LOW_STOCK_THRESHOLD):
    """
    Numbers for the landing page. Cashiers see only today's transactions and
    no stock alerts.
    """
    now = now or datetime.now()
    today = now.date()
    todays = [b for b in bills if datetime.fromisoformat(b['createdAt']).date() == today]

    stats = {
        'today_sales': sum(b['total'] for b in todays),
        'total_products': len(products),
        'low_stock_count': sum(1 for p in products if _is_low(p['quantity'], threshold)),
        'inventory_value': sum(p['price'] * p['quantity'] for p in products),
    }
    if role == ADMIN:
        stats['recent_bills'] = list(reversed(bills[-5:]))
        stats['low_stock_alerts'] = [
            {'name': p['name'], 'quantity': p['quantity'],
             'status': 'Out of Stock' if p['quantity'] == 0 else 'Low Stock'}
            for p in products if _is_low(p['quantity'], threshold)
        ]
    else:
        stats['recent_bills'] = list(reversed(todays[-5:]))
        stats['low_stock_alerts'] = None
    return stats


def sales_summary(bills, now=None):
    """Today's, this month's and all-time sales plus the average bill."""
    now = now or datetime.now()
    if not bills:
        return {'today_sales': 0, 'month_sales': 0, 'total_sales': 0, 'average_sale': 0,
                'num_transactions': 0}
    df = _bills_frame(bills)
    today = df['createdAt'].dt.date == now.date()
    month = (df['createdAt'].dt.month == now.month) & (df['createdAt'].dt.year == now.year)
    return {
        'today_sales': float(df.loc[today, 'total'].sum()),
        'month_sales': float(df.loc[month, 'total'].sum()),
        'total_sales': float(df['total'].sum()),
        'average_sale': float(df['total'].mean()),
        'num_transactions': len(df),
    }


def top_products(bills, limit=5):
    """Best sellers by quantity as (name, quantity) pairs."""
    items = _items_frame(bills)
    if items.empty:
        return []
    totals = items.groupby('name', sort=False)['quantity'].sum()
    totals = totals.sort_values(ascending=False, kind='stable').head(limit)
    return [(name, int(qty)) for name, qty in totals.items()]


def sales_analytics(bills, start=None, end=None, now=None):
    """
    Revenue breakdown for a date range (default: the last 30 days):
    summary, top 10 products by revenue, daily trend, payment methods and
    sales by hour of day.
    """
    now = now or datetime.now()
    start = start or (now - timedelta(days=30)).isoformat(timespec='seconds')
    end = end or now.isoformat(timespec='seconds')
    selected = [b for b in bills if start <= b['createdAt'] <= end]

    total_revenue = sum(b['total'] for b in selected)
    result = {
        'summary': {
            'total_revenue': total_revenue,
            'total_transactions': len(selected),
            'avg_transaction_value': total_revenue / len(selected) if selected else 0,
            'date_range': {'start': start, 'end': end},
        },
        'top_products': [],
        'revenue_trend': [],
        'payment_methods': {},
        'hour_wise_sales': [0.0] * 24,
    }
    if not selected:
        return result

    items = _items_frame(selected)
    by_product = items.groupby('name', sort=False).agg(quantity=('quantity', 'sum'),
                                                       revenue=('revenue', 'sum'))
    by_product = by_product.sort_values('revenue', ascending=False, kind='stable').head(10)
    result['top_products'] = [
        {'name': name, 'quantity': int(row['quantity']), 'revenue': float(row['revenue'])}
        for name, row in by_product.iterrows()
    ]

    df = _bills_frame(selected)
    daily = df.groupby(df['createdAt'].dt.strftime('%Y-%m-%d'))['total'].sum().sort_index()
    result['revenue_trend'] = [{'date': d, 'revenue': float(v)} for d, v in daily.items()]
    result['payment_methods'] = {k: int(v) for k, v in df['paymentMethod'].value_counts().items()}
    for hour, value in df.groupby(df['createdAt'].dt.hour)['total'].sum().items():
        result['hour_wise_sales'][int(hour)] = float(value)
    return result


def filter_inventory(products, search='', category=None, stock=None,
                     threshold=LOW_STOCK_THRESHOLD):
    """Search by name or SKU, then narrow by category and stock level (low/out/ok)."""
    search = (search or '').lower()

    def matches(p):
        if search and search not in p['name'].lower() and search not in (p.get('sku') or '').lower():
            return False
        if category and p.get('category') != category:
            return False
        q = p['quantity']
        if stock == 'low':
            return 0 < q <= threshold
        if stock == 'out':
            return q == 0
        if stock == 'ok':
            return q > threshold
        return True

    return [p for p in products if matches(p)]


def generate_sales_report(bills, file_path=None, format='csv'):
    """Table of bills plus summary; written to CSV/Excel when a path is given."""
    if not bills:
        return None, "No sales data found for the specified period."

    df = _bills_frame(bills)
    df['items'] = df['items'].map(len)
    df['date'] = df['createdAt'].dt.date
    df = df[['id', 'date', 'createdAt', 'items', 'subtotal', 'tax', 'total', 'paymentMethod']]

    summary = {
        'total_sales': float(df['total'].sum()),
        'average_sale': float(df['total'].mean()),
        'num_transactions': len(df),
        'start_date': str(df['date'].min()),
        'end_date': str(df['date'].max()),
    }

    if file_path:
        if format.lower() == 'excel':
            df.to_excel(file_path, index=False, sheet_name='Sales')
        else:
            df.to_csv(file_path, index=False)
        logger.info(f"Sales report written to {file_path}")

    return df, summary


def generate_inventory_report(products, file_path=None, format='csv',
                              low_stock_threshold=LOW_STOCK_THRESHOLD):
    """Generate an inventory report, optionally highlighting low stock items."""
    if not products:
        return None, "No inventory data found."

    df = pd.DataFrame(products)
    df['status'] = df['quantity'].map(lambda q: stock_status(q, low_stock_threshold))
    low_stock_items = df[df['quantity'] <= low_stock_threshold]

    summary = {
        'total_items': len(df),
        'total_value': float((df['price'] * df['quantity']).sum()),
        'low_stock_count': len(low_stock_items),
        'low_stock_items': low_stock_items.to_dict('records') if not low_stock_items.empty else []
    }

    if file_path:
        if format.lower() == 'excel':
            df.to_excel(file_path, index=False, sheet_name='Inventory')
        else:
            df.to_csv(file_path, index=False)
        logger.info(f"Inventory report written to {file_path}")

    return df, summary


def generate_pdf_report(title, data, summary, file_path, currency="₹"):
    """Generate a PDF report with data and summary statistics."""
    doc = SimpleDocTemplate(file_path, pagesize=letter)
    elements = []

    styles = getSampleStyleSheet()
    elements.append(Paragraph(title, styles['Heading1']))
    elements.append(Spacer(1, 0.2 * inch))
    elements.append(Paragraph(f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}", styles['Normal']))
    elements.append(Spacer(1, 0.2 * inch))
    elements.append(Paragraph("Summary", styles['Heading2']))

    summary_data = [["Metric", "Value"]]
    for key, value in summary.items():
        if key == 'low_stock_items':
            continue
        if isinstance(value, float):
            formatted = f"{currency}{value:.2f}"
        elif isinstance(value, int):
            formatted = f"{value:,}"
        else:
            formatted = str(value)
        summary_data.append([key.replace('_', ' ').title(), formatted])

    summary_table = Table(summary_data, colWidths=[2.5 * inch, 3 * inch])
    summary_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (1, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (1, 0), 'Helvetica-Bold'),
        ('GRID', (0, 0), (1, -1), 1, colors.black),
    ]))
    elements.append(summary_table)
    elements.append(Spacer(1, 0.3 * inch))

    if isinstance(data, pd.DataFrame) and not data.empty:
        elements.append(Paragraph("Detailed Data", styles['Heading2']))
        table_data = [data.columns.tolist()]
        for _, row in data.iterrows():
            table_data.append([str(x) for x in row.tolist()])

        # keep the PDF to a readable size
        max_rows = min(50, len(table_data))
        data_table = Table(table_data[:max_rows])
        data_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
        ]))
        elements.append(data_table)

        if len(table_data) > max_rows:
            elements.append(Spacer(1, 0.2 * inch))
            elements.append(Paragraph(f"Note: Showing {max_rows - 1} of {len(table_data) - 1} rows",
                                      styles['Italic']))

    doc.build(elements)
    return file_path
