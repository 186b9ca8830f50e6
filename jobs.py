# jobs.py
"""
Background jobs: sale and stock notifications, the daily sales mail,
weekly backups and restores, and receipt rendering by bill id.

Scheduling lives outside the app (cron, a systemd timer, ...); each job is
a plain function that main.py exposes as a subcommand.
"""
import html
import logging
import smtplib
from datetime import datetime, timedelta
from email.message import EmailMessage

from auth import ADMIN, AuthError, PermissionDenied
from database import Database
from models import Bill, StoreError
from utils import format_currency, generate_pdf_receipt

logger = logging.getLogger("billing.jobs")

BACKUP_COLLECTIONS = ('products', 'bills', 'users', 'shop')


class Mailer:
    """Sends HTML mail through the SMTP server named in the email config."""
    def __init__(self, config=None):
        config = config or {}
        self.host = config.get("smtp_host", "localhost")
        self.port = int(config.get("smtp_port", 587))
        self.use_tls = config.get("use_tls", True)
        self.user = config.get("user", "")
        self.password = config.get("password", "")
        self.sender = config.get("sender", "noreply@billingsoft.com")

    def send(self, to, subject, html_body, sender_name=None):
        msg = EmailMessage()
        msg['From'] = f"{sender_name} <{self.sender}>" if sender_name else self.sender
        msg['To'] = to
        msg['Subject'] = subject
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html_body, subtype='html')

        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password)
            smtp.send_message(msg)


def _rows(cells_per_row):
    return "".join(
        "<tr>" + "".join(f"<td style=\"padding: 8px; border-bottom: 1px solid #e5e7eb;\">{c}</td>"
                         for c in cells) + "</tr>"
        for cells in cells_per_row
    )


def render_bill_email(bill: Bill, currency="₹"):
    items = _rows([html.escape(item.name), item.quantity, format_currency(item.amount, currency)]
                  for item in bill.items)
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2>New Sale Notification</h2>
      <p>A new sale has been completed:</p>
      <p><strong>Bill ID:</strong> {bill.short_number}</p>
      <p><strong>Date:</strong> {bill.created:%b %d, %Y %H:%M}</p>
      <p><strong>Items:</strong> {len(bill.items)}</p>
      <p><strong>Total:</strong> {format_currency(bill.total, currency)}</p>
      <p><strong>Payment:</strong> {bill.payment_method}</p>
      <h3>Items:</h3>
      <table style="width: 100%; border-collapse: collapse;">
        <tr><th>Product</th><th>Qty</th><th>Amount</th></tr>
        {items}
      </table>
    </div>
    """


def send_bill_email(db: Database, mailer: Mailer, bill: Bill, currency="₹"):
    """Mail the shop owner about a new bill. Returns True if a mail went out."""
    shop = db.get_shop_profile()
    if not shop.email:
        logger.info(f"No shop email configured; skipping mail for bill {bill.short_number}")
        return False
    try:
        mailer.send(shop.email, f"New Sale - Bill #{bill.short_number}",
                    render_bill_email(bill, currency), sender_name=shop.name)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Error sending email for bill {bill.short_number}: {e}")
        return False
    logger.info(f"Email sent for bill: {bill.short_number}")
    return True


def low_stock_alert(db: Database, mailer: Mailer, before: dict, after: dict,
                    threshold=10, currency="₹"):
    """
    Alert when a product update takes its quantity from above the threshold
    to at or below it. Later updates that stay low do not alert again.
    """
    if not (before['quantity'] > threshold >= after['quantity']):
        return False
    shop = db.get_shop_profile()
    if not shop.email:
        return False

    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2>Low Stock Alert</h2>
      <p>The following product is running low on stock:</p>
      <p><strong>Product:</strong> {html.escape(after['name'])}</p>
      <p><strong>Current Stock:</strong> {after['quantity']} units</p>
      <p><strong>SKU:</strong> {html.escape(after.get('sku') or 'N/A')}</p>
      <p><strong>Price:</strong> {format_currency(after['price'], currency)}</p>
      <p>Please restock this item soon to avoid running out.</p>
    </div>
    """
    try:
        mailer.send(shop.email, f"Low Stock Alert: {after['name']}", body,
                    sender_name="BillingSoft Alerts")
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Error sending low stock alert: {e}")
        return False
    logger.info(f"Low stock alert sent for: {after['name']}")
    return True


def daily_report_data(db: Database, now=None):
    now = now or datetime.now()
    start = datetime.combine(now.date(), datetime.min.time())
    end = start + timedelta(days=1) - timedelta(seconds=1)
    bills = [Bill.from_dict(b) for b in db.list_bills_between(
        start.isoformat(timespec='seconds'), end.isoformat(timespec='seconds'))]
    return {
        'date': now.date(),
        'bills': bills,
        'total_sales': sum(b.total for b in bills),
        'transactions': len(bills),
        'items_sold': sum(b.item_count for b in bills),
    }


def daily_sales_report(db: Database, mailer: Mailer, now=None, currency="₹"):
    """Mail today's totals and the last ten transactions to the shop."""
    data = daily_report_data(db, now)
    shop = db.get_shop_profile()
    if not shop.email:
        logger.info("No email configured for daily report")
        return None

    if data['bills']:
        recent = _rows([f"{b.created:%H:%M}", len(b.items), format_currency(b.total, currency)]
                       for b in reversed(data['bills'][-10:]))
        transactions = f"""
      <h3>Recent Transactions</h3>
      <table style="width: 100%; border-collapse: collapse;">
        <tr><th>Time</th><th>Items</th><th>Amount</th></tr>
        {recent}
      </table>"""
    else:
        transactions = "<p>No transactions today.</p>"

    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2>Daily Sales Report</h2>
      <p>{data['date']:%A, %B %d, %Y}</p>
      <p><strong>Total Sales:</strong> {format_currency(data['total_sales'], currency)}</p>
      <p><strong>Transactions:</strong> {data['transactions']}</p>
      <p><strong>Items Sold:</strong> {data['items_sold']}</p>
      {transactions}
    </div>
    """
    try:
        mailer.send(shop.email, f"Daily Sales Report - {data['date']:%b %d, %Y}", body,
                    sender_name="BillingSoft Reports")
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Error sending daily report: {e}")
        return None
    logger.info("Daily report sent successfully")
    return data


def weekly_backup(db: Database, now=None, keep_days=28):
    """Snapshot every collection, then drop backups older than keep_days."""
    now = now or datetime.now()
    payload = {
        'timestamp': now.isoformat(timespec='seconds'),
        'data': {name: db.dump_collection(name) for name in BACKUP_COLLECTIONS},
    }
    backup_id = db.create_backup(payload)
    cutoff = (now - timedelta(days=keep_days)).isoformat(timespec='seconds')
    removed = db.delete_backups_before(cutoff)
    logger.info(f"Backup {backup_id} completed; pruned {removed} old backup(s)")
    return backup_id


def restore_backup(db: Database, backup_id, session):
    """Merge a backup back into the store. Admins only."""
    if session is None:
        raise AuthError("auth/unauthenticated", "User must be authenticated")
    if session.role != ADMIN:
        raise PermissionDenied("Only admins can restore backups")

    backup = db.get_backup(backup_id)
    if backup is None:
        raise StoreError(f"Backup not found: {backup_id}")

    restored = {}
    for name, documents in backup['data'].items():
        restored[name] = db.restore_collection(name, documents)
    logger.info(f"Backup {backup_id} restored: {restored}")
    return restored


def render_receipt_pdf(db: Database, bill_id, file_path, currency="₹"):
    """Build the PDF receipt for a stored bill."""
    doc = db.get_bill(bill_id)
    if doc is None:
        raise StoreError(f"Bill not found: {bill_id}")
    return generate_pdf_receipt(Bill.from_dict(doc), db.get_shop_profile(), file_path, currency)
