# main.py
import argparse
import getpass
import json
import logging
import os
import sys
from pathlib import Path

from auth import CASHIER, ROLES, AuthError, IdentityProvider, require_view
from checkout import CheckoutCoordinator
from config import Preferences, load_config
from database import Database
from jobs import (
    Mailer, daily_sales_report, low_stock_alert, render_receipt_pdf, restore_backup,
    send_bill_email, weekly_backup,
)
from logger import configure_logger
from models import PAYMENT_METHODS, Bill, BillingError, Cart, Product
from reports import (
    dashboard_stats, filter_inventory, generate_inventory_report, generate_pdf_report,
    generate_sales_report, sales_analytics, sales_summary, top_products,
)
from utils import (
    export_collection, export_data, format_currency, format_date, generate_barcode,
    generate_txt_receipt, import_data, import_inventory_csv, import_inventory_excel,
)

logger = logging.getLogger("billing.main")


def setup_directories(config):
    """Create required directories if they don't exist."""
    for dir_path in (config['receipt']['receipt_dir'], config['export']['default_dir']):
        path = Path(dir_path)
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created directory: {path}")


class App:
    """Everything one terminal needs: store, preferences, signed-in user."""
    def __init__(self, config, args):
        self.config = config
        self.args = args
        self.db = Database(config['database']['name'])
        self.prefs = Preferences(config['preferences_file'])
        self.identity = IdentityProvider(self.db)
        self.mailer = Mailer(config['email'])
        self.currency = config['currency']
        self.threshold = config['low_stock_threshold']
        self._session = None

    def session(self, view):
        """Log in on first use and check the user may open view."""
        if self._session is None:
            email = self.args.email or input("Email: ")
            password = self.args.password or os.environ.get("BILLING_PASSWORD") \
                or getpass.getpass("Password: ")
            self._session = self.identity.login(email, password)
            logger.info(f"Logged in as {self._session.email} ({self._session.role})")
        require_view(self._session, view)
        return self._session

    def money(self, amount):
        return format_currency(amount, self.currency)

    def alert_low_stock(self, before, after):
        low_stock_alert(self.db, self.mailer, before, after, self.threshold, self.currency)


def _print_products(app, products):
    for p in products:
        print(f"{p['id']}  {p['name'][:30]:30} {p.get('sku') or '-':10} "
              f"{app.money(p['price']):>10} {p['quantity']:>6}  {p.get('barcode') or '-'}")


def cmd_products(app, args):
    app.session("pos")
    products = app.db.search_products(args.search) if args.search else app.db.list_products()
    products = filter_inventory(products, category=args.category, stock=args.stock,
                                threshold=app.threshold)
    if not products:
        print("No products match your filters")
    _print_products(app, products)


def cmd_low_stock(app, args):
    app.session("inventory")
    products = app.db.get_low_stock_products(app.threshold)
    if not products:
        print("All products are well stocked")
    _print_products(app, products)


def cmd_add_product(app, args):
    app.session("inventory")
    fields = {
        'name': args.name,
        'price': args.price,
        'quantity': args.quantity,
        'sku': args.sku,
        'category': args.category,
        'barcode': args.barcode or generate_barcode(),
    }
    Product(id=None, **fields)
    product_id = app.db.create_product(fields)
    print(f"Product added successfully! ({product_id})")


def cmd_update_product(app, args):
    app.session("inventory")
    before = app.db.get_product(args.id)
    if before is None:
        raise BillingError(f"Product not found: {args.id}")
    fields = {k: getattr(args, k) for k in ('name', 'price', 'quantity', 'sku', 'category', 'barcode')
              if getattr(args, k) is not None}
    Product.from_row({**before, **fields})
    app.db.update_product(args.id, fields)
    app.alert_low_stock(before, app.db.get_product(args.id))
    print("Product updated successfully!")


def cmd_delete_product(app, args):
    app.session("inventory")
    if not app.db.delete_product(args.id):
        raise BillingError(f"Product not found: {args.id}")
    print("Product deleted successfully!")


def _parse_item(spec):
    product_id, _, qty = spec.partition(':')
    return product_id, int(qty or 1)


def cmd_sell(app, args):
    app.session("pos")
    catalog = [Product.from_row(p) for p in app.db.list_products()]
    cart = Cart()
    for spec in args.item:
        product_id, qty = _parse_item(spec)
        cart.add_line(product_id, catalog)
        if qty > 1:
            cart.change_quantity(product_id, qty - 1)

    tax_enabled = app.prefs.tax_enabled and not args.no_tax
    before = {p.id: p.to_dict() for p in catalog}
    coordinator = CheckoutCoordinator(
        app.db, cart, tax_enabled=tax_enabled, tax_rate=app.config['tax_rate'],
        on_bill=lambda bill: send_bill_email(app.db, app.mailer, bill, app.currency))
    totals = coordinator.open()
    print(f"Subtotal: {app.money(totals['subtotal'])}  Tax: {app.money(totals['tax'])}  "
          f"Total: {app.money(totals['total'])}")

    bill = coordinator.submit(args.paid, args.method)
    for product_id in before:
        after = app.db.get_product(product_id)
        if after and after['quantity'] != before[product_id]['quantity']:
            app.alert_low_stock(before[product_id], after)

    print(f"Sale completed successfully! Bill #{bill.number}  Change: {app.money(bill.change)}")
    _write_receipt(app, bill, args.pdf)


def _write_receipt(app, bill, pdf=False, output=None):
    receipt_dir = app.config['receipt']['receipt_dir']
    os.makedirs(receipt_dir, exist_ok=True)
    if pdf:
        path = output or os.path.join(receipt_dir, f"receipt_{bill.number}.pdf")
        render_receipt_pdf(app.db, bill.id, path, app.currency)
    else:
        path = output or os.path.join(receipt_dir, f"receipt_{bill.number}.txt")
        generate_txt_receipt(bill, app.db.get_shop_profile(), path, app.currency)
    print(f"Receipt saved to {path}")


def cmd_receipt(app, args):
    app.session("pos")
    doc = app.db.get_bill(args.bill_id)
    if doc is None:
        raise BillingError(f"Bill not found: {args.bill_id}")
    _write_receipt(app, Bill.from_dict(doc), args.pdf, args.output)


def cmd_bills(app, args):
    app.session("reports")
    bills = app.db.list_bills(newest_first=True)[:args.limit]
    if not bills:
        print("No bills yet")
    for b in bills:
        print(f"#{b['id'][-6:].upper()}  {format_date(b['createdAt'])}  {len(b['items'])} items  "
              f"{b['paymentMethod']:5} {app.money(b['total']):>12}")


def cmd_dashboard(app, args):
    session = app.session("dashboard")
    stats = dashboard_stats(app.db.list_products(), app.db.list_bills(), session.role,
                            threshold=app.threshold)
    print(f"Today's sales:   {app.money(stats['today_sales'])}")
    print(f"Products:        {stats['total_products']}")
    print(f"Low stock:       {stats['low_stock_count']}")
    print(f"Inventory value: {app.money(stats['inventory_value'])}")
    for b in stats['recent_bills']:
        print(f"  Bill #{b['id'][-6:].upper()}  {format_date(b['createdAt'])}  {app.money(b['total'])}")
    if stats['low_stock_alerts'] is None:
        print("Contact admin for inventory details")
    else:
        for alert in stats['low_stock_alerts']:
            print(f"  {alert['name']}: {alert['quantity']} left ({alert['status']})")


def cmd_report(app, args):
    app.session("reports")
    bills = app.db.list_bills()
    if args.kind == 'analytics':
        print(json.dumps(sales_analytics(bills, args.start, args.end), indent=2, ensure_ascii=False))
        return
    if args.kind == 'summary':
        summary = sales_summary(bills)
        for key, value in summary.items():
            print(f"{key.replace('_', ' ').title():18} {value}")
        for rank, (name, qty) in enumerate(top_products(bills), start=1):
            print(f"#{rank} {name}: {qty} sold")
        return

    file_path = args.output if args.format != 'pdf' else None
    if args.kind == 'sales':
        data, summary = generate_sales_report(bills, file_path, args.format)
        title = "Sales Report"
    else:
        data, summary = generate_inventory_report(app.db.list_products(), file_path, args.format,
                                                  app.threshold)
        title = "Inventory Report"
    if data is None:
        print(summary)
        return
    if args.format == 'pdf' and args.output:
        generate_pdf_report(title, data, summary, args.output, app.currency)
    print(json.dumps({k: v for k, v in summary.items() if k != 'low_stock_items'},
                     indent=2, default=str))


def cmd_export(app, args):
    app.session("settings")
    if args.collection:
        print(export_collection(app.db, args.collection, args.format))
        return
    path = args.output or os.path.join(app.config['export']['default_dir'], "store-backup.json")
    export_data(app.db, path)
    print(f"Data exported successfully! ({path})")


def cmd_import(app, args):
    app.session("settings")
    if args.file.endswith('.json'):
        count = import_data(app.db, args.file)
    elif args.file.endswith(('.xlsx', '.xls')):
        count = import_inventory_excel(app.db, args.file)
    else:
        count = import_inventory_csv(app.db, args.file)
    print(f"Data imported successfully! ({count} products)")


def cmd_settings(app, args):
    app.session("settings")
    profile = app.db.get_shop_profile()
    changes = {attr: getattr(args, opt) for attr, opt in (('name', 'name'), ('address', 'address'),
                                                         ('phone', 'phone'), ('email', 'shop_email'),
                                                         ('gst_number', 'gst_number'))
               if getattr(args, opt) is not None}
    if changes:
        for key, value in changes.items():
            setattr(profile, key, value)
        app.db.save_shop_profile(profile)
        print("Settings saved successfully!")
    print(json.dumps(app.db.get_shop_profile().to_dict(), indent=2, ensure_ascii=False))
    print(f"Tax enabled: {app.prefs.tax_enabled}  Dark mode: {app.prefs.dark_mode}")


def cmd_toggle_tax(app, args):
    print(f"GST {'enabled' if app.prefs.toggle_tax() else 'disabled'}")


def cmd_toggle_dark_mode(app, args):
    print(f"Dark mode {'on' if app.prefs.toggle_dark_mode() else 'off'}")


def cmd_signup(app, args):
    password = args.new_password or getpass.getpass("New password: ")
    session = app.identity.signup(args.name, args.new_email, password, args.role)
    print(f"Account created successfully! Welcome, {session.name} ({session.role})")


def cmd_users(app, args):
    session = app.session("users")
    for u in app.identity.list_users(session):
        print(f"{u['id']}  {u.get('name') or u['email']:20} {u['email']:30} {u['role']:8} {u['status']}")


def cmd_backup(app, args):
    backup_id = weekly_backup(app.db, keep_days=app.config['database']['backup_keep_days'])
    print(f"Backup created: {backup_id}")


def cmd_restore(app, args):
    session = app.session("settings")
    restored = restore_backup(app.db, args.backup_id, session)
    print(f"Backup restored successfully: {restored}")


def cmd_daily_report(app, args):
    data = daily_sales_report(app.db, app.mailer, currency=app.currency)
    if data is None:
        print("Daily report not sent")
    else:
        print(f"Daily report sent: {data['transactions']} transactions, "
              f"{app.money(data['total_sales'])}")


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Retail billing and POS")
    parser.add_argument("--config", help="Path to configuration file", default="config.json")
    parser.add_argument("--debug", help="Enable debug mode", action="store_true")
    parser.add_argument("--email", help="Login email")
    parser.add_argument("--password", help="Login password (or BILLING_PASSWORD)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("products", help="List products")
    p.add_argument("--search", default="")
    p.add_argument("--category")
    p.add_argument("--stock", choices=["low", "out", "ok"])
    p.set_defaults(func=cmd_products)

    sub.add_parser("low-stock", help="Products at or below the low stock threshold").set_defaults(
        func=cmd_low_stock)

    for name, func in (("add-product", cmd_add_product), ("update-product", cmd_update_product)):
        p = sub.add_parser(name)
        if name == "update-product":
            p.add_argument("id")
        required = name == "add-product"
        p.add_argument("--name", required=required)
        p.add_argument("--price", type=float, required=required)
        p.add_argument("--quantity", type=int, required=required)
        p.add_argument("--sku")
        p.add_argument("--category")
        p.add_argument("--barcode")
        p.set_defaults(func=func)

    p = sub.add_parser("delete-product")
    p.add_argument("id")
    p.set_defaults(func=cmd_delete_product)

    p = sub.add_parser("sell", help="Ring up a sale")
    p.add_argument("--item", action="append", required=True, help="PRODUCT_ID[:QTY]")
    p.add_argument("--paid", type=float, required=True)
    p.add_argument("--method", choices=PAYMENT_METHODS, default="cash")
    p.add_argument("--no-tax", action="store_true")
    p.add_argument("--pdf", action="store_true", help="PDF receipt instead of text")
    p.set_defaults(func=cmd_sell)

    p = sub.add_parser("receipt")
    p.add_argument("bill_id")
    p.add_argument("--pdf", action="store_true")
    p.add_argument("--output")
    p.set_defaults(func=cmd_receipt)

    p = sub.add_parser("bills")
    p.add_argument("--limit", type=int, default=10)
    p.set_defaults(func=cmd_bills)

    sub.add_parser("dashboard").set_defaults(func=cmd_dashboard)

    p = sub.add_parser("report")
    p.add_argument("kind", choices=["summary", "sales", "inventory", "analytics"])
    p.add_argument("--output")
    p.add_argument("--format", choices=["csv", "excel", "pdf"], default="csv")
    p.add_argument("--start")
    p.add_argument("--end")
    p.set_defaults(func=cmd_report)

    p = sub.add_parser("export")
    p.add_argument("--output")
    p.add_argument("--collection", choices=["products", "bills", "users", "shop"])
    p.add_argument("--format", choices=["json", "csv"], default="json")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("import")
    p.add_argument("file")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("settings")
    p.add_argument("--name")
    p.add_argument("--address")
    p.add_argument("--phone")
    p.add_argument("--email", dest="shop_email")
    p.add_argument("--gst", dest="gst_number")
    p.set_defaults(func=cmd_settings)

    sub.add_parser("toggle-tax").set_defaults(func=cmd_toggle_tax)
    sub.add_parser("toggle-dark-mode").set_defaults(func=cmd_toggle_dark_mode)

    p = sub.add_parser("signup")
    p.add_argument("--name", required=True)
    p.add_argument("--new-email", required=True)
    p.add_argument("--new-password")
    p.add_argument("--role", choices=ROLES, default=CASHIER)
    p.set_defaults(func=cmd_signup)

    sub.add_parser("users").set_defaults(func=cmd_users)
    sub.add_parser("backup").set_defaults(func=cmd_backup)

    p = sub.add_parser("restore")
    p.add_argument("backup_id")
    p.set_defaults(func=cmd_restore)

    sub.add_parser("daily-report").set_defaults(func=cmd_daily_report)
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)
    config = load_config(args.config)
    if args.debug:
        config['logging']['level'] = "DEBUG"
    configure_logger(config)
    setup_directories(config)

    app = App(config, args)
    try:
        args.func(app, args)
    except (BillingError, AuthError, ValueError) as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"Error: {getattr(e, 'message', e)}", file=sys.stderr)
        return 1
    finally:
        app.db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
