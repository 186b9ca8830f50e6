# models.py
import uuid
from datetime import datetime

TAX_RATE = 0.18
PAYMENT_METHODS = ("cash", "card", "upi")


class BillingError(Exception):
    """Base class for errors raised by the billing core."""


class CartError(BillingError, ValueError):
    pass


class ProductNotFoundError(CartError):
    pass


class StockLimitError(CartError):
    pass


class CheckoutError(BillingError, ValueError):
    pass


class EmptyCartError(CheckoutError):
    pass


class InsufficientPaymentError(CheckoutError):
    pass


class CheckoutStateError(CheckoutError):
    pass


class StoreError(BillingError):
    """A read or write against the backing store failed."""


class Product:
    """Represents a product record fetched from the catalog."""
    def __init__(self, id, name, price, quantity, sku=None, category=None,
                 barcode=None, created_at=None):
        if not name or not str(name).strip():
            raise ValueError("Product name is required.")
        if float(price) < 0:
            raise ValueError("Price cannot be negative.")
        if int(quantity) < 0:
            raise ValueError("Quantity cannot be negative.")
        self.id = id
        self.name = name
        self.price = float(price)
        self.quantity = int(quantity)
        self.sku = sku or None
        self.category = category or None
        self.barcode = str(barcode) if barcode else None
        self.created_at = created_at

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            name=row['name'],
            price=row['price'],
            quantity=row['quantity'],
            sku=row.get('sku'),
            category=row.get('category'),
            barcode=row.get('barcode'),
            created_at=row.get('createdAt') or row.get('created_at'),
        )

    @classmethod
    def from_fields(cls, fields):
        """Validate an incoming product document (import, restore); raises ValueError."""
        return cls(
            id=fields.get('id'),
            name=fields.get('name'),
            price=fields.get('price') or 0,
            quantity=fields.get('quantity') or 0,
            sku=fields.get('sku'),
            category=fields.get('category'),
            barcode=fields.get('barcode'),
            created_at=fields.get('createdAt'),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'sku': self.sku,
            'category': self.category,
            'price': self.price,
            'quantity': self.quantity,
            'barcode': self.barcode,
            'createdAt': self.created_at,
        }

    def __repr__(self):
        return f"Product({self.id!r}, {self.name!r}, price={self.price}, quantity={self.quantity})"


class CartLine:
    """One line in the current cart, priced at the moment it was added."""
    def __init__(self, product_id, name, price: float, quantity: int, max_quantity: int):
        self.product_id = product_id
        self.name = name
        self.price = price
        self.quantity = quantity
        self.max_quantity = max_quantity

    @property
    def line_total(self):
        return self.price * self.quantity

    def __repr__(self):
        return (f"CartLine({self.product_id!r}, {self.name!r}, "
                f"qty={self.quantity}/{self.max_quantity})")


def calculate_totals(lines, tax_enabled: bool, tax_rate: float = TAX_RATE):
    """
    Derive subtotal, tax and total from cart lines.
    Pure: the lines are only read. Rounding is left to display code.
    """
    subtotal = sum(line.price * line.quantity for line in lines)
    tax = subtotal * tax_rate if tax_enabled else 0
    return {
        'subtotal': subtotal,
        'tax': tax,
        'total': subtotal + tax,
    }


def calculate_change(total: float, paid: float):
    """Change shown while the cashier types the paid amount."""
    return max(paid - total, 0)


class Cart:
    """
    Holds the lines of one selling session.

    Quantities stay within [1, max_quantity] where max_quantity is the
    stock level seen when the product was first added. Rejected mutations
    raise a CartError and leave the cart untouched.
    """
    def __init__(self):
        self._lines = {}

    def __len__(self):
        return len(self._lines)

    def __iter__(self):
        return iter(list(self._lines.values()))

    @property
    def lines(self):
        return list(self._lines.values())

    @property
    def is_empty(self):
        return not self._lines

    def get(self, product_id):
        return self._lines.get(product_id)

    def add_line(self, product_id, catalog):
        """
        Add one unit of a product, looked up in the caller's catalog snapshot.
        Raises ProductNotFoundError or StockLimitError.
        """
        product = next((p for p in catalog if p.id == product_id), None)
        if product is None:
            raise ProductNotFoundError("Product not found.")

        line = self._lines.get(product_id)
        if line is not None:
            if line.quantity >= product.quantity:
                raise StockLimitError("Cannot add more. Stock limit reached.")
            line.quantity += 1
            return line

        if product.quantity <= 0:
            raise StockLimitError(f"{product.name} is out of stock.")
        line = CartLine(product.id, product.name, product.price, 1, product.quantity)
        self._lines[product_id] = line
        return line

    def change_quantity(self, product_id, delta: int):
        """Apply delta to a line; dropping to zero removes it."""
        line = self._lines.get(product_id)
        if line is None:
            return None

        new_qty = line.quantity + delta
        if new_qty <= 0:
            del self._lines[product_id]
            return None
        if new_qty > line.max_quantity:
            raise StockLimitError("Stock limit reached")
        line.quantity = new_qty
        return line

    def remove_line(self, product_id):
        self._lines.pop(product_id, None)

    def clear(self):
        self._lines = {}

    def totals(self, tax_enabled: bool, tax_rate: float = TAX_RATE):
        return calculate_totals(self.lines, tax_enabled, tax_rate)


class BillItem:
    """Point-in-time copy of a sold line; not tied to the live product."""
    def __init__(self, name, price: float, quantity: int):
        self.name = name
        self.price = float(price)
        self.quantity = int(quantity)

    @property
    def amount(self):
        return self.price * self.quantity

    def to_dict(self):
        return {'name': self.name, 'price': self.price, 'quantity': self.quantity}

    @classmethod
    def from_dict(cls, data):
        return cls(data['name'], data['price'], data['quantity'])


class Bill:
    """
    Durable record of a completed sale.

    Built through Bill.create() so the money fields are always derived from
    the items; never edited after it has been written to the ledger.
    """
    def __init__(self, id, items, subtotal, tax, gst_applied, total, paid,
                 change, payment_method, created_at):
        self.id = id
        self.items = list(items)
        self.subtotal = subtotal
        self.tax = tax
        self.gst_applied = gst_applied
        self.total = total
        self.paid = paid
        self.change = change
        self.payment_method = payment_method
        self.created_at = created_at

    @classmethod
    def create(cls, lines, tax_enabled: bool, paid: float, payment_method: str,
               tax_rate: float = TAX_RATE, bill_id=None, created_at=None):
        if payment_method not in PAYMENT_METHODS:
            raise CheckoutError(f"Unknown payment method: {payment_method}")
        calc = calculate_totals(lines, tax_enabled, tax_rate)
        if paid < calc['total']:
            raise InsufficientPaymentError("Insufficient payment amount")
        return cls(
            id=bill_id or uuid.uuid4().hex,
            items=[BillItem(line.name, line.price, line.quantity) for line in lines],
            subtotal=calc['subtotal'],
            tax=calc['tax'],
            gst_applied=bool(tax_enabled),
            total=calc['total'],
            paid=float(paid),
            change=paid - calc['total'],
            payment_method=payment_method,
            created_at=created_at or datetime.now().isoformat(timespec='seconds'),
        )

    @property
    def number(self):
        return self.id[-8:].upper()

    @property
    def short_number(self):
        return self.id[-6:].upper()

    @property
    def created(self):
        return datetime.fromisoformat(self.created_at)

    @property
    def tax_rate(self):
        """Rate actually charged on this bill, recovered from its amounts."""
        if not self.gst_applied or not self.subtotal:
            return 0.0
        return round(self.tax / self.subtotal, 4)

    @property
    def item_count(self):
        return sum(item.quantity for item in self.items)

    def to_dict(self):
        """Export shape shared with backups, receipts and notifications."""
        return {
            'id': self.id,
            'items': [item.to_dict() for item in self.items],
            'subtotal': self.subtotal,
            'tax': self.tax,
            'gstApplied': self.gst_applied,
            'total': self.total,
            'paid': self.paid,
            'change': self.change,
            'paymentMethod': self.payment_method,
            'createdAt': self.created_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            items=[BillItem.from_dict(it) for it in data.get('items', [])],
            subtotal=data['subtotal'],
            tax=data.get('tax', 0),
            gst_applied=bool(data.get('gstApplied', False)),
            total=data['total'],
            paid=data['paid'],
            change=data.get('change', 0),
            payment_method=data.get('paymentMethod'),
            created_at=data['createdAt'],
        )


class ShopProfile:
    """Shop details printed on receipts and used for notifications."""
    DEFAULTS = {
        'name': 'My Store',
        'address': '',
        'phone': '',
        'email': '',
        'gstNumber': '',
    }

    def __init__(self, name='My Store', address='', phone='', email='', gst_number=''):
        self.name = name
        self.address = address
        self.phone = phone
        self.email = email
        self.gst_number = gst_number

    @classmethod
    def from_dict(cls, data):
        merged = {**cls.DEFAULTS, **(data or {})}
        return cls(merged['name'], merged['address'], merged['phone'],
                   merged['email'], merged['gstNumber'])

    def to_dict(self):
        return {
            'name': self.name,
            'address': self.address,
            'phone': self.phone,
            'email': self.email,
            'gstNumber': self.gst_number,
        }
