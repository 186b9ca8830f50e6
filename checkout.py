# checkout.py
import logging
from enum import Enum

from database import Database
from models import (
    TAX_RATE, Bill, Cart, CheckoutError, CheckoutStateError, EmptyCartError,
    Product, StoreError, calculate_totals,
)

logger = logging.getLogger("billing.checkout")


class CheckoutState(Enum):
    IDLE = "idle"
    REVIEWING = "reviewing"
    VALIDATING = "validating"
    COMMITTING = "committing"
    COMPLETED = "completed"


class CheckoutCoordinator:
    """
    Runs one sale at a time for a selling session: review the cart, take
    payment, take stock off the catalog and write the bill.

    The commit is best effort. Each stock decrement is written on its own
    and nothing is rolled back if a later write fails. Lines whose product
    was deleted, or whose live stock no longer covers them, are left out of
    the stock update but still billed.
    """
    def __init__(self, db: Database, cart: Cart, tax_enabled: bool = True,
                 tax_rate: float = TAX_RATE, on_bill=None):
        self.db = db
        self.cart = cart
        self.tax_enabled = tax_enabled
        self.tax_rate = tax_rate
        self.on_bill = on_bill
        self.state = CheckoutState.IDLE
        self.last_bill = None
        self.skipped_lines = []

    def totals(self):
        return calculate_totals(self.cart.lines, self.tax_enabled, self.tax_rate)

    def open(self):
        """Start reviewing the cart; returns the totals to show."""
        if self.cart.is_empty:
            raise EmptyCartError("Cart is empty")
        self.state = CheckoutState.REVIEWING
        return self.totals()

    def cancel(self):
        if self.state in (CheckoutState.REVIEWING, CheckoutState.VALIDATING):
            self.state = CheckoutState.IDLE

    def submit(self, paid: float, payment_method: str):
        """
        Validate the payment, commit the sale and return the stored Bill.

        Raises InsufficientPaymentError (back to reviewing, nothing written)
        or StoreError (stock already decremented stays decremented).
        """
        if self.state is not CheckoutState.REVIEWING:
            raise CheckoutStateError(f"Cannot submit payment while {self.state.value}")

        self.state = CheckoutState.VALIDATING
        requested = self.cart.lines
        try:
            bill = Bill.create(requested, self.tax_enabled, paid, payment_method,
                               tax_rate=self.tax_rate)
        except CheckoutError:
            self.state = CheckoutState.REVIEWING
            raise

        carted = {line.product_id for line in requested}
        try:
            live = {p['id']: Product.from_row(p) for p in self.db.list_products()
                    if p['id'] in carted}
            valid = [line for line in requested if line.product_id in live]
            removed = len(requested) - len(valid)
            if removed:
                logger.warning(f"Removed {removed} invalid item(s) from cart")

            self.state = CheckoutState.COMMITTING
            self.skipped_lines = [line for line in requested if line.product_id not in live]
            for line in valid:
                if not self._take_stock(line, live[line.product_id]):
                    self.skipped_lines.append(line)

            self.db.append_bill(bill)
        except StoreError as e:
            logger.error(f"Checkout aborted, stock changes already written are kept: {e}")
            self.state = CheckoutState.IDLE
            raise
        except ValueError as e:
            logger.error(f"Checkout aborted on an invalid catalog entry: {e}")
            self.state = CheckoutState.IDLE
            raise

        self.state = CheckoutState.COMPLETED
        self.last_bill = bill
        self.cart.clear()
        logger.info(f"Sale completed: bill {bill.number}, total {bill.total:.2f}, "
                    f"{len(bill.items)} line(s)")

        if self.on_bill is not None:
            try:
                self.on_bill(bill)
            except Exception as e:
                logger.error(f"New bill hook failed for {bill.number}: {e}")

        self.state = CheckoutState.IDLE
        return bill

    def _take_stock(self, line, product):
        if product.quantity < line.quantity:
            logger.warning(f"Skipping stock update for {line.name}: "
                           f"{product.quantity} on hand, {line.quantity} sold")
            return False
        if not self.db.decrement_stock(line.product_id, line.quantity):
            logger.warning(f"Stock for {line.name} changed during checkout; not decremented")
            return False
        return True
