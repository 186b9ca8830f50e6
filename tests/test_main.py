import logging
import os

import pytest

from database import Database
from main import main

ADMIN_LOGIN = ["--email", "ann@example.com", "--password", "secret1"]
CASHIER_LOGIN = ["--email", "carl@example.com", "--password", "secret2"]


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run the CLI inside tmp_path so config, db, logs and receipts land there."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("BILLING_PASSWORD", raising=False)
    assert main(["signup", "--name", "Ann", "--new-email", "ann@example.com",
                 "--new-password", "secret1", "--role", "Admin"]) == 0
    yield tmp_path
    for handler in logging.getLogger("billing").handlers[:]:
        logging.getLogger("billing").removeHandler(handler)
        handler.close()


def _products():
    db = Database("billing.db")
    try:
        return db.list_products()
    finally:
        db.close()


def test_sell_from_command_line(workdir, capsys):
    assert main(ADMIN_LOGIN + ["add-product", "--name", "Rice", "--price", "100",
                               "--quantity", "5"]) == 0
    pid = _products()[0]["id"]

    assert main(ADMIN_LOGIN + ["sell", "--item", f"{pid}:2", "--paid", "250"]) == 0
    out = capsys.readouterr().out
    assert "Total: ₹236.00" in out
    assert "Change: ₹14.00" in out

    assert _products()[0]["quantity"] == 3
    receipts = os.listdir(workdir / "receipts")
    assert len(receipts) == 1
    assert receipts[0].endswith(".txt")


def test_underpaid_sale_fails_cleanly(workdir, capsys):
    main(ADMIN_LOGIN + ["add-product", "--name", "Rice", "--price", "100", "--quantity", "5"])
    pid = _products()[0]["id"]

    assert main(ADMIN_LOGIN + ["sell", "--item", pid, "--paid", "10"]) == 1
    assert "Error: Insufficient payment amount" in capsys.readouterr().err
    assert _products()[0]["quantity"] == 5


def test_cashier_is_kept_out_of_reports(workdir, capsys):
    assert main(["signup", "--name", "Carl", "--new-email", "carl@example.com",
                 "--new-password", "secret2"]) == 0
    assert main(CASHIER_LOGIN + ["products"]) == 0
    assert main(CASHIER_LOGIN + ["report", "summary"]) == 1
    assert "Error:" in capsys.readouterr().err


def test_wrong_password(workdir, capsys):
    assert main(["--email", "ann@example.com", "--password", "nope123", "products"]) == 1
    assert "Incorrect password." in capsys.readouterr().err


def test_toggle_tax_changes_next_sale(workdir, capsys):
    main(ADMIN_LOGIN + ["add-product", "--name", "Rice", "--price", "100", "--quantity", "5"])
    pid = _products()[0]["id"]
    assert main(["toggle-tax"]) == 0
    assert main(ADMIN_LOGIN + ["sell", "--item", pid, "--paid", "100"]) == 0
    assert "Total: ₹100.00" in capsys.readouterr().out


def test_product_search_and_low_stock_listing(workdir, capsys):
    main(ADMIN_LOGIN + ["add-product", "--name", "Basmati Rice", "--price", "100",
                        "--quantity", "50", "--barcode", "8901234567890"])
    main(ADMIN_LOGIN + ["add-product", "--name", "Green Tea", "--price", "30", "--quantity", "2"])
    capsys.readouterr()

    assert main(ADMIN_LOGIN + ["products", "--search", "8901234"]) == 0
    out = capsys.readouterr().out
    assert "Basmati Rice" in out
    assert "Green Tea" not in out

    assert main(ADMIN_LOGIN + ["low-stock"]) == 0
    out = capsys.readouterr().out
    assert "Green Tea" in out
    assert "Basmati Rice" not in out
