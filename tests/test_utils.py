import csv
import io
import json

import pytest

from models import Bill, Cart, Product, ShopProfile
from utils import (
    export_collection, export_data, format_currency, format_date, generate_barcode,
    generate_txt_receipt, import_data, import_inventory_csv,
)


def _bill(tax_enabled=True):
    cart = Cart()
    catalog = [Product("p1", "Notebook", 100.0, 5), Product("p2", "Pen", 50.0, 5)]
    cart.add_line("p1", catalog)
    cart.add_line("p2", catalog)
    return Bill.create(cart.lines, tax_enabled, 500, "upi", bill_id="a1b2c3d4e5f6a7b8",
                       created_at="2025-01-05T14:30:00")


def test_format_helpers():
    assert format_currency(236) == "₹236.00"
    assert format_currency(5.5, "$") == "$5.50"
    assert format_date("2025-01-05T14:30:00") == "Jan 05, 2025 14:30"
    assert format_date("not a date") == "not a date"


def test_generate_barcode():
    code = generate_barcode()
    assert len(code) == 13
    assert code.isdigit()


def test_txt_receipt_with_gst(tmp_path):
    shop = ShopProfile(name="Corner Shop", phone="555-0100", gst_number="29ABCDE")
    path = generate_txt_receipt(_bill(), shop, str(tmp_path / "r.txt"))
    text = open(path, encoding="utf-8").read()
    assert "Corner Shop" in text
    assert "Tel: 555-0100" in text
    assert "GST: 29ABCDE" in text
    assert "Bill #: E5F6A7B8" in text
    assert "Payment: UPI" in text
    assert "GST (18%):" in text
    assert "₹177.00" in text
    assert "Thank you for your purchase!" in text


def test_txt_receipt_without_gst(tmp_path):
    path = generate_txt_receipt(_bill(tax_enabled=False), ShopProfile(), str(tmp_path / "r.txt"))
    text = open(path, encoding="utf-8").read()
    assert "GST (18%)" not in text
    assert "My Store" in text
    assert "₹150.00" in text


def test_export_and_import_data(db, add_product, tmp_path):
    add_product("Rice", price=55.0, quantity=4)
    db.append_bill(_bill())
    path = export_data(db, str(tmp_path / "export.json"))

    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    assert set(data) == {"products", "bills", "settings", "exportedAt"}
    assert data["bills"][0]["paymentMethod"] == "upi"

    # import only brings products back, as new entries
    assert import_data(db, path) == 1
    assert [p["name"] for p in db.list_products()] == ["Rice", "Rice"]
    assert len(db.list_bills()) == 1


def test_inventory_csv_import_matches_barcode(db, add_product, tmp_path):
    add_product("Old Name", price=10.0, quantity=1, barcode="0000000000017")
    path = tmp_path / "inventory.csv"
    path.write_text(
        "barcode,name,sku,category,price,quantity\n"
        "0000000000017,Rice,R-1,Grocery,55.5,20\n"
        ",Tea,,Drinks,30,7\n",
        encoding="utf-8",
    )
    assert import_inventory_csv(db, str(path)) == 2
    products = {p["name"]: p for p in db.list_products()}
    assert set(products) == {"Rice", "Tea"}
    assert products["Rice"]["barcode"] == "0000000000017"
    assert products["Rice"]["quantity"] == 20
    assert products["Tea"]["barcode"] is None


def test_inventory_csv_import_rejects_bad_rows(db, tmp_path):
    path = tmp_path / "inventory.csv"
    path.write_text("name,price\nRice,10\n", encoding="utf-8")
    with pytest.raises(ValueError):
        import_inventory_csv(db, str(path))


def test_export_collection(db, add_product):
    add_product("Rice")
    db.append_bill(_bill())

    products = json.loads(export_collection(db, "products"))
    assert products[0]["name"] == "Rice"

    rows = list(csv.DictReader(io.StringIO(export_collection(db, "bills", "csv"))))
    assert rows[0]["paymentMethod"] == "upi"
    assert json.loads(rows[0]["items"])[0]["name"] == "Notebook"

    assert export_collection(db, "users", "csv") == ""
    with pytest.raises(ValueError):
        export_collection(db, "orders")


def test_import_data_rejects_invalid_products(db, add_product, tmp_path):
    add_product("Rice", quantity=4)
    path = tmp_path / "export.json"
    path.write_text(json.dumps({"products": [
        {"name": "Tea", "price": 30, "quantity": 2},
        {"name": "Old", "price": 5, "quantity": -3},
    ]}), encoding="utf-8")

    with pytest.raises(ValueError):
        import_data(db, str(path))
    assert [p["name"] for p in db.list_products()] == ["Rice"]


def test_users_export_leaves_out_password_hashes(db):
    db.save_user("u1", {"name": "Ann", "email": "ann@example.com", "role": "Admin",
                        "password_hash": "$2b$12$secret"})

    users = json.loads(export_collection(db, "users"))
    assert users[0]["email"] == "ann@example.com"
    assert "password_hash" not in users[0]
    assert "$2b$12$secret" not in export_collection(db, "users", "csv")
    # backups still carry the hash so a restore can log users back in
    assert db.dump_collection("users")[0]["password_hash"] == "$2b$12$secret"


def test_receipt_shows_the_rate_actually_charged(tmp_path):
    cart = Cart()
    cart.add_line("p1", [Product("p1", "Notebook", 100.0, 5)])
    bill = Bill.create(cart.lines, True, 200, "cash", tax_rate=0.05)
    text = open(generate_txt_receipt(bill, ShopProfile(), str(tmp_path / "r.txt")),
                encoding="utf-8").read()
    assert "GST (5%):" in text
    assert "GST (18%)" not in text
    assert "₹5.00" in text
