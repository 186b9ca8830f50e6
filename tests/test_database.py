import sqlite3

import pytest

from database import Database
from models import Bill, Cart, Product, ShopProfile, StoreError


def _bill(name="Rice", price=10.0, created_at="2025-01-05T10:00:00", bill_id=None):
    cart = Cart()
    cart.add_line("p", [Product("p", name, price, 10)])
    return Bill.create(cart.lines, False, price, "cash", bill_id=bill_id, created_at=created_at)


def test_create_and_get_product(db):
    pid = db.create_product({"name": "Rice", "price": 55.5, "quantity": 7, "sku": "R-1",
                             "category": "Grocery", "barcode": "1234567890123"})
    row = db.get_product(pid)
    assert row["name"] == "Rice"
    assert row["price"] == 55.5
    assert row["quantity"] == 7
    assert row["createdAt"]
    assert db.get_product_by_barcode("1234567890123")["id"] == pid


def test_update_product_is_partial(db, add_product):
    pid = add_product("Rice", price=10, quantity=3)
    assert db.update_product(pid, {"price": 12, "unknown": "ignored"}) is True
    row = db.get_product(pid)
    assert row["price"] == 12
    assert row["quantity"] == 3
    assert db.update_product("missing", {"price": 1}) is False


def test_delete_product(db, add_product):
    pid = add_product()
    assert db.delete_product(pid) is True
    assert db.delete_product(pid) is False
    assert db.get_product(pid) is None


def test_decrement_stock_is_conditional(db, add_product):
    pid = add_product(quantity=3)
    assert db.decrement_stock(pid, 2) is True
    assert db.decrement_stock(pid, 2) is False
    assert db.get_product(pid)["quantity"] == 1
    assert db.decrement_stock("missing", 1) is False


def test_search_and_low_stock(db, add_product):
    add_product("Basmati Rice", quantity=50, sku="RICE-B")
    add_product("Green Tea", quantity=2)
    add_product("Salt", quantity=0)
    assert [p["name"] for p in db.search_products("rice")] == ["Basmati Rice"]
    assert [p["name"] for p in db.get_low_stock_products(10)] == ["Salt", "Green Tea"]


def test_bills_are_listed_in_creation_order(db):
    late = _bill("Late", created_at="2025-01-06T09:00:00")
    early = _bill("Early", created_at="2025-01-05T09:00:00")
    db.append_bill(late)
    db.append_bill(early)
    assert [b["items"][0]["name"] for b in db.list_bills()] == ["Early", "Late"]
    assert [b["items"][0]["name"] for b in db.list_bills(newest_first=True)] == ["Late", "Early"]
    assert db.get_bill(late.id)["total"] == late.total
    assert db.get_bill("missing") is None


def test_bills_between(db):
    db.append_bill(_bill(created_at="2025-01-04T23:59:59"))
    inside = _bill(created_at="2025-01-05T12:00:00")
    db.append_bill(inside)
    found = db.list_bills_between("2025-01-05T00:00:00", "2025-01-05T23:59:59")
    assert [b["id"] for b in found] == [inside.id]


def test_bill_ids_are_unique(db):
    bill = _bill(bill_id="same")
    db.append_bill(bill)
    with pytest.raises(StoreError):
        db.append_bill(bill)


def test_shop_profile_defaults_and_merge(db):
    profile = db.get_shop_profile()
    assert profile.name == "My Store"
    assert profile.gst_number == ""
    db.save_shop_profile(ShopProfile(name="Corner Shop", phone="555", gst_number="GST1"))
    saved = db.get_shop_profile()
    assert saved.name == "Corner Shop"
    assert saved.phone == "555"
    assert saved.to_dict()["gstNumber"] == "GST1"


def test_user_documents(db):
    db.save_user("u1", {"name": "Ann", "email": "ann@example.com", "role": "Admin"})
    assert db.get_user_by_email("ANN@example.com")["id"] == "u1"
    db.save_user("u1", {"status": "disabled"})
    user = db.get_user("u1")
    assert user["status"] == "disabled"
    assert user["role"] == "Admin"
    assert db.delete_user("u1") is True
    assert db.list_users() == []


def test_dump_and_restore_collections(db, add_product, tmp_path):
    add_product("Rice")
    db.append_bill(_bill())
    db.save_shop_profile(ShopProfile(name="Corner Shop"))
    dumped = {name: db.dump_collection(name) for name in ("products", "bills", "shop")}

    other = Database(str(tmp_path / "other.db"))
    try:
        for name, docs in dumped.items():
            other.restore_collection(name, docs)
        assert [p["name"] for p in other.list_products()] == ["Rice"]
        assert len(other.list_bills()) == 1
        assert other.get_shop_profile().name == "Corner Shop"
        # restoring twice merges by id
        other.restore_collection("products", dumped["products"])
        other.restore_collection("bills", dumped["bills"])
        assert len(other.list_products()) == 1
        assert len(other.list_bills()) == 1
    finally:
        other.close()


def test_unknown_collection(db):
    with pytest.raises(StoreError):
        db.dump_collection("orders")


def test_backups(db):
    old = db.create_backup({"timestamp": "2025-01-01T02:00:00", "data": {}})
    new = db.create_backup({"timestamp": "2025-02-01T02:00:00", "data": {}})
    assert [b["id"] for b in db.list_backups()] == [new, old]
    assert db.delete_backups_before("2025-01-15T00:00:00") == 1
    assert db.get_backup(old) is None
    assert db.get_backup(new)["timestamp"] == "2025-02-01T02:00:00"


def test_sqlite_errors_become_store_errors(db):
    db.close()
    with pytest.raises(StoreError):
        db.list_products()


def test_store_error_keeps_cause(db):
    db.close()
    with pytest.raises(StoreError) as exc:
        db.get_product("x")
    assert isinstance(exc.value.__cause__, sqlite3.Error)


def test_restore_rejects_invalid_products(db, add_product):
    add_product("Rice", quantity=4)
    with pytest.raises(ValueError):
        db.restore_collection("products", [
            {"id": "new", "name": "Tea", "price": 30, "quantity": 2},
            {"id": "bad", "name": "", "price": 5, "quantity": 1},
        ])
    assert [p["name"] for p in db.list_products()] == ["Rice"]
