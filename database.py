# database.py
import json
import logging
import sqlite3
import uuid
from datetime import datetime

from models import Product, ShopProfile, StoreError

logger = logging.getLogger("billing.database")

PRODUCT_FIELDS = ('name', 'sku', 'category', 'price', 'quantity', 'barcode')
USER_FIELDS = ('name', 'email', 'role', 'status', 'password_hash')
COLLECTIONS = ('products', 'bills', 'users', 'shop')

PRODUCT_COLUMNS = "id, name, sku, category, price, quantity, barcode, created_at AS createdAt"
USER_COLUMNS = "id, name, email, role, status, password_hash, created_at AS createdAt"


def new_id():
    return uuid.uuid4().hex


class Database:
    """
    Document-style store on top of SQLite.

    Products, bills, users, shop settings and backups each live in their own
    table and are handed out as plain dicts keyed by opaque string ids. Any
    sqlite3 failure is logged and re-raised as StoreError.
    """
    def __init__(self, db_name: str = "billing.db"):
        try:
            self.conn = sqlite3.connect(db_name)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {db_name}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self._create_tables()

    def close(self):
        self.conn.close()

    def _create_tables(self):
        self._run("""
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            sku TEXT,
            category TEXT,
            price REAL NOT NULL DEFAULT 0,
            quantity INTEGER NOT NULL DEFAULT 0,
            barcode TEXT,
            created_at TEXT
        )
        """)
        # Bills are stored whole, in their export shape
        self._run("""
        CREATE TABLE IF NOT EXISTS bills (
            id TEXT PRIMARY KEY,
            created_at TEXT NOT NULL,
            document TEXT NOT NULL
        )
        """)
        self._run("""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            name TEXT,
            email TEXT UNIQUE,
            role TEXT,
            status TEXT DEFAULT 'active',
            password_hash TEXT,
            created_at TEXT
        )
        """)
        self._run("""
        CREATE TABLE IF NOT EXISTS shop (
            key TEXT PRIMARY KEY,
            document TEXT NOT NULL
        )
        """)
        self._run("""
        CREATE TABLE IF NOT EXISTS backups (
            id TEXT PRIMARY KEY,
            timestamp TEXT NOT NULL,
            document TEXT NOT NULL
        )
        """)

    def _run(self, sql, params=()):
        """Execute one statement and commit; returns the cursor."""
        try:
            with self.conn:
                return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            logger.error(f"Store operation failed: {e}")
            raise StoreError(str(e)) from e

    def _fetchall(self, sql, params=()):
        return [dict(row) for row in self._run(sql, params).fetchall()]

    def _fetchone(self, sql, params=()):
        row = self._run(sql, params).fetchone()
        return dict(row) if row else None

    # Product operations
    def list_products(self):
        """Return all products as list of dicts."""
        return self._fetchall(f"SELECT {PRODUCT_COLUMNS} FROM products ORDER BY name")

    def get_product(self, product_id):
        return self._fetchone(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id = ?", (product_id,))

    def get_product_by_barcode(self, barcode):
        return self._fetchone(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE barcode = ?",
                              (str(barcode),))

    def create_product(self, fields: dict):
        """Insert a new product and return its generated id."""
        product_id = fields.get('id') or new_id()
        created_at = fields.get('createdAt') or datetime.now().isoformat(timespec='seconds')
        self._run("""
        INSERT INTO products (id, name, sku, category, price, quantity, barcode, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (product_id, fields['name'], fields.get('sku'), fields.get('category'),
              float(fields.get('price', 0)), int(fields.get('quantity', 0)),
              fields.get('barcode'), created_at))
        return product_id

    def update_product(self, product_id, fields: dict):
        """Partial update; unknown keys are ignored. False if the product is gone."""
        updates = {k: v for k, v in fields.items() if k in PRODUCT_FIELDS}
        if not updates:
            return self.get_product(product_id) is not None
        assignments = ", ".join(f"{k} = ?" for k in updates)
        cur = self._run(f"UPDATE products SET {assignments} WHERE id = ?",
                        (*updates.values(), product_id))
        return cur.rowcount > 0

    def delete_product(self, product_id):
        cur = self._run("DELETE FROM products WHERE id = ?", (product_id,))
        return cur.rowcount > 0

    def decrement_stock(self, product_id, qty: int):
        """
        Take qty units off a product only if that many are on hand.
        Returns False when the product is missing or short.
        """
        cur = self._run("""
        UPDATE products
        SET quantity = quantity - ?
        WHERE id = ? AND quantity >= ?
        """, (qty, product_id, qty))
        return cur.rowcount > 0

    def search_products(self, keyword: str):
        """Search products by name, SKU or barcode."""
        kw = f"%{keyword}%"
        return self._fetchall(f"""
        SELECT {PRODUCT_COLUMNS} FROM products
        WHERE name LIKE ? OR sku LIKE ? OR barcode LIKE ?
        ORDER BY name
        """, (kw, kw, kw))

    def get_low_stock_products(self, threshold: int = 10):
        return self._fetchall(f"""
        SELECT {PRODUCT_COLUMNS} FROM products
        WHERE quantity <= ?
        ORDER BY quantity ASC
        """, (threshold,))

    # Bill operations
    def append_bill(self, bill):
        """Write a bill to the ledger. Bills are never updated afterwards."""
        doc = bill.to_dict()
        self._run("INSERT INTO bills (id, created_at, document) VALUES (?, ?, ?)",
                  (doc['id'], doc['createdAt'], json.dumps(doc)))
        return doc['id']

    def list_bills(self, newest_first: bool = False):
        """All bills in creation order."""
        order = "DESC" if newest_first else "ASC"
        rows = self._fetchall(
            f"SELECT document FROM bills ORDER BY created_at {order}, rowid {order}")
        return [json.loads(r['document']) for r in rows]

    def get_bill(self, bill_id):
        row = self._fetchone("SELECT document FROM bills WHERE id = ?", (bill_id,))
        return json.loads(row['document']) if row else None

    def list_bills_between(self, start: str, end: str):
        """Bills with start <= createdAt <= end (ISO strings), oldest first."""
        rows = self._fetchall("""
        SELECT document FROM bills
        WHERE created_at >= ? AND created_at <= ?
        ORDER BY created_at, rowid
        """, (start, end))
        return [json.loads(r['document']) for r in rows]

    # Shop settings
    def get_shop_profile(self):
        row = self._fetchone("SELECT document FROM shop WHERE key = 'settings'")
        return ShopProfile.from_dict(json.loads(row['document']) if row else None)

    def save_shop_profile(self, profile: ShopProfile):
        current = self.get_shop_profile().to_dict()
        merged = {**current, **{k: v for k, v in profile.to_dict().items() if v is not None}}
        self._run("""
        INSERT INTO shop (key, document) VALUES ('settings', ?)
        ON CONFLICT(key) DO UPDATE SET document = excluded.document
        """, (json.dumps(merged),))
        return True

    # User operations
    def save_user(self, user_id, fields: dict):
        """Create or merge a user document."""
        existing = self.get_user(user_id)
        if existing is None:
            self._run("""
            INSERT INTO users (id, name, email, role, status, password_hash, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (user_id, fields.get('name'), fields.get('email'), fields.get('role'),
                  fields.get('status', 'active'), fields.get('password_hash'),
                  fields.get('createdAt') or datetime.now().isoformat(timespec='seconds')))
            return True
        return self.update_user(user_id, fields)

    def get_user(self, user_id):
        return self._fetchone(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", (user_id,))

    def get_user_by_email(self, email):
        return self._fetchone(f"SELECT {USER_COLUMNS} FROM users WHERE lower(email) = lower(?)",
                              (email,))

    def list_users(self):
        return self._fetchall(f"SELECT {USER_COLUMNS} FROM users ORDER BY created_at")

    def update_user(self, user_id, fields: dict):
        updates = {k: v for k, v in fields.items() if k in USER_FIELDS}
        if not updates:
            return self.get_user(user_id) is not None
        assignments = ", ".join(f"{k} = ?" for k in updates)
        cur = self._run(f"UPDATE users SET {assignments} WHERE id = ?",
                        (*updates.values(), user_id))
        return cur.rowcount > 0

    def delete_user(self, user_id):
        cur = self._run("DELETE FROM users WHERE id = ?", (user_id,))
        return cur.rowcount > 0

    # Whole-collection access for backups and exports
    def dump_collection(self, name: str):
        if name == 'products':
            return self.list_products()
        if name == 'bills':
            return self.list_bills()
        if name == 'users':
            return self.list_users()
        if name == 'shop':
            return [{'id': 'settings', **self.get_shop_profile().to_dict()}]
        raise StoreError(f"Unknown collection: {name}")

    def restore_collection(self, name: str, documents):
        """Merge documents back by id; returns how many were written."""
        documents = list(documents)
        if name == 'products':
            # a bad product aborts the restore before anything is written
            for doc in documents:
                Product.from_fields(doc)
        count = 0
        for doc in documents:
            doc = dict(doc)
            doc_id = doc.get('id')
            if name == 'products':
                if self.get_product(doc_id):
                    self.update_product(doc_id, doc)
                else:
                    self.create_product(doc)
            elif name == 'bills':
                if self.get_bill(doc_id) is None:
                    self._run("INSERT INTO bills (id, created_at, document) VALUES (?, ?, ?)",
                              (doc_id, doc['createdAt'], json.dumps(doc)))
            elif name == 'users':
                self.save_user(doc_id, doc)
            elif name == 'shop':
                doc.pop('id', None)
                self.save_shop_profile(ShopProfile.from_dict(doc))
            else:
                raise StoreError(f"Unknown collection: {name}")
            count += 1
        return count

    # Backups
    def create_backup(self, payload: dict):
        backup_id = new_id()
        self._run("INSERT INTO backups (id, timestamp, document) VALUES (?, ?, ?)",
                  (backup_id, payload['timestamp'], json.dumps(payload)))
        return backup_id

    def list_backups(self):
        rows = self._fetchall("SELECT id, timestamp FROM backups ORDER BY timestamp DESC")
        return rows

    def get_backup(self, backup_id):
        row = self._fetchone("SELECT document FROM backups WHERE id = ?", (backup_id,))
        return json.loads(row['document']) if row else None

    def delete_backups_before(self, timestamp: str):
        cur = self._run("DELETE FROM backups WHERE timestamp < ?", (timestamp,))
        return cur.rowcount
