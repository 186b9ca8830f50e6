import os
import sys

import pytest

# Modules live at the repo root; make them importable when pytest runs from anywhere.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from database import Database  # noqa: E402


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    yield database
    database.close()


@pytest.fixture
def add_product(db):
    def _add(name="Soap", price=100.0, quantity=5, **extra):
        return db.create_product({"name": name, "price": price, "quantity": quantity, **extra})
    return _add


class FakeMailer:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, to, subject, html_body, sender_name=None):
        if self.fail:
            raise OSError("connection refused")
        self.sent.append({"to": to, "subject": subject, "body": html_body, "sender_name": sender_name})


@pytest.fixture
def mailer():
    return FakeMailer()
