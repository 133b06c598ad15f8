import os
import tempfile

# must be set before config is imported
os.environ["DB_FILE"] = os.path.join(tempfile.mkdtemp(), "import.db")
os.environ["SOCKETIO_ASYNC_MODE"] = "threading"
os.environ["ADMIN_PIN"] = "2580"
os.environ["ENVIRONMENT"] = "test"

import pytest

import menu
import store

ADMIN = {"X-Admin-Pin": "2580", "X-Admin-Name": "staff"}


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(store, "DB_FILE", str(tmp_path / "shop.db"))
    store.init_db()
    yield


@pytest.fixture
def seeded_menu():
    menu.initialize_defaults()


@pytest.fixture
def client():
    from app import app
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def admin_headers():
    return dict(ADMIN)


def expire_code(code):
    with store.get_conn() as conn:
        conn.execute("UPDATE menu_codes SET expires_at=? WHERE code=?", ("2000-01-01 00:00:00", code))
        conn.commit()


def set_created_at(order_id, ts):
    with store.get_conn() as conn:
        conn.execute("UPDATE orders SET created_at=? WHERE id=?", (ts, order_id))
        conn.commit()
