import os

os.environ["SOCKETIO_ASYNC_MODE"] = "threading"
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("SUPABASE_SERVICE_KEY", None)

import pytest

from marketplace.logic.models import CartLine, StoreDeliveryConfig


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self._rows = []
        self.rowcount = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.executed.append((" ".join(sql.split()), params))
        rows = self.conn.handler(sql, params)
        self._rows = list(rows or [])
        self.rowcount = len(self._rows)

    def fetchall(self):
        return self._rows

    def fetchone(self):
        return self._rows[0] if self._rows else None


class FakeConnection:
    """psycopg2 stand-in; ``handler(sql, params)`` returns the rows of each statement."""

    def __init__(self, handler=None):
        self.handler = handler or (lambda sql, params: [])
        self.executed = []
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self, cursor_factory=None):
        return FakeCursor(self)

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True

    def statements(self, keyword):
        return [(sql, params) for sql, params in self.executed if keyword in sql]


@pytest.fixture
def fake_conn():
    return FakeConnection()


@pytest.fixture
def app():
    from marketplace.main import app as flask_app
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(monkeypatch):
    """login('seller') makes every token resolve to a user with those roles."""
    from marketplace.utils import helpers

    def _login(*roles, user_id="user-1"):
        monkeypatch.setattr(helpers, "get_user_from_token",
                            lambda header: (user_id, list(roles), None))
        return {"Authorization": "Bearer test-token"}

    return _login


def make_config(store_id, *, offers=False, threshold=None, base_fee=500, region="Oran"):
    return StoreDeliveryConfig(
        store_id=store_id,
        offers_free_delivery=offers,
        free_delivery_threshold=threshold,
        base_delivery_fee=base_fee,
        service_region=region,
        store_name=f"Boutique {store_id}",
    )


def make_line(store_id, price, quantity=1, product_id=None):
    return CartLine(
        product_id=product_id or f"p-{store_id}-{price}",
        variant_id=None,
        unit_price=price,
        quantity=quantity,
        owning_store_id=store_id,
    )
