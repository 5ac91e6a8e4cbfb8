import pytest

from marketplace.routes import checkout
from marketplace.routes.checkout import parse_cart_lines

from conftest import FakeConnection

STORES = {
    "s-oran": {"id": "s-oran", "name": "Atlas", "offers_free_delivery": True,
               "free_delivery_threshold": 8000, "base_delivery_fee": 500, "storage_city": "Oran"},
    "s-alger": {"id": "s-alger", "name": "Casbah", "offers_free_delivery": False,
                "free_delivery_threshold": None, "base_delivery_fee": 400, "storage_city": "Alger"},
}


@pytest.fixture
def stores_db(monkeypatch):
    conn = FakeConnection(lambda sql, params: [STORES[s] for s in params[0] if s in STORES]
                          if "FROM stores" in sql else [])
    monkeypatch.setattr(checkout, "get_db_connection", lambda: conn)
    return conn


def _cart(*lines):
    return [{"productId": f"p{i}", "unitPrice": price, "quantity": qty, "owningStoreId": store}
            for i, (store, price, qty) in enumerate(lines)]


def test_quote_per_store(client, stores_db):
    resp = client.post("/api/checkout/calculate-delivery-fee", json={
        "cart": _cart(("s-oran", 4500, 2), ("s-alger", 1200, 1)),
        "destinationRegion": "Oran",
    })

    assert resp.status_code == 200
    body = resp.get_json()
    fees = {s["storeId"]: s for s in body["feeByStore"]}
    assert fees["s-oran"]["fee"] == 0
    assert fees["s-oran"]["freeDeliveryApplied"] is True
    assert fees["s-alger"]["fee"] == 400 + 300
    assert body["totalFee"] == 700
    assert body["hasOutsideServiceAreaProducts"] is True
    assert body["degraded"] is False
    assert stores_db.closed


def test_empty_cart_is_free_and_skips_database(client, monkeypatch):
    def no_db():
        raise AssertionError("database should not be queried")

    monkeypatch.setattr(checkout, "get_db_connection", no_db)
    resp = client.post("/api/checkout/calculate-delivery-fee", json={"cart": [], "destinationRegion": "Oran"})
    assert resp.status_code == 200
    assert resp.get_json()["totalFee"] == 0


def test_database_unavailable_gives_degraded_quote(client, monkeypatch):
    monkeypatch.setattr(checkout, "get_db_connection", lambda: None)
    resp = client.post("/api/checkout/calculate-delivery-fee", json={
        "cart": _cart(("s-oran", 20000, 1)),
        "destinationRegion": "Oran",
    })

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["degraded"] is True
    assert body["totalFee"] == 500
    assert body["feeByStore"] == []


@pytest.mark.parametrize("payload", [
    {"destinationRegion": "Oran"},
    {"cart": "not-a-list", "destinationRegion": "Oran"},
    {"cart": [], "destinationRegion": "  "},
    {"cart": [{"productId": "p1", "unitPrice": -5, "owningStoreId": "s"}], "destinationRegion": "Oran"},
    {"cart": [{"productId": "p1", "unitPrice": 100, "quantity": 0, "owningStoreId": "s"}], "destinationRegion": "Oran"},
])
def test_malformed_request_rejected(client, stores_db, payload):
    resp = client.post("/api/checkout/calculate-delivery-fee", json=payload)
    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_free_delivery_status_lists_incentives(client, stores_db):
    resp = client.post("/api/checkout/free-delivery-status", json={
        "cart": _cart(("s-oran", 6000, 1), ("s-alger", 1000, 1), ("s-gone", 500, 1)),
    })

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["degraded"] is False
    assert [s["storeId"] for s in body["incentives"]] == ["s-oran"]
    assert body["incentives"][0]["amountToFreeDelivery"] == 2000
    assert body["anomalies"][0]["storeId"] == "s-gone"


def test_free_delivery_status_degraded(client, monkeypatch):
    monkeypatch.setattr(checkout, "get_db_connection", lambda: None)
    resp = client.post("/api/checkout/free-delivery-status", json={"cart": _cart(("s-oran", 6000, 1))})
    assert resp.status_code == 200
    assert resp.get_json() == {"stores": [], "incentives": [], "anomalies": [], "degraded": True}


def test_parse_cart_lines_accepts_alternate_keys():
    lines = parse_cart_lines([{"id": "p1", "price": "1500", "storeId": 7, "variantId": 3}])
    assert lines[0].product_id == "p1"
    assert lines[0].unit_price == 1500
    assert lines[0].quantity == 1
    assert lines[0].owning_store_id == "7"
    assert lines[0].variant_id == "3"


@pytest.mark.parametrize("price", [True, "abc", 10.5, float("inf"), None])
def test_parse_cart_lines_rejects_bad_prices(price):
    with pytest.raises(ValueError):
        parse_cart_lines([{"productId": "p1", "unitPrice": price, "owningStoreId": "s"}])


@pytest.mark.parametrize("url", [
    "/api/checkout/calculate-delivery-fee",
    "/api/checkout/free-delivery-status",
])
def test_non_object_body_rejected(client, stores_db, url):
    resp = client.post(url, json=[{"cart": []}])
    assert resp.status_code == 400
    assert "error" in resp.get_json()


@pytest.mark.parametrize("region", [16, ["Oran"], {"name": "Oran"}, True])
def test_non_text_destination_rejected(client, stores_db, region):
    resp = client.post("/api/checkout/calculate-delivery-fee", json={"cart": [], "destinationRegion": region})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "La wilaya de destination est obligatoire"
