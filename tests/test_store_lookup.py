import psycopg2

from marketplace.logic.models import StoreLookupFailed, StoreLookupOk
from marketplace.logic.store_lookup import build_store_config, fetch_store_configs

from conftest import FakeConnection

DEFAULTS = {"default_base_fee": 500, "default_region": "Oran"}


def _store_row(store_id, **overrides):
    row = {
        "id": store_id,
        "name": f"Boutique {store_id}",
        "offers_free_delivery": True,
        "free_delivery_threshold": 8000,
        "base_delivery_fee": 400,
        "storage_city": "Alger",
    }
    row.update(overrides)
    return row


def test_build_store_config_reads_row():
    config = build_store_config(_store_row("s1"), **DEFAULTS)
    assert config.store_id == "s1"
    assert config.offers_free_delivery is True
    assert config.free_delivery_threshold == 8000
    assert config.base_delivery_fee == 400
    assert config.service_region == "Alger"


def test_build_store_config_applies_defaults():
    row = _store_row("s1", base_delivery_fee=None, storage_city="  ", free_delivery_threshold=None)
    config = build_store_config(row, **DEFAULTS)
    assert config.base_delivery_fee == 500
    assert config.service_region == "Oran"
    assert config.free_delivery_threshold is None


def test_threshold_ignored_when_offer_disabled_or_not_positive():
    off = build_store_config(_store_row("s1", offers_free_delivery=False), **DEFAULTS)
    zero = build_store_config(_store_row("s2", free_delivery_threshold=0), **DEFAULTS)
    assert off.free_delivery_threshold is None
    assert zero.free_delivery_threshold is None


def test_no_connection_is_a_failed_lookup():
    result = fetch_store_configs(None, ["s1"], **DEFAULTS)
    assert isinstance(result, StoreLookupFailed)
    assert result.ok is False


def test_database_error_is_a_failed_lookup():
    def handler(sql, params):
        raise psycopg2.OperationalError("server closed the connection")

    result = fetch_store_configs(FakeConnection(handler), ["s1"], **DEFAULTS)
    assert isinstance(result, StoreLookupFailed)
    assert "OperationalError" in result.reason


def test_partial_result_and_route_surcharges():
    def handler(sql, params):
        if "FROM stores" in sql:
            return [_store_row("s1")]
        if "FROM delivery_fee_configs" in sql:
            return [
                {"from_city": "Alger", "to_wilaya": " Oran ", "base_fee": 600},
                {"from_city": "Alger", "to_wilaya": "Autre", "base_fee": 900},
                {"from_city": "Alger", "to_wilaya": "Blida", "base_fee": None},
            ]
        return []

    conn = FakeConnection(handler)
    result = fetch_store_configs(conn, ["s1", "s-stale", None], **DEFAULTS)

    assert isinstance(result, StoreLookupOk)
    assert list(result.configs) == ["s1"]
    assert result.route_surcharges == {("alger", "oran"): 600, ("alger", "autre"): 900}
    _, params = conn.statements("FROM stores")[0]
    assert params == (["s-stale", "s1"],)


def test_empty_store_list_skips_store_query():
    conn = FakeConnection()
    result = fetch_store_configs(conn, [], **DEFAULTS)
    assert result.ok
    assert result.configs == {}
    assert conn.statements("FROM stores") == []
