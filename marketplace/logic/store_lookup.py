# marketplace/logic/store_lookup.py
"""
Data-fetch boundary for the delivery fee calculator.

Rows from ``stores`` and ``delivery_fee_configs`` are validated here and
turned into ``StoreDeliveryConfig`` values. Database failures come back as a
``StoreLookupFailed`` result instead of an exception so the calculator can
switch to its fallback fee.
"""
import logging
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras

from .models import StoreDeliveryConfig, StoreLookupFailed, StoreLookupOk, StoreLookupResult

logger = logging.getLogger(__name__)


def _to_int(value, default: Optional[int]) -> Optional[int]:
    if value is None:
        return default
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return default


def build_store_config(row, *, default_base_fee: int, default_region: str) -> StoreDeliveryConfig:
    offers = bool(row.get("offers_free_delivery"))
    threshold = _to_int(row.get("free_delivery_threshold"), None) if offers else None
    if threshold is not None and threshold <= 0:
        threshold = None
    base_fee = _to_int(row.get("base_delivery_fee"), default_base_fee)
    if base_fee is None or base_fee < 0:
        base_fee = default_base_fee
    region = (row.get("storage_city") or "").strip() or default_region
    return StoreDeliveryConfig(
        store_id=str(row["id"]),
        offers_free_delivery=offers,
        free_delivery_threshold=threshold,
        base_delivery_fee=base_fee,
        service_region=region,
        store_name=row.get("name") or "",
    )


def fetch_store_configs(conn, store_ids: Iterable[str], *, default_base_fee: int,
                        default_region: str) -> StoreLookupResult:
    """Reads delivery configs for ``store_ids`` plus the active route surcharges.

    Ids with no matching row are simply missing from the result (partial
    result); the aggregator reports them as anomalies.
    """
    ids = sorted({str(s) for s in store_ids if s})
    if conn is None:
        return StoreLookupFailed("no database connection")

    try:
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            configs = {}
            if ids:
                cur.execute("""
                    SELECT id, name, offers_free_delivery, free_delivery_threshold,
                           base_delivery_fee, storage_city
                    FROM stores
                    WHERE id::text = ANY(%s)
                """, (ids,))
                for row in cur.fetchall():
                    config = build_store_config(row, default_base_fee=default_base_fee,
                                                default_region=default_region)
                    configs[config.store_id] = config

            cur.execute("""
                SELECT from_city, to_wilaya, base_fee
                FROM delivery_fee_configs
                WHERE is_active = TRUE
            """)
            surcharges = {}
            for row in cur.fetchall():
                fee = _to_int(row.get("base_fee"), None)
                if fee is None or fee < 0:
                    continue
                key = ((row.get("from_city") or "").strip().lower(), (row.get("to_wilaya") or "").strip().lower())
                surcharges[key] = fee
    except psycopg2.Error as e:
        logger.error(f"Store config lookup failed: {e}", exc_info=True)
        return StoreLookupFailed(f"database error: {e.__class__.__name__}")

    missing = set(ids) - set(configs)
    if missing:
        logger.warning("Stores without delivery config (stale ids): %s", sorted(missing))
    return StoreLookupOk(configs=configs, route_surcharges=surcharges)
