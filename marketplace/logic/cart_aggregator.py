# marketplace/logic/cart_aggregator.py
import logging
from typing import Dict, Iterable, List, Mapping, Tuple

from .models import CartAnomaly, CartLine, StoreCartAggregate, StoreDeliveryConfig

logger = logging.getLogger(__name__)

MISSING_STORE = "missing_store"
UNKNOWN_STORE = "unknown_store"


def aggregate_cart(
    lines: Iterable[CartLine],
    configs: Mapping[str, StoreDeliveryConfig],
) -> Tuple[Dict[str, StoreCartAggregate], List[CartAnomaly]]:
    """Groups cart lines by owning store and sums ``unit_price * quantity``.

    Lines whose store is missing, or has no readable configuration (store
    deleted, stale id), are left out of the totals and returned as anomalies
    so the caller can warn the buyer. An empty cart gives ``({}, [])``.
    """
    totals: Dict[str, int] = {}
    anomalies: List[CartAnomaly] = []

    for line in lines:
        store_id = line.owning_store_id
        if not store_id:
            anomalies.append(CartAnomaly(line.product_id, line.variant_id, None, MISSING_STORE))
            continue
        if store_id not in configs:
            anomalies.append(CartAnomaly(line.product_id, line.variant_id, store_id, UNKNOWN_STORE))
            continue
        totals[store_id] = totals.get(store_id, 0) + line.line_total

    if anomalies:
        logger.warning("Cart lines excluded from delivery computation: %s",
                       [(a.product_id, a.reason) for a in anomalies])

    aggregates = {}
    for store_id, total in totals.items():
        config = configs[store_id]
        aggregates[store_id] = StoreCartAggregate(
            store_id=store_id,
            total_amount=total,
            offers_free_delivery=config.offers_free_delivery,
            free_delivery_threshold=config.free_delivery_threshold,
            base_fee=config.base_delivery_fee,
            store_name=config.store_name,
        )
    return aggregates, anomalies
