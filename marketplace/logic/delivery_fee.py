# marketplace/logic/delivery_fee.py
import logging
from typing import Iterable, List, Mapping, Optional, Tuple

from .cart_aggregator import aggregate_cart
from .free_delivery import evaluate_free_delivery
from .models import (
    CartLine,
    DeliveryQuote,
    StoreCartAggregate,
    StoreDeliveryConfig,
    StoreLookupResult,
)

logger = logging.getLogger(__name__)

FALLBACK_DESTINATION = "Autre"


def _norm(region: Optional[str]) -> str:
    return (region or "").strip().lower()


def route_surcharge(
    from_city: str,
    to_wilaya: str,
    route_surcharges: Mapping[Tuple[str, str], int],
    default_surcharge: int,
) -> int:
    """Surcharge for shipping out of ``from_city``: exact route, then the "Autre" row, then the default."""
    exact = route_surcharges.get((_norm(from_city), _norm(to_wilaya)))
    if exact is not None:
        return exact
    fallback = route_surcharges.get((_norm(from_city), _norm(FALLBACK_DESTINATION)))
    if fallback is not None:
        return fallback
    return default_surcharge


def apply_service_area(
    aggregate: StoreCartAggregate,
    config: StoreDeliveryConfig,
    destination_region: str,
    route_surcharges: Mapping[Tuple[str, str], int],
    default_surcharge: int,
) -> StoreCartAggregate:
    # Free delivery only waives the base fee, never the out-of-area part.
    if _norm(destination_region) == _norm(config.service_region):
        return aggregate.evolve(surcharge=0, outside_service_area=False)
    surcharge = route_surcharge(config.service_region, destination_region, route_surcharges, default_surcharge)
    return aggregate.evolve(
        surcharge=surcharge,
        fee=aggregate.fee + surcharge,
        outside_service_area=True,
    )


def fallback_quote(default_fee: int, reason: str) -> DeliveryQuote:
    logger.warning("Delivery fee degraded mode (%s): charging default fee %s", reason, default_fee)
    return DeliveryQuote(
        total_fee=default_fee,
        fee_by_store=[],
        has_outside_service_area_products=False,
        anomalies=[],
        degraded=True,
    )


def calculate_delivery_fee(
    lines: Iterable[CartLine],
    destination_region: str,
    lookup: StoreLookupResult,
    *,
    default_fee: int,
    out_of_area_surcharge: int,
) -> DeliveryQuote:
    """Computes the delivery fee of a whole cart for ``destination_region``.

    ``lookup`` is what the store lookup returned for the stores in the cart.
    When it failed the quote falls back to ``default_fee`` with no per-store
    breakdown, so checkout can proceed with a conservative charge.
    """
    if not lookup.ok:
        return fallback_quote(default_fee, lookup.reason)

    aggregates, anomalies = aggregate_cart(lines, lookup.configs)

    fee_by_store: List[StoreCartAggregate] = []
    for store_id, aggregate in aggregates.items():
        config = lookup.configs[store_id]
        evaluated = evaluate_free_delivery(aggregate, config)
        evaluated = apply_service_area(
            evaluated, config, destination_region, lookup.route_surcharges, out_of_area_surcharge
        )
        fee_by_store.append(evaluated)

    total_fee = sum(s.fee for s in fee_by_store)
    return DeliveryQuote(
        total_fee=total_fee,
        fee_by_store=fee_by_store,
        has_outside_service_area_products=any(s.outside_service_area for s in fee_by_store),
        anomalies=anomalies,
        degraded=False,
    )
