# marketplace/logic/free_delivery.py
"""
Per-store free delivery evaluation.

Thresholds are local to each store: spend in one store never counts
toward another store's threshold, even inside the same order.
"""
from typing import Iterable, List

from .models import StoreCartAggregate, StoreDeliveryConfig


def evaluate_free_delivery(aggregate: StoreCartAggregate, config: StoreDeliveryConfig) -> StoreCartAggregate:
    """Returns ``aggregate`` with threshold progress and the base fee the buyer owes.

    - no offer (or no threshold): buyer pays the base fee, progress 0
    - threshold met: fee 0, progress 100, ``free_delivery_applied`` so the
      store absorbs the base fee when settling with the delivery agent
    - below threshold: buyer pays the base fee and sees how much is missing
    """
    threshold = config.free_delivery_threshold
    base_fee = config.base_delivery_fee
    total = aggregate.total_amount

    if not config.offers_free_delivery or threshold is None:
        return aggregate.evolve(
            offers_free_delivery=config.offers_free_delivery,
            free_delivery_threshold=threshold,
            amount_to_free_delivery=None,
            percentage_to_threshold=0,
            base_fee=base_fee,
            fee=base_fee,
            free_delivery_applied=False,
        )

    if total >= threshold:
        return aggregate.evolve(
            offers_free_delivery=True,
            free_delivery_threshold=threshold,
            amount_to_free_delivery=None,
            percentage_to_threshold=100,
            base_fee=base_fee,
            fee=0,
            free_delivery_applied=True,
        )

    percentage = (100 * max(total, 0)) // threshold
    return aggregate.evolve(
        offers_free_delivery=True,
        free_delivery_threshold=threshold,
        amount_to_free_delivery=threshold - total,
        percentage_to_threshold=min(max(percentage, 0), 99),
        base_fee=base_fee,
        fee=base_fee,
        free_delivery_applied=False,
    )


def incentive_stores(aggregates: Iterable[StoreCartAggregate], window: int) -> List[StoreCartAggregate]:
    """Stores close enough to their threshold to nudge the buyer (within ``window`` DA)."""
    return [
        a for a in aggregates
        if a.amount_to_free_delivery is not None and 0 < a.amount_to_free_delivery <= window
    ]
