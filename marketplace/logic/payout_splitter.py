# marketplace/logic/payout_splitter.py
"""
Splits what a buyer paid for one store's part of an order between the
seller, the platform (commission) and the delivery agent.

The delivery agent always earns ``actual_delivery_fee``. It comes from the
buyer when they paid delivery, and from the seller when the store's free
delivery threshold was met (minus any out-of-area surcharge the buyer still
paid).
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .models import OrderPayoutData, PayoutBreakdown

logger = logging.getLogger(__name__)


class PayoutError(ValueError):
    pass


class InvalidCommissionRate(PayoutError):
    pass


class PayoutInvariantError(PayoutError):
    pass


def validate_commission_rate(rate) -> float:
    try:
        rate = float(rate)
    except (TypeError, ValueError):
        raise InvalidCommissionRate(f"commission rate is not a number: {rate!r}")
    if not 0 <= rate <= 1:
        raise InvalidCommissionRate(f"commission rate must be within [0, 1], got {rate}")
    return rate


def compute_commission(revenue: int, rate: float) -> int:
    amount = Decimal(revenue) * Decimal(str(rate))
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def delivery_agent_earning(order: OrderPayoutData) -> int:
    return order.actual_delivery_fee or 0


def seller_absorbed_delivery_fee(order: OrderPayoutData) -> int:
    if not order.free_delivery_applied:
        return 0
    return max((order.actual_delivery_fee or 0) - (order.customer_delivery_fee or 0), 0)


def split_payout(order: OrderPayoutData, commission_rate: Optional[float] = 0) -> PayoutBreakdown:
    """Payout breakdown for one order (or one store's share of an order).

    Raises ``InvalidCommissionRate`` for a rate outside [0, 1] and
    ``PayoutInvariantError`` if the result would pay the seller a negative amount.
    """
    rate = validate_commission_rate(commission_rate or 0)

    revenue = order.subtotal if order.subtotal is not None else order.total
    commission = compute_commission(revenue, rate)
    absorbed = seller_absorbed_delivery_fee(order)
    payout = revenue - commission - absorbed

    if payout < 0:
        raise PayoutInvariantError(
            f"order {order.order_id}: payout would be negative "
            f"(revenue={revenue}, commission={commission}, absorbed={absorbed})"
        )

    return PayoutBreakdown(
        revenue=revenue,
        commission=commission,
        delivery_fee_absorbed_by_seller=absorbed,
        payout=payout,
        commission_rate=rate,
        delivery_agent_earning=delivery_agent_earning(order),
    )


def check_reconciliation(order: OrderPayoutData, breakdown: PayoutBreakdown) -> bool:
    """True when every dinar the buyer and seller put in is accounted for."""
    split = breakdown.commission + breakdown.delivery_fee_absorbed_by_seller + breakdown.payout
    if split != breakdown.revenue:
        logger.error("Order %s does not reconcile: split=%s revenue=%s",
                     order.order_id, split, breakdown.revenue)
        return False
    paid_by_customer = breakdown.revenue + (order.customer_delivery_fee or 0)
    distributed = breakdown.payout + breakdown.commission + breakdown.delivery_agent_earning
    if distributed != paid_by_customer:
        logger.error("Order %s does not reconcile: distributed=%s paid=%s",
                     order.order_id, distributed, paid_by_customer)
        return False
    return True


def payout_data_from_allocation(order_id, row) -> OrderPayoutData:
    """One store's share of an order, from an ``order_delivery_allocations`` row."""
    subtotal = int(row["subtotal"]) if row.get("subtotal") is not None else None
    customer_fee = int(row.get("customer_delivery_fee") or 0)
    return OrderPayoutData(
        order_id=str(order_id),
        subtotal=subtotal,
        total=(subtotal or 0) + customer_fee,
        free_delivery_applied=bool(row.get("free_delivery_applied")),
        actual_delivery_fee=int(row.get("actual_delivery_fee") or 0),
        customer_delivery_fee=customer_fee,
        store_id=str(row["store_id"]) if row.get("store_id") else None,
    )
