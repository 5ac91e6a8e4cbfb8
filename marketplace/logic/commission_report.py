# marketplace/logic/commission_report.py
import logging
from collections import defaultdict

from .payout_splitter import PayoutInvariantError, payout_data_from_allocation, split_payout

logger = logging.getLogger(__name__)


def summarize_commissions(rows, commission_rate: float) -> dict:
    """Commission due/paid over delivered orders, grouped by store.

    ``rows`` are allocation rows joined with their order and store
    (``order_id``, ``store_id``, ``store_name``, ``commission_paid`` plus the
    allocation amounts).

    An allocation that cannot be split (payout would be negative) is left out
    of the totals and listed under ``anomalies``.
    """
    by_store = {}
    totals = defaultdict(int)
    anomalies = []
    order_ids = set()

    for row in rows:
        share = payout_data_from_allocation(row["order_id"], row)
        try:
            breakdown = split_payout(share, commission_rate)
        except PayoutInvariantError as e:
            logger.warning(f"Allocation skipped in commission summary: {e}")
            anomalies.append({"orderId": share.order_id, "storeId": share.store_id, "reason": str(e)})
            continue
        order_ids.add(share.order_id)
        store_id = share.store_id or "unknown"

        if store_id not in by_store:
            by_store[store_id] = {
                "storeId": store_id,
                "storeName": row.get("store_name") or "Boutique inconnue",
                "orderCount": 0,
                "totalSales": 0,
                "commissionDue": 0,
                "commissionPaid": 0,
                "commissionUnpaid": 0,
                "deliveryFeesAbsorbed": 0,
                "sellerPayout": 0,
            }
        store = by_store[store_id]
        store["orderCount"] += 1
        store["totalSales"] += breakdown.revenue
        store["commissionDue"] += breakdown.commission
        store["deliveryFeesAbsorbed"] += breakdown.delivery_fee_absorbed_by_seller
        store["sellerPayout"] += breakdown.payout

        totals["due"] += breakdown.commission
        if row.get("commission_paid"):
            store["commissionPaid"] += breakdown.commission
            totals["paid"] += breakdown.commission
        else:
            store["commissionUnpaid"] += breakdown.commission

    return {
        "commissionRate": commission_rate,
        "totalCommissionDue": totals["due"],
        "totalCommissionPaid": totals["paid"],
        "totalCommissionUnpaid": totals["due"] - totals["paid"],
        "totalOrders": len(order_ids),
        "byStore": sorted(by_store.values(), key=lambda s: s["storeName"]),
        "anomalies": anomalies,
    }
