import logging

import pytest

from marketplace.logic.commission_report import summarize_commissions
from marketplace.logic.models import OrderPayoutData, PayoutBreakdown
from marketplace.logic.payout_splitter import (
    InvalidCommissionRate,
    PayoutInvariantError,
    check_reconciliation,
    delivery_agent_earning,
    payout_data_from_allocation,
    split_payout,
)


def _order(subtotal, total, free, actual, customer=None, order_id="o-1"):
    return OrderPayoutData(order_id=order_id, subtotal=subtotal, total=total,
                           free_delivery_applied=free, actual_delivery_fee=actual,
                           customer_delivery_fee=customer)


def test_free_delivery_seller_absorbs_agent_fee():
    order = _order(8500, 8500, True, 500)
    breakdown = split_payout(order, 0)

    assert breakdown.revenue == 8500
    assert breakdown.commission == 0
    assert breakdown.delivery_fee_absorbed_by_seller == 500
    assert breakdown.payout == 8000
    assert breakdown.commission + breakdown.delivery_fee_absorbed_by_seller + breakdown.payout == 8500
    assert check_reconciliation(order, breakdown)


def test_customer_paid_delivery():
    order = _order(5000, 5500, False, 500, customer=500)
    breakdown = split_payout(order, 0)

    assert breakdown.payout == 5000
    assert delivery_agent_earning(order) == 500
    assert breakdown.payout + delivery_agent_earning(order) == order.total
    assert check_reconciliation(order, breakdown)


def test_ten_percent_commission():
    breakdown = split_payout(_order(8500, 8500, True, 500), 0.10)
    assert breakdown.commission == 850
    assert breakdown.payout == 7150
    assert breakdown.commission_rate == 0.10


def test_commission_rounds_half_up():
    breakdown = split_payout(_order(1005, 1005, False, 500, customer=500), 0.1)
    assert breakdown.commission == 101
    assert breakdown.payout == 904


def test_revenue_falls_back_to_total_without_subtotal():
    breakdown = split_payout(_order(None, 4200, False, 0), 0)
    assert breakdown.revenue == 4200
    assert breakdown.payout == 4200


def test_default_rate_is_zero():
    assert split_payout(_order(1000, 1500, False, 500, customer=500)).commission == 0


@pytest.mark.parametrize("rate", [-0.01, 1.5, "abc", float("nan")])
def test_invalid_commission_rate_rejected(rate):
    with pytest.raises(InvalidCommissionRate):
        split_payout(_order(8500, 8500, True, 500), rate)


def test_negative_payout_rejected():
    with pytest.raises(PayoutInvariantError):
        split_payout(_order(300, 300, True, 500), 0)


def test_out_of_area_surcharge_paid_by_buyer_is_not_absorbed():
    # Free delivery on a 12000 DA order shipped Oran -> Alger: base 500 waived,
    # buyer still paid the 300 DA surcharge, agent earns 800.
    order = _order(12000, 12300, True, 800, customer=300)
    breakdown = split_payout(order, 0.05)

    assert breakdown.delivery_fee_absorbed_by_seller == 500
    assert breakdown.delivery_agent_earning == 800
    assert check_reconciliation(order, breakdown)


def test_reconciliation_detects_mismatch():
    order = _order(5000, 5500, False, 500, customer=500)
    breakdown = split_payout(order, 0)
    tampered = _order(5000, 5500, False, 500, customer=0)
    assert not check_reconciliation(tampered, breakdown)


def test_payout_data_from_allocation_row():
    row = {"store_id": "s1", "subtotal": 9000, "customer_delivery_fee": 0,
           "actual_delivery_fee": 500, "free_delivery_applied": True}
    share = payout_data_from_allocation("o-9", row)
    assert share.total == 9000
    assert share.store_id == "s1"
    assert split_payout(share, 0).payout == 8500


def test_commission_summary_groups_by_store():
    rows = [
        {"order_id": "o1", "store_id": "a", "store_name": "Atlas", "subtotal": 10000,
         "customer_delivery_fee": 0, "actual_delivery_fee": 500, "free_delivery_applied": True,
         "commission_paid": True},
        {"order_id": "o2", "store_id": "a", "store_name": "Atlas", "subtotal": 2000,
         "customer_delivery_fee": 500, "actual_delivery_fee": 500, "free_delivery_applied": False,
         "commission_paid": False},
        {"order_id": "o2", "store_id": "b", "store_name": "Bahia", "subtotal": 4000,
         "customer_delivery_fee": 500, "actual_delivery_fee": 500, "free_delivery_applied": False,
         "commission_paid": False},
    ]
    summary = summarize_commissions(rows, 0.1)

    assert summary["totalCommissionDue"] == 1600
    assert summary["totalCommissionPaid"] == 1000
    assert summary["totalCommissionUnpaid"] == 600
    assert summary["totalOrders"] == 2
    atlas, bahia = summary["byStore"]
    assert atlas["orderCount"] == 2
    assert atlas["totalSales"] == 12000
    assert atlas["deliveryFeesAbsorbed"] == 500
    assert atlas["sellerPayout"] == 12000 - 1200 - 500
    assert bahia["commissionUnpaid"] == 400


def test_every_reconciliation_mismatch_is_logged(caplog):
    order = _order(5000, 5500, False, 500, customer=500)
    uneven_split = PayoutBreakdown(revenue=5000, commission=0, delivery_fee_absorbed_by_seller=0,
                                   payout=4900, commission_rate=0, delivery_agent_earning=500)
    unpaid_fee = _order(5000, 5500, False, 500, customer=0)

    with caplog.at_level(logging.ERROR, logger="marketplace.logic.payout_splitter"):
        assert not check_reconciliation(order, uneven_split)
        assert not check_reconciliation(unpaid_fee, split_payout(order, 0))

    assert len(caplog.records) == 2
    assert all("does not reconcile" in r.getMessage() for r in caplog.records)


def test_commission_summary_skips_unsplittable_allocation():
    rows = [
        {"order_id": "o1", "store_id": "a", "store_name": "Atlas", "subtotal": 5000,
         "customer_delivery_fee": 500, "actual_delivery_fee": 500, "free_delivery_applied": False,
         "commission_paid": False},
        # Store absorbs a 900 DA delivery on a 300 DA sale.
        {"order_id": "o2", "store_id": "b", "store_name": "Bahia", "subtotal": 300,
         "customer_delivery_fee": 0, "actual_delivery_fee": 900, "free_delivery_applied": True,
         "commission_paid": False},
    ]
    summary = summarize_commissions(rows, 0.1)

    assert summary["totalCommissionDue"] == 500
    assert summary["totalOrders"] == 1
    assert [s["storeId"] for s in summary["byStore"]] == ["a"]
    assert len(summary["anomalies"]) == 1
    assert summary["anomalies"][0]["orderId"] == "o2"
    assert summary["anomalies"][0]["storeId"] == "b"
