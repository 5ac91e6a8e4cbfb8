"""
Free delivery threshold evaluation.

Guards against:
1. Off-by-one at the threshold boundary
2. Progress leaving [0, 100]
3. Thresholds leaking between stores of the same cart
"""
from marketplace.logic.cart_aggregator import aggregate_cart
from marketplace.logic.free_delivery import evaluate_free_delivery, incentive_stores
from marketplace.logic.models import StoreCartAggregate

from conftest import make_config, make_line


def _evaluate(total, **config):
    config = make_config("s", **config)
    return evaluate_free_delivery(StoreCartAggregate(store_id="s", total_amount=total), config)


def test_store_without_offer_pays_base_fee():
    result = _evaluate(20000, offers=False, base_fee=500)
    assert result.amount_to_free_delivery is None
    assert result.percentage_to_threshold == 0
    assert result.fee == 500
    assert result.free_delivery_applied is False


def test_offer_without_threshold_behaves_like_no_offer():
    result = _evaluate(20000, offers=True, threshold=None)
    assert result.amount_to_free_delivery is None
    assert result.percentage_to_threshold == 0
    assert result.fee == 500


def test_one_dinar_below_threshold():
    result = _evaluate(7999, offers=True, threshold=8000)
    assert result.amount_to_free_delivery == 1
    assert result.percentage_to_threshold == 99
    assert result.fee == 500
    assert result.free_delivery_applied is False


def test_exactly_at_threshold_is_free():
    result = _evaluate(8000, offers=True, threshold=8000)
    assert result.amount_to_free_delivery is None
    assert result.percentage_to_threshold == 100
    assert result.fee == 0
    assert result.free_delivery_applied is True
    assert result.base_fee == 500


def test_above_threshold_stays_at_100_percent():
    result = _evaluate(30000, offers=True, threshold=8000)
    assert result.percentage_to_threshold == 100
    assert result.fee == 0


def test_percentage_is_floored():
    result = _evaluate(2999, offers=True, threshold=8000)
    assert result.percentage_to_threshold == 37
    assert result.amount_to_free_delivery == 5001


def test_empty_store_total_is_zero_percent():
    result = _evaluate(0, offers=True, threshold=8000)
    assert result.percentage_to_threshold == 0
    assert result.amount_to_free_delivery == 8000


def test_thresholds_are_independent_per_store():
    configs = {
        "a": make_config("a", offers=True, threshold=8000),
        "b": make_config("b", offers=True, threshold=5000),
    }

    def amount_for_b(a_total):
        aggregates, _ = aggregate_cart([make_line("a", a_total), make_line("b", 3000)], configs)
        return evaluate_free_delivery(aggregates["b"], configs["b"]).amount_to_free_delivery

    assert amount_for_b(100) == amount_for_b(7999) == amount_for_b(50000) == 2000


def test_spend_is_not_pooled_across_stores():
    configs = {
        "a": make_config("a", offers=True, threshold=8000),
        "b": make_config("b", offers=True, threshold=8000),
    }
    aggregates, _ = aggregate_cart([make_line("a", 5000), make_line("b", 5000)], configs)
    results = [evaluate_free_delivery(agg, configs[sid]) for sid, agg in aggregates.items()]
    assert all(not r.free_delivery_applied for r in results)
    assert sum(r.fee for r in results) == 1000


def test_incentive_stores_within_window():
    stores = [
        _evaluate(6000, offers=True, threshold=8000),   # 2000 missing
        _evaluate(1000, offers=True, threshold=8000),   # 7000 missing
        _evaluate(9000, offers=True, threshold=8000),   # already free
        _evaluate(7000, offers=False),
    ]
    nudged = incentive_stores(stores, window=3000)
    assert [s.amount_to_free_delivery for s in nudged] == [2000]
