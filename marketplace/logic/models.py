# marketplace/logic/models.py
"""Value types shared by the delivery-fee and payout logic."""
from dataclasses import dataclass, field, replace
from typing import ClassVar, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class CartLine:
    product_id: str
    variant_id: Optional[str]
    unit_price: int
    quantity: int
    owning_store_id: Optional[str]

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class StoreDeliveryConfig:
    store_id: str
    offers_free_delivery: bool
    free_delivery_threshold: Optional[int]
    base_delivery_fee: int
    service_region: str
    store_name: str = ""


@dataclass(frozen=True)
class StoreCartAggregate:
    store_id: str
    total_amount: int
    offers_free_delivery: bool = False
    free_delivery_threshold: Optional[int] = None
    amount_to_free_delivery: Optional[int] = None
    percentage_to_threshold: int = 0
    base_fee: int = 0
    surcharge: int = 0
    fee: int = 0
    free_delivery_applied: bool = False
    outside_service_area: bool = False
    store_name: str = ""

    def evolve(self, **changes) -> "StoreCartAggregate":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "storeId": self.store_id,
            "storeName": self.store_name,
            "totalAmount": self.total_amount,
            "offersFreeDelivery": self.offers_free_delivery,
            "freeDeliveryThreshold": self.free_delivery_threshold,
            "amountToFreeDelivery": self.amount_to_free_delivery,
            "percentageToThreshold": self.percentage_to_threshold,
            "baseFee": self.base_fee,
            "surcharge": self.surcharge,
            "fee": self.fee,
            "freeDeliveryApplied": self.free_delivery_applied,
            "outsideServiceArea": self.outside_service_area,
        }


@dataclass(frozen=True)
class CartAnomaly:
    product_id: str
    variant_id: Optional[str]
    store_id: Optional[str]
    reason: str

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "variantId": self.variant_id,
            "storeId": self.store_id,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class DeliveryQuote:
    total_fee: int
    fee_by_store: List[StoreCartAggregate] = field(default_factory=list)
    has_outside_service_area_products: bool = False
    anomalies: List[CartAnomaly] = field(default_factory=list)
    degraded: bool = False

    def to_dict(self) -> dict:
        return {
            "totalFee": self.total_fee,
            "feeByStore": [s.to_dict() for s in self.fee_by_store],
            "hasOutsideServiceAreaProducts": self.has_outside_service_area_products,
            "anomalies": [a.to_dict() for a in self.anomalies],
            "degraded": self.degraded,
        }


# --- Data-fetch boundary results ---

@dataclass(frozen=True)
class StoreLookupOk:
    """Store configs that could be read. Stores absent from ``configs`` are stale ids."""
    configs: Dict[str, StoreDeliveryConfig]
    # (from_city, to_wilaya) -> surcharge, lower-cased keys
    route_surcharges: Dict[Tuple[str, str], int] = field(default_factory=dict)
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class StoreLookupFailed:
    reason: str
    ok: ClassVar[bool] = False


StoreLookupResult = Union[StoreLookupOk, StoreLookupFailed]


# --- Orders & payouts ---

@dataclass(frozen=True)
class OrderPayoutData:
    order_id: str
    subtotal: Optional[int]
    total: int
    free_delivery_applied: bool
    actual_delivery_fee: Optional[int]
    customer_delivery_fee: Optional[int]
    store_id: Optional[str] = None


@dataclass(frozen=True)
class PayoutBreakdown:
    revenue: int
    commission: int
    delivery_fee_absorbed_by_seller: int
    payout: int
    commission_rate: float
    delivery_agent_earning: int = 0

    def to_dict(self) -> dict:
        return {
            "revenue": self.revenue,
            "commission": self.commission,
            "deliveryFeeAbsorbedBySeller": self.delivery_fee_absorbed_by_seller,
            "payout": self.payout,
            "commissionRate": self.commission_rate,
            "deliveryAgentEarning": self.delivery_agent_earning,
        }
