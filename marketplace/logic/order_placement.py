# marketplace/logic/order_placement.py
"""
Order placement: the order, its items and its per-store delivery allocation
are written on the caller's connection and committed together by the caller.
"""
import json
import logging
import uuid
from typing import Dict, List

import psycopg2.extras

from .delivery_fee import calculate_delivery_fee
from .models import CartLine, DeliveryQuote
from .store_lookup import fetch_store_configs

logger = logging.getLogger(__name__)

DELIVERY = "DELIVERY"
PICKUP = "PICKUP"  # Click & Collect
DELIVERY_TYPES = (DELIVERY, PICKUP)


class OrderPlacementError(Exception):
    status_code = 400


class OrderValidationError(OrderPlacementError):
    status_code = 400


class StockConflict(OrderPlacementError):
    status_code = 409


class DeliveryFeeUnavailable(OrderPlacementError):
    status_code = 503


def effective_unit_price(row) -> int:
    """Price the buyer is charged for a variant: the promo price when one is running."""
    price = int(round(float(row.get("variant_price") or row.get("price") or 0)))
    promo = row.get("promo_price")
    if promo is not None and 0 < float(promo) < price:
        return int(round(float(promo)))
    return price


def _load_variants(cur, variant_ids: List[str]) -> Dict[str, dict]:
    cur.execute("""
        SELECT v.id AS variant_id, v.stock, v.price AS variant_price,
               p.id AS product_id, p.title, p.price, p.promo_price, p.store_id
        FROM variants v
        JOIN products p ON p.id = v.product_id
        WHERE v.id::text = ANY(%s)
        FOR UPDATE OF v
    """, (variant_ids,))
    return {str(r["variant_id"]): dict(r) for r in cur.fetchall()}


def price_cart(cur, items) -> List[CartLine]:
    """Re-prices client cart items from the database and checks stock.

    ``items`` are dicts with ``variantId`` and ``quantity``; client prices and
    store ids are ignored.
    """
    quantities: Dict[str, int] = {}
    for item in items:
        vid = str(item["variantId"])
        quantities[vid] = quantities.get(vid, 0) + int(item["quantity"])

    variants = _load_variants(cur, sorted(quantities))

    lines = []
    for vid, qty in quantities.items():
        row = variants.get(vid)
        if not row:
            raise OrderValidationError(f"Produit introuvable: {vid}")
        if row["stock"] is None or row["stock"] < qty:
            raise StockConflict(f"Stock insuffisant pour: {row.get('title') or vid}")
        lines.append(CartLine(
            product_id=str(row["product_id"]),
            variant_id=vid,
            unit_price=effective_unit_price(row),
            quantity=qty,
            owning_store_id=str(row["store_id"]) if row.get("store_id") else None,
        ))
    return lines


def quote_for_order(conn, lines: List[CartLine], destination_region: str, delivery_type: str,
                    settings: dict) -> DeliveryQuote:
    lookup = fetch_store_configs(
        conn, [l.owning_store_id for l in lines],
        default_base_fee=settings["DEFAULT_BASE_DELIVERY_FEE"],
        default_region=settings["DEFAULT_SERVICE_REGION"],
    )
    quote = calculate_delivery_fee(
        lines, destination_region, lookup,
        default_fee=settings["DEFAULT_DELIVERY_FEE"],
        out_of_area_surcharge=settings["OUT_OF_AREA_SURCHARGE"],
    )
    if quote.degraded:
        # An order is never written without its real allocation.
        raise DeliveryFeeUnavailable("Frais de livraison indisponibles, réessayez plus tard")
    if quote.anomalies:
        raise OrderValidationError("Certains produits ne sont plus disponibles à la vente")

    if delivery_type == PICKUP:
        pickup = [s.evolve(fee=0, base_fee=0, surcharge=0, free_delivery_applied=False)
                  for s in quote.fee_by_store]
        return DeliveryQuote(total_fee=0, fee_by_store=pickup,
                             has_outside_service_area_products=quote.has_outside_service_area_products)
    return quote


def place_order(conn, *, user_id: str, items, destination_region: str, delivery_type: str = DELIVERY,
                payment_method: str = "COD", contact=None, settings: dict) -> dict:
    """Writes the order, its items and its delivery allocation. Does not commit."""
    if delivery_type not in DELIVERY_TYPES:
        raise OrderValidationError(f"deliveryMethod invalide ({'|'.join(DELIVERY_TYPES)})")

    contact = contact or {}
    order_id = str(uuid.uuid4())

    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        lines = price_cart(cur, items)
        quote = quote_for_order(conn, lines, destination_region, delivery_type, settings)

        subtotal = sum(l.line_total for l in lines)
        total = subtotal + quote.total_fee

        cur.execute("""
            INSERT INTO orders
                (id, user_id, status, subtotal, delivery_fee, total, payment_method,
                 delivery_type, destination_wilaya, delivery_address, phone, customer_name)
            VALUES (%s, %s, 'PENDING', %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """, (order_id, user_id, subtotal, quote.total_fee, total, payment_method,
              delivery_type, destination_region, json.dumps(contact.get("address")),
              contact.get("phone"), contact.get("name")))

        for line in lines:
            cur.execute("""
                INSERT INTO order_items (id, order_id, variant_id, product_id, store_id, quantity, price)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
            """, (str(uuid.uuid4()), order_id, line.variant_id, line.product_id,
                  line.owning_store_id, line.quantity, line.unit_price))

        per_store = []
        for store in quote.fee_by_store:
            actual_fee = store.base_fee + store.surcharge
            cur.execute("""
                INSERT INTO order_delivery_allocations
                    (order_id, store_id, subtotal, base_fee, surcharge, customer_delivery_fee,
                     actual_delivery_fee, free_delivery_applied)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """, (order_id, store.store_id, store.total_amount, store.base_fee, store.surcharge,
                  store.fee, actual_fee, store.free_delivery_applied))
            per_store.append({
                "storeId": store.store_id,
                "fee": store.fee,
                "freeDeliveryApplied": store.free_delivery_applied,
            })

        for line in lines:
            cur.execute("UPDATE variants SET stock = stock - %s WHERE id = %s",
                        (line.quantity, line.variant_id))

    logger.info("Order %s placed: %d stores, subtotal=%s, delivery=%s",
                order_id, len(per_store), subtotal, quote.total_fee)
    return {
        "orderId": order_id,
        "subtotal": subtotal,
        "totalFee": quote.total_fee,
        "total": total,
        "deliveryAllocation": {
            "orderId": order_id,
            "perStoreFee": per_store,
            "totalFee": quote.total_fee,
        },
        "hasOutsideServiceAreaProducts": quote.has_outside_service_area_products,
    }
