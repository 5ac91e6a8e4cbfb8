# marketplace/routes/checkout.py
from flask import Blueprint, request, jsonify, current_app
import logging

from ..logic.models import CartLine, StoreLookupOk
from ..logic.cart_aggregator import aggregate_cart
from ..logic.delivery_fee import calculate_delivery_fee
from ..logic.free_delivery import evaluate_free_delivery, incentive_stores
from ..logic.store_lookup import fetch_store_configs
from ..utils.helpers import get_db_connection

logger = logging.getLogger(__name__)

checkout_bp = Blueprint('checkout', __name__)


def _as_int(value, field, minimum):
    if isinstance(value, bool):
        raise ValueError(f"{field} invalide")
    try:
        number = float(value)
        whole = int(number)
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"{field} invalide")
    if number != whole or whole < minimum:
        raise ValueError(f"{field} invalide")
    return whole


def parse_cart_lines(raw_cart):
    """CartLine list from the JSON cart; raises ValueError on a malformed line."""
    if not isinstance(raw_cart, list):
        raise ValueError("Panier invalide")
    lines = []
    for i, item in enumerate(raw_cart):
        if not isinstance(item, dict):
            raise ValueError(f"Ligne {i} du panier invalide")
        product_id = item.get('productId') or item.get('id')
        if not product_id:
            raise ValueError(f"productId manquant (ligne {i})")
        price = item.get('unitPrice', item.get('price'))
        store_id = item.get('owningStoreId') or item.get('storeId')
        lines.append(CartLine(
            product_id=str(product_id),
            variant_id=str(item['variantId']) if item.get('variantId') else None,
            unit_price=_as_int(price, f"unitPrice (ligne {i})", 0),
            quantity=_as_int(item.get('quantity', 1), f"quantity (ligne {i})", 1),
            owning_store_id=str(store_id) if store_id else None,
        ))
    return lines


def _destination(value):
    """Stripped destination wilaya, or an empty string when missing or not text."""
    if not isinstance(value, str):
        return ''
    return value.strip()


def _lookup_stores(lines):
    if not lines:
        return StoreLookupOk(configs={})
    cfg = current_app.config
    conn = get_db_connection()
    try:
        return fetch_store_configs(
            conn, [l.owning_store_id for l in lines],
            default_base_fee=cfg['DEFAULT_BASE_DELIVERY_FEE'],
            default_region=cfg['DEFAULT_SERVICE_REGION'],
        )
    finally:
        if conn:
            conn.close()


@checkout_bp.route('/calculate-delivery-fee', methods=['POST'])
def calculate_fee():
    """Delivery fee for a cart and a destination wilaya.

    A store lookup failure still answers 200 with the default fee and
    ``degraded: true``; only malformed input is rejected.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Corps JSON invalide"}), 400
    cart = data.get('cart')
    destination = _destination(data.get('destinationRegion') or data.get('destinationWilaya'))

    if cart is None or not isinstance(cart, list):
        return jsonify({"error": "Panier invalide"}), 400
    if not destination:
        return jsonify({"error": "La wilaya de destination est obligatoire"}), 400

    try:
        lines = parse_cart_lines(cart)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    cfg = current_app.config
    quote = calculate_delivery_fee(
        lines, destination, _lookup_stores(lines),
        default_fee=cfg['DEFAULT_DELIVERY_FEE'],
        out_of_area_surcharge=cfg['OUT_OF_AREA_SURCHARGE'],
    )
    logger.info(f"Delivery quote to {destination}: total={quote.total_fee} "
                f"stores={len(quote.fee_by_store)} degraded={quote.degraded}")
    return jsonify(quote.to_dict()), 200


@checkout_bp.route('/free-delivery-status', methods=['POST'])
def free_delivery_status():
    """Per-store progress toward free delivery, for the cart page."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Corps JSON invalide"}), 400
    try:
        lines = parse_cart_lines(data.get('cart'))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    lookup = _lookup_stores(lines)
    if not lookup.ok:
        logger.warning(f"Free delivery status unavailable: {lookup.reason}")
        return jsonify({"stores": [], "incentives": [], "anomalies": [], "degraded": True}), 200

    aggregates, anomalies = aggregate_cart(lines, lookup.configs)
    stores = [evaluate_free_delivery(a, lookup.configs[sid]) for sid, a in aggregates.items()]
    window = current_app.config['FREE_DELIVERY_INCENTIVE_WINDOW']

    return jsonify({
        "stores": [s.to_dict() for s in stores],
        "incentives": [s.to_dict() for s in incentive_stores(stores, window)],
        "anomalies": [a.to_dict() for a in anomalies],
        "degraded": False,
    }), 200
