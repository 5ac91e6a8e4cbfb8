# marketplace/routes/orders.py
import logging
from flask import Blueprint, request, jsonify, current_app, g
import psycopg2.extras

from ..extensions import socketio, store_room
from ..logic.order_placement import DELIVERY, OrderPlacementError, place_order
from ..logic.payout_splitter import (
    PayoutError,
    check_reconciliation,
    payout_data_from_allocation,
    split_payout,
)
from ..logic.models import OrderPayoutData
from ..logic.platform_settings import get_commission_rate
from ..utils.decorators import roles_required
from ..utils.helpers import get_db_connection, get_seller_store_id, serialize_data

logger = logging.getLogger(__name__)

orders_bp = Blueprint('orders', __name__)

PLACEMENT_SETTINGS = (
    'DEFAULT_DELIVERY_FEE', 'DEFAULT_BASE_DELIVERY_FEE',
    'OUT_OF_AREA_SURCHARGE', 'DEFAULT_SERVICE_REGION',
)


def _destination(data):
    value = data.get('destinationRegion') or data.get('wilaya')
    return value.strip() if isinstance(value, str) else ''


def _validate_order_payload(data):
    if not isinstance(data, dict):
        return "Corps JSON invalide"
    cart = data.get('cart')
    if not cart or not isinstance(cart, list):
        return "Panier vide ou invalide"
    for item in cart:
        if not isinstance(item, dict) or not item.get('variantId'):
            return "variantId manquant dans le panier"
        qty = item.get('quantity')
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
            return "Quantité invalide"
    if not _destination(data):
        return "La wilaya de destination est obligatoire"
    if not isinstance(data.get('deliveryMethod') or DELIVERY, str):
        return "deliveryMethod invalide"
    return None


def _load_order(conn, order_id):
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute("""
            SELECT id, user_id, status, subtotal, delivery_fee, total, payment_method,
                   delivery_type, destination_wilaya, created_at
            FROM orders WHERE id = %s
        """, (str(order_id),))
        order = cur.fetchone()
        if not order:
            return None, []
        cur.execute("""
            SELECT store_id, subtotal, base_fee, surcharge, customer_delivery_fee,
                   actual_delivery_fee, free_delivery_applied
            FROM order_delivery_allocations
            WHERE order_id = %s
            ORDER BY store_id
        """, (str(order_id),))
        allocations = [dict(r) for r in cur.fetchall()]
    return dict(order), allocations


def _visible_allocations(conn, order, allocations):
    """Allocations the current user may see, or None when the order is off limits."""
    if 'admin' in g.roles:
        return allocations
    if 'buyer' in g.roles and str(order['user_id']) == str(g.user_id):
        return allocations
    if 'seller' in g.roles:
        store_id = get_seller_store_id(conn, g.user_id)
        own = [a for a in allocations if str(a['store_id']) == store_id]
        if own:
            return own
    return None


def _allocation_payload(order_id, allocations):
    per_store = [{
        "storeId": str(a['store_id']),
        "fee": int(a.get('customer_delivery_fee') or 0),
        "freeDeliveryApplied": bool(a.get('free_delivery_applied')),
        "baseFee": int(a.get('base_fee') or 0),
        "surcharge": int(a.get('surcharge') or 0),
    } for a in allocations]
    return {
        "orderId": str(order_id),
        "perStoreFee": per_store,
        "totalFee": sum(s["fee"] for s in per_store),
    }


@orders_bp.route('', methods=['POST'])
@roles_required('buyer')
def create_order():
    conn = None
    try:
        data = request.get_json(silent=True)
        error = _validate_order_payload(data)
        if error:
            return jsonify({"error": error}), 400

        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        settings = {k: current_app.config[k] for k in PLACEMENT_SETTINGS}
        result = place_order(
            conn,
            user_id=g.user_id,
            items=data['cart'],
            destination_region=_destination(data),
            delivery_type=(data.get('deliveryMethod') or DELIVERY).upper(),
            payment_method=data.get('paymentMethod') or 'COD',
            contact={
                "name": data.get('name'),
                "phone": data.get('phone'),
                "address": {"address": data.get('address'), "city": data.get('city')},
            },
            settings=settings,
        )
        conn.commit()

        for store in result['deliveryAllocation']['perStoreFee']:
            socketio.emit('new_order', {"orderId": result['orderId'], "storeId": store['storeId']},
                          to=store_room(store['storeId']))

        return jsonify(result), 201

    except OrderPlacementError as e:
        logger.warning(f"Order rejected: {e}")
        if conn:
            conn.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        logger.error(f"Erreur dans create_order: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return jsonify({"error": "Erreur interne du serveur"}), 500
    finally:
        if conn:
            conn.close()


@orders_bp.route('/<uuid:order_id>', methods=['GET'])
@roles_required()
def get_order(order_id):
    conn = None
    try:
        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        order, allocations = _load_order(conn, order_id)
        if not order:
            return jsonify({"error": "Commande introuvable"}), 404

        visible = _visible_allocations(conn, order, allocations)
        if visible is None:
            return jsonify({"error": "Accès refusé"}), 403

        order['deliveryAllocation'] = _allocation_payload(order_id, visible)
        return jsonify(serialize_data(order)), 200

    except Exception as e:
        logger.error(f"Erreur dans get_order: {e}", exc_info=True)
        return jsonify({"error": "Erreur interne du serveur"}), 500
    finally:
        if conn:
            conn.close()


@orders_bp.route('/<uuid:order_id>/payout', methods=['GET'])
@roles_required('seller', 'admin')
def get_order_payout(order_id):
    """Seller payout, platform commission and delivery agent earning per store."""
    conn = None
    try:
        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        order, allocations = _load_order(conn, order_id)
        if not order:
            return jsonify({"error": "Commande introuvable"}), 404

        rate = get_commission_rate(conn, current_app.config['PLATFORM_COMMISSION_RATE'])

        if allocations:
            visible = _visible_allocations(conn, order, allocations)
            if visible is None:
                return jsonify({"error": "Accès refusé"}), 403
            shares = [payout_data_from_allocation(order_id, a) for a in visible]
        elif 'admin' in g.roles:
            # Orders placed before per-store allocations existed: buyer paid delivery.
            fee = int(order.get('delivery_fee') or 0)
            shares = [OrderPayoutData(
                order_id=str(order_id),
                subtotal=int(order['subtotal']) if order.get('subtotal') is not None else None,
                total=int(order.get('total') or 0),
                free_delivery_applied=False,
                actual_delivery_fee=fee,
                customer_delivery_fee=fee,
            )]
        else:
            return jsonify({"error": "Accès refusé"}), 403

        payouts = []
        for share in shares:
            breakdown = split_payout(share, rate)
            item = breakdown.to_dict()
            item["storeId"] = share.store_id
            item["reconciled"] = check_reconciliation(share, breakdown)
            payouts.append(item)

        return jsonify({"orderId": str(order_id), "commissionRate": rate, "payouts": payouts}), 200

    except PayoutError as e:
        logger.error(f"Payout invariant violated for order {order_id}: {e}")
        return jsonify({"error": str(e)}), 422
    except Exception as e:
        logger.error(f"Erreur dans get_order_payout: {e}", exc_info=True)
        return jsonify({"error": "Erreur interne du serveur"}), 500
    finally:
        if conn:
            conn.close()
