# marketplace/routes/seller_settings.py
import logging
from flask import Blueprint, request, jsonify, current_app, g
import psycopg2.extras

from ..utils.decorators import seller_required
from ..utils.helpers import get_db_connection

logger = logging.getLogger(__name__)

seller_settings_bp = Blueprint('seller_settings', __name__)


def validate_free_delivery_settings(offers, threshold, minimum, maximum):
    """Returns (offers, threshold, error). The threshold is dropped when free delivery is off."""
    if not isinstance(offers, bool):
        return None, None, "offersFreeDelivery doit être un booléen"
    if not offers:
        return False, None, None
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or threshold != int(threshold):
        return None, None, f"Le seuil doit être entre {minimum} DA et {maximum} DA"
    threshold = int(threshold)
    if threshold < minimum or threshold > maximum:
        return None, None, f"Le seuil doit être entre {minimum} DA et {maximum} DA"
    return True, threshold, None


@seller_settings_bp.route('/delivery-settings', methods=['GET'])
@seller_required
def get_delivery_settings():
    conn = None
    try:
        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute("""
                SELECT id, offers_free_delivery, free_delivery_threshold
                FROM stores WHERE user_id = %s LIMIT 1
            """, (g.user_id,))
            store = cur.fetchone()

        if not store:
            return jsonify({"error": "Boutique non trouvée"}), 404

        return jsonify({
            "offersFreeDelivery": bool(store.get('offers_free_delivery')),
            "freeDeliveryThreshold": store.get('free_delivery_threshold')
                                     or current_app.config['DEFAULT_FREE_DELIVERY_THRESHOLD'],
        }), 200

    except Exception as e:
        logger.error(f"Erreur lors du chargement des paramètres de livraison: {e}", exc_info=True)
        return jsonify({"error": "Erreur serveur"}), 500
    finally:
        if conn:
            conn.close()


@seller_settings_bp.route('/delivery-settings', methods=['POST'])
@seller_required
def update_delivery_settings():
    conn = None
    try:
        body = request.get_json(silent=True) or {}
        offers, threshold, error = validate_free_delivery_settings(
            body.get('offersFreeDelivery'),
            body.get('freeDeliveryThreshold'),
            current_app.config['FREE_DELIVERY_THRESHOLD_MIN'],
            current_app.config['FREE_DELIVERY_THRESHOLD_MAX'],
        )
        if error:
            return jsonify({"error": error}), 400

        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute("""
                UPDATE stores
                   SET offers_free_delivery = %s,
                       free_delivery_threshold = %s,
                       updated_at = NOW()
                 WHERE user_id = %s
             RETURNING id
            """, (offers, threshold, g.user_id))
            updated = cur.fetchone()

        if not updated:
            conn.rollback()
            return jsonify({"error": "Boutique non trouvée"}), 404

        conn.commit()
        logger.info(f"Store {updated['id']} free delivery: offers={offers} threshold={threshold}")
        return jsonify({"success": True, "message": "Paramètres enregistrés avec succès"}), 200

    except Exception as e:
        logger.error(f"Erreur lors de la mise à jour des paramètres de livraison: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return jsonify({"error": "Erreur serveur"}), 500
    finally:
        if conn:
            conn.close()
