# marketplace/routes/admin.py
import logging

from flask import Blueprint, request, jsonify, current_app, g
import psycopg2
import psycopg2.errors
import psycopg2.extras

from ..logic.commission_report import summarize_commissions
from ..logic.payout_splitter import PayoutError
from ..logic.platform_settings import get_commission_rate, get_commission_settings, set_commission_rate
from ..utils.audit import log_admin_action
from ..utils.decorators import admin_required
from ..utils.helpers import get_db_connection, serialize_data

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin_bp", __name__)

FEE_COLUMNS = "id, from_city AS \"fromCity\", to_wilaya AS \"toWilaya\", base_fee AS \"baseFee\", is_active AS \"isActive\""


def _parse_fee(value):
    if isinstance(value, bool):
        return None
    try:
        fee = int(value)
    except (TypeError, ValueError):
        return None
    return fee if fee >= 0 else None


# -------------------------------------------------------------------
# GET /api/admin/delivery-fees (public: the checkout UI shows them)
# -------------------------------------------------------------------
@admin_bp.route("/delivery-fees", methods=["GET"])
def list_delivery_fees():
    conn = None
    try:
        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(f"""
                SELECT {FEE_COLUMNS}
                FROM delivery_fee_configs
                WHERE is_active = TRUE
                ORDER BY from_city ASC, to_wilaya ASC
            """)
            fees = [dict(r) for r in cur.fetchall()]
        return jsonify(serialize_data(fees)), 200
    except Exception:
        logger.exception("Erreur lors de la lecture des frais de livraison")
        return jsonify({"error": "Impossible de charger les frais de livraison"}), 500
    finally:
        if conn:
            conn.close()


@admin_bp.route("/delivery-fees", methods=["POST"])
@admin_required
def create_delivery_fee():
    conn = None
    try:
        body = request.get_json(silent=True) or {}
        from_city = (body.get("fromCity") or "").strip()
        to_wilaya = (body.get("toWilaya") or "").strip()
        base_fee = _parse_fee(body.get("baseFee"))
        if not from_city or not to_wilaya or base_fee is None:
            return jsonify({"error": "Champs requis: fromCity, toWilaya, baseFee"}), 400

        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(f"""
                INSERT INTO delivery_fee_configs (from_city, to_wilaya, base_fee, is_active)
                VALUES (%s, %s, %s, TRUE)
                RETURNING {FEE_COLUMNS}
            """, (from_city, to_wilaya, base_fee))
            fee = dict(cur.fetchone())
        conn.commit()

        log_admin_action(g.user_id, "CreateDeliveryFee", f"{from_city} -> {to_wilaya}: {base_fee} DA", request)
        return jsonify(serialize_data(fee)), 201

    except psycopg2.errors.UniqueViolation:
        if conn:
            conn.rollback()
        return jsonify({"error": "Cette configuration existe déjà"}), 409
    except Exception:
        logger.exception("Erreur lors de la création des frais de livraison")
        if conn:
            conn.rollback()
        return jsonify({"error": "Impossible de créer la configuration"}), 500
    finally:
        if conn:
            conn.close()


@admin_bp.route("/delivery-fees", methods=["PUT"])
@admin_required
def update_delivery_fee():
    conn = None
    try:
        body = request.get_json(silent=True) or {}
        fee_id = body.get("id")
        if not fee_id:
            return jsonify({"error": "ID requis"}), 400

        sets, params = [], []
        if body.get("baseFee") is not None:
            base_fee = _parse_fee(body["baseFee"])
            if base_fee is None:
                return jsonify({"error": "baseFee invalide"}), 400
            sets.append("base_fee = %s"); params.append(base_fee)
        if body.get("isActive") is not None:
            sets.append("is_active = %s"); params.append(bool(body["isActive"]))
        if not sets:
            return jsonify({"error": "Rien à mettre à jour"}), 400

        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                f"UPDATE delivery_fee_configs SET {', '.join(sets)} WHERE id = %s RETURNING {FEE_COLUMNS}",
                tuple(params + [fee_id]),
            )
            row = cur.fetchone()
        if not row:
            conn.rollback()
            return jsonify({"error": "Configuration introuvable"}), 404
        conn.commit()

        log_admin_action(g.user_id, "UpdateDeliveryFee", f"id={fee_id} {body}", request)
        return jsonify(serialize_data(dict(row))), 200

    except Exception:
        logger.exception("Erreur lors de la mise à jour des frais de livraison")
        if conn:
            conn.rollback()
        return jsonify({"error": "Impossible de mettre à jour la configuration"}), 500
    finally:
        if conn:
            conn.close()


@admin_bp.route("/delivery-fees", methods=["DELETE"])
@admin_required
def delete_delivery_fee():
    conn = None
    try:
        fee_id = request.args.get("id")
        if not fee_id:
            return jsonify({"error": "ID requis"}), 400

        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        with conn.cursor() as cur:
            cur.execute("DELETE FROM delivery_fee_configs WHERE id = %s", (fee_id,))
            deleted = cur.rowcount
        if not deleted:
            conn.rollback()
            return jsonify({"error": "Configuration introuvable"}), 404
        conn.commit()

        log_admin_action(g.user_id, "DeleteDeliveryFee", f"id={fee_id}", request)
        return jsonify({"message": "Configuration supprimée"}), 200

    except Exception:
        logger.exception("Erreur lors de la suppression des frais de livraison")
        if conn:
            conn.rollback()
        return jsonify({"error": "Impossible de supprimer la configuration"}), 500
    finally:
        if conn:
            conn.close()


# -------------------------------------------------------------------
# /api/admin/settings/commission
# -------------------------------------------------------------------
def _commission_payload(settings):
    return {
        "commissionRate": settings["commission_rate"],
        "previousRate": settings.get("previous_rate"),
        "updatedBy": settings.get("updated_by"),
        "updatedAt": settings.get("updated_at"),
    }


@admin_bp.route("/settings/commission", methods=["GET"])
@admin_required
def get_commission():
    conn = None
    try:
        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        settings = get_commission_settings(conn)
        if not settings:
            settings = {
                "commission_rate": current_app.config["PLATFORM_COMMISSION_RATE"],
                "previous_rate": None,
                "updated_by": None,
                "updated_at": None,
            }
        return jsonify(serialize_data({"success": True, "settings": _commission_payload(settings)})), 200
    except Exception:
        logger.exception("Erreur lors de la lecture de la commission")
        return jsonify({"error": "Impossible de charger la commission"}), 500
    finally:
        if conn:
            conn.close()


@admin_bp.route("/settings/commission", methods=["POST"])
@admin_required
def update_commission():
    conn = None
    try:
        body = request.get_json(silent=True) or {}
        rate = body.get("commissionRate")
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not 0 <= rate <= 1:
            return jsonify({"error": "commissionRate doit être compris entre 0 et 1"}), 400

        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        row = set_commission_rate(conn, rate, updated_by=g.user_id,
                                  default_rate=current_app.config["PLATFORM_COMMISSION_RATE"])
        conn.commit()

        log_admin_action(g.user_id, "UpdateCommission", f"{row['previous_rate']} -> {row['commission_rate']}", request)
        return jsonify(serialize_data({
            "success": True,
            "message": f"Commission modifiée de {row['previous_rate']} à {row['commission_rate']}",
            "settings": _commission_payload(row),
        })), 200
    except PayoutError as e:
        if conn:
            conn.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        logger.exception("Erreur lors de la mise à jour de la commission")
        if conn:
            conn.rollback()
        return jsonify({"error": "Impossible de mettre à jour la commission"}), 500
    finally:
        if conn:
            conn.close()


# -------------------------------------------------------------------
# GET /api/admin/commissions/summary
# -------------------------------------------------------------------
@admin_bp.route("/commissions/summary", methods=["GET"])
@admin_required
def commissions_summary():
    conn = None
    try:
        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        rate = get_commission_rate(conn, current_app.config["PLATFORM_COMMISSION_RATE"])
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute("""
                SELECT a.order_id, a.store_id, s.name AS store_name, a.subtotal,
                       a.customer_delivery_fee, a.actual_delivery_fee,
                       a.free_delivery_applied, a.commission_paid
                FROM order_delivery_allocations a
                JOIN orders o ON o.id = a.order_id
                LEFT JOIN stores s ON s.id = a.store_id
                WHERE o.status = 'DELIVERED'
            """)
            rows = [dict(r) for r in cur.fetchall()]

        return jsonify({"success": True, "summary": summarize_commissions(rows, rate)}), 200
    except PayoutError as e:
        logger.error(f"Commission summary failed: {e}")
        return jsonify({"error": str(e)}), 422
    except Exception:
        logger.exception("Erreur lors du calcul des commissions")
        return jsonify({"error": "Impossible de calculer les commissions"}), 500
    finally:
        if conn:
            conn.close()


# -------------------------------------------------------------------
# POST /api/admin/commissions/mark-paid
# -------------------------------------------------------------------
@admin_bp.route("/commissions/mark-paid", methods=["POST"])
@admin_required
def mark_commissions_paid():
    """Flags every unpaid commission of a store's delivered orders as paid."""
    conn = None
    try:
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return jsonify({"error": "Corps JSON invalide"}), 400
        store_id = body.get("storeId")
        if not store_id or not isinstance(store_id, (str, int)) or isinstance(store_id, bool):
            return jsonify({"error": "storeId requis"}), 400
        note = body.get("paymentNote")
        if note is not None and not isinstance(note, str):
            return jsonify({"error": "paymentNote invalide"}), 400
        note = (note or "").strip() or None

        conn = get_db_connection()
        if not conn:
            return jsonify({"error": "Erreur de connexion à la base de données"}), 500

        with conn.cursor() as cur:
            cur.execute("""
                UPDATE order_delivery_allocations a
                   SET commission_paid = TRUE,
                       commission_paid_at = NOW(),
                       commission_payment_note = %s
                  FROM orders o
                 WHERE o.id = a.order_id
                   AND o.status = 'DELIVERED'
                   AND a.store_id::text = %s
                   AND a.commission_paid = FALSE
            """, (note, str(store_id)))
            updated = cur.rowcount
        conn.commit()

        log_admin_action(g.user_id, "MarkCommissionsPaid", f"store={store_id} count={updated} note={note}", request)
        return jsonify({
            "success": True,
            "message": f"{updated} commande(s) marquée(s) comme commission payée",
            "updatedCount": updated,
        }), 200
    except Exception:
        logger.exception("Erreur lors du marquage des commissions")
        if conn:
            conn.rollback()
        return jsonify({"error": "Impossible de marquer les commissions comme payées"}), 500
    finally:
        if conn:
            conn.close()
