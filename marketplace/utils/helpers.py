# marketplace/utils/helpers.py

import os
import json
import uuid
import logging
import psycopg2
import psycopg2.extras
from psycopg2.extras import register_uuid
from flask import jsonify
from supabase import create_client, Client
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

logger = logging.getLogger(__name__)

VALID_ROLES = ("buyer", "seller", "delivery", "admin")

# --- Supabase ---
supabase: Optional[Client] = None
try:
    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY")
    if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
        raise ValueError("SUPABASE_URL et SUPABASE_SERVICE_KEY sont obligatoires.")
    supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    logger.info("Supabase client initialisé.")
except Exception as e:
    logger.error(f"Échec d'initialisation Supabase: {e}")
    supabase = None


# --- DB ---
def get_db_connection():
    url = os.environ.get("DATABASE_URL")
    if not url:
        logger.error("DATABASE_URL introuvable.")
        return None
    try:
        conn = psycopg2.connect(url)
        register_uuid(None, conn)
        return conn
    except Exception as e:
        logger.error(f"Connexion DB échouée: {e}", exc_info=True)
        return None


# --- Auth helper ---
def _extract_bearer_token(auth_header: str):
    """Token from an Authorization header, with or without the 'Bearer' prefix."""
    if not auth_header:
        return None
    parts = auth_header.strip().split()
    if len(parts) == 0:
        return None
    if parts[0].lower() == "bearer" and len(parts) >= 2:
        return parts[1]
    return parts[0]


def _normalize_roles(raw):
    if not raw:
        return []
    if isinstance(raw, str):
        raw = raw.strip("{}").split(",")
    return [r.strip().lower() for r in raw if r and r.strip().lower() in VALID_ROLES]


def get_user_from_token(auth_header):
    """
    Returns (user_id:str, roles:list[str], error_response|None).
    On failure the third item is a (json_response, status_code) tuple.
    """
    token = _extract_bearer_token(auth_header)
    if not token:
        return None, [], (jsonify({"error": "Authorization absente ou invalide"}), 401)

    conn = None
    try:
        if not supabase:
            raise RuntimeError("Supabase client non initialisé.")

        user_resp = supabase.auth.get_user(token)
        user = getattr(user_resp, "user", None)
        if not user:
            return None, [], (jsonify({"error": "Token invalide ou expiré"}), 401)

        user_id = str(user.id)

        conn = get_db_connection()
        if not conn:
            return None, [], (jsonify({"error": "Impossible de vérifier les permissions"}), 500)

        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                """
                SELECT roles
                FROM public.users
                WHERE id = %s
                LIMIT 1
                """,
                (user_id,),
            )
            row = cur.fetchone()

        roles = _normalize_roles(row.get("roles")) if row else []
        if not roles:
            return None, [], (jsonify({"error": "Aucun rôle trouvé pour cet utilisateur"}), 403)

        return user_id, roles, None

    except Exception as e:
        msg = str(e)
        logger.error(f"Erreur lors du traitement du token: {msg}", exc_info=True)
        if "invalid" in msg.lower() or "jwt" in msg.lower() or "token" in msg.lower():
            return None, [], (jsonify({"error": "Erreur d'authentification"}), 401)
        return None, [], (jsonify({"error": "Erreur interne lors de la validation du token"}), 500)
    finally:
        if conn:
            conn.close()


def get_seller_store_id(conn, user_id):
    """Id of the store owned by ``user_id``, or None."""
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute("SELECT id FROM stores WHERE user_id = %s LIMIT 1", (user_id,))
        row = cur.fetchone()
    return str(row["id"]) if row else None


# --- JSON utils ---
class CustomJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, uuid.UUID):
            return str(obj)
        return super().default(obj)


def serialize_data(data):
    return json.loads(json.dumps(data, cls=CustomJSONEncoder))
