import os
import sys
import logging
from pathlib import Path
from datetime import datetime
from flask import Flask, jsonify, request, make_response
from flask_cors import CORS
from flask_socketio import join_room
from dotenv import load_dotenv
import re

# --- Path & logging ---
current_dir = Path(__file__).parent
project_root = current_dir.parent
sys.path.insert(0, str(project_root))

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')
logger = logging.getLogger(__name__)

load_dotenv()

# --- Blueprints ---
try:
    from marketplace.extensions import socketio, store_room
    from marketplace.routes.checkout import checkout_bp
    from marketplace.routes.orders import orders_bp
    from marketplace.routes.seller_settings import seller_settings_bp
    from marketplace.routes.admin import admin_bp
    from marketplace.utils import helpers
except ImportError as e:
    logging.error(f"Erreur d'import: {e}")
    raise

# --- App ---
app = Flask(__name__)
app.url_map.strict_slashes = False

config_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'config.py')
if os.path.exists(config_path):
    app.config.from_pyfile(config_path)
else:
    logging.warning("Fichier config.py introuvable. Paramètres par défaut utilisés.")

app.config['SECRET_KEY'] = os.environ.get('JWT_SECRET', 'fallback-secret-key-change-in-production')
app.config.update(
    SESSION_COOKIE_SAMESITE="None",
    SESSION_COOKIE_SECURE=True,
)

# ---------------- CORS ----------------
PROD_ORIGINS = [
    "https://www.souk-oran.dz",
    "https://vendeur.souk-oran.dz",
    "https://livreur.souk-oran.dz",
    "https://admin.souk-oran.dz",
]

VERCEL_BASE = ".vercel.app"

LOCAL_HOSTS = [
    "http://localhost:3000", "http://127.0.0.1:3000",
]

EXTRA = [o.strip() for o in os.environ.get("EXTRA_ALLOWED_ORIGINS", "").split(",") if o.strip()]

ALLOWED_ORIGINS = set(PROD_ORIGINS + LOCAL_HOSTS + EXTRA)


def is_allowed_origin(origin: str) -> bool:
    if not origin:
        return False
    if origin in ALLOWED_ORIGINS:
        return True
    if origin.endswith(VERCEL_BASE):
        return True
    if re.match(r"^http://localhost:\d+$", origin) or re.match(r"^http://127\.0\.0\.1:\d+$", origin):
        return True
    return False


CORS(
    app,
    resources={r"/api/*": {"origins": "*"}},
    supports_credentials=True,
    allow_headers=["Content-Type", "Authorization"],
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
)


@app.before_request
def handle_preflight():
    if request.method == "OPTIONS":
        origin = request.headers.get("Origin", "")
        resp = make_response()
        resp.headers["Access-Control-Allow-Origin"] = origin if is_allowed_origin(origin) else "null"
        resp.headers["Vary"] = "Origin"
        resp.headers["Access-Control-Allow-Credentials"] = "true"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
        return resp, 204


@app.after_request
def add_cors_headers(response):
    origin = request.headers.get("Origin", "")
    if is_allowed_origin(origin):
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers.setdefault("Vary", "Origin")
        response.headers.setdefault("Access-Control-Allow-Credentials", "true")
        response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type, Authorization")
        response.headers.setdefault("Access-Control-Allow-Methods", "GET, POST, PUT, PATCH, DELETE, OPTIONS")
    return response


# --- SocketIO ---
socketio.init_app(
    app,
    cors_allowed_origins="*",
    async_mode=os.environ.get('SOCKETIO_ASYNC_MODE', 'eventlet'),
    logger=False,
    engineio_logger=False,
)

# --- Blueprint registration ---
app.register_blueprint(checkout_bp, url_prefix='/api/checkout')
app.register_blueprint(orders_bp, url_prefix='/api/orders')
app.register_blueprint(seller_settings_bp, url_prefix='/api/seller')
app.register_blueprint(admin_bp, url_prefix='/api/admin')


# --- Status ---
@app.route('/')
def index():
    return jsonify({"status": "online", "message": "Marketplace API en ligne"})


@app.route('/health')
def health_check_simple():
    return jsonify({
        "status": "ok",
        "message": "Server is running",
        "timestamp": datetime.now().isoformat(),
        "service": "Marketplace Delivery API"
    }), 200


@app.route('/api/health')
def health_check():
    return jsonify({
        "status": "healthy",
        "supabase": "connected" if helpers.supabase else "disconnected",
        "database": "configured" if os.environ.get("DATABASE_URL") else "not_configured",
        "cors_enabled": True
    })


# --- SocketIO handlers ---
@socketio.on('connect')
def handle_connect():
    logger.info(f'Client WebSocket connecté: {request.sid}')


@socketio.on('disconnect')
def handle_disconnect():
    logger.info(f'Client déconnecté: {request.sid}')


@socketio.on('join_store')
def handle_join_store(data):
    """Sellers subscribe to their store's new-order events."""
    data = data or {}
    user_id, roles, error = helpers.get_user_from_token(data.get('token'))
    if error or 'seller' not in roles:
        return {'status': 'error', 'message': 'Accès refusé'}

    conn = helpers.get_db_connection()
    if not conn:
        return {'status': 'error', 'message': 'Base de données indisponible'}
    try:
        store_id = helpers.get_seller_store_id(conn, user_id)
    finally:
        conn.close()

    if not store_id:
        return {'status': 'error', 'message': 'Boutique non trouvée'}
    join_room(store_room(store_id))
    logger.info(f'{request.sid} a rejoint {store_room(store_id)}')
    return {'status': 'joined', 'storeId': store_id}


# --- Error handlers ---
@app.errorhandler(404)
def not_found(error):
    return jsonify({"error": "Endpoint introuvable", "path": request.path}), 404


@app.errorhandler(500)
def internal_error(error):
    logger.error(f"Erreur interne: {error}", exc_info=True)
    return jsonify({"error": "Erreur interne du serveur"}), 500


@app.errorhandler(405)
def method_not_allowed(error):
    return jsonify({"error": "Méthode non autorisée", "method": request.method}), 405


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    logger.info(f"Démarrage du serveur sur le port {port} (debug: {debug})")
    socketio.run(app, host='0.0.0.0', port=port, debug=debug, use_reloader=debug)
