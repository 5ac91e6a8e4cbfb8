# marketplace/utils/decorators.py

from functools import wraps
from flask import request, jsonify, g
from . import helpers


def roles_required(*allowed_roles):
    """
    Validates the token and requires at least one of ``allowed_roles``.
    Attaches ``g.user_id`` and ``g.roles`` for the route.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # OPTIONS passes through for CORS
            if request.method == 'OPTIONS':
                return jsonify(), 200

            auth_header = request.headers.get('Authorization')
            user_id, roles, error_response = helpers.get_user_from_token(auth_header)

            if error_response:
                return error_response

            if allowed_roles and not set(roles) & set(allowed_roles):
                return jsonify({"error": "Accès refusé."}), 403

            g.user_id = user_id
            g.roles = roles

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def admin_required(f):
    return roles_required('admin')(f)


def seller_required(f):
    return roles_required('seller')(f)


def user_token_required(f):
    """Any authenticated user."""
    return roles_required()(f)
