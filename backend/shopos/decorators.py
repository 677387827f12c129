# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import current_app, jsonify, g

from .permissions import has_permission


def get_runtime():
    """The ShopRuntime owned by the current app."""
    return current_app.extensions["shopos"]


def require_login(f):
    """
    Require a signed-in user and establish tenant context.

    Sets the following Flask g attributes:
    - g.runtime: the app's ShopRuntime
    - g.current_user: the signed-in user record
    - g.shop_id: the active shop (tenant context)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        runtime = get_runtime()
        user = runtime.state.current_user

        if user is None:
            return jsonify({"error": "Authentication required"}), 401

        if user.get("shop_id") != runtime.state.shop_id:
            # Should not happen: login narrows the snapshot to the user's shop
            return jsonify({"error": "Invalid session: tenant context mismatch"}), 401

        g.runtime = runtime
        g.current_user = user
        g.shop_id = runtime.state.shop_id

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a role permission (apply after @require_login)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "current_user"):
                return jsonify({"error": "Authentication required"}), 401

            if not has_permission(g.current_user, permission_code):
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
