# Overview: Flask API routes for login, logout and shop registration.

# backend/shopos/routes/auth.py
"""
Authentication API routes

The device holds one signed-in user at a time (the till). Login works
offline against cached users; online it loads the shop from the remote
store and replaces the local snapshot.

SECURITY FEATURES:
- bcrypt-verified credentials, remote first when online
- Inactive accounts rejected before any local state changes
- Expired subscription flagged on the response, never blocks login
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import get_runtime, require_login
from ..permissions import ROLE_PERMISSIONS
from ..services.auth_service import SecretValidationError, public_user
from ..services.session_service import RegistrationError
from ..services.subscription_service import check_status, days_remaining


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(runtime, user: dict) -> dict:
    subscription = runtime.state.subscription
    return {
        "user": public_user(user),
        "shop_id": runtime.state.shop_id,
        "settings": runtime.state.settings,
        "permissions": sorted(ROLE_PERMISSIONS.get(user.get("role"), ())),
        "subscription": {
            "status": check_status(subscription),
            "days_remaining": days_remaining(subscription),
        },
    }


@auth_bp.post("/login")
def login_route():
    """
    Authenticate a user and make their shop the active one.

    Returns 401 on bad credentials, 403 for inactive accounts.
    """
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("username") or data.get("email") or data.get("identifier")
        password = data.get("password")

        if not all([identifier, password]):
            return jsonify({"error": "username/email and password required"}), 400

        runtime = get_runtime()
        result = runtime.session.login(identifier, password)

        if not result:
            status = 403 if result.error == "Account is inactive" else 401
            return jsonify({"error": result.error}), status

        payload = _session_payload(runtime, result.user)
        payload["source"] = result.source
        payload["subscription_expired"] = result.subscription_expired
        return jsonify(payload), 200

    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_login
def logout_route():
    g.runtime.session.logout()
    return jsonify({"ok": True}), 200


@auth_bp.post("/register-shop")
def register_shop_route():
    """
    Register a new shop and sign its owner in.

    Body: full_name, email, shop_name, country, state, password
    """
    data = request.get_json(silent=True) or {}

    try:
        result = get_runtime().session.register_shop(data)
    except (RegistrationError, SecretValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Shop registration failed")
        return jsonify({"error": "Internal server error"}), 500

    payload = _session_payload(get_runtime(), result.user)
    payload["source"] = result.source
    return jsonify(payload), 201


@auth_bp.get("/me")
@require_login
def me_route():
    return jsonify(_session_payload(g.runtime, g.current_user)), 200
