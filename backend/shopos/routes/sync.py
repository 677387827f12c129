# Overview: Flask API routes for sync status, manual drains and the network signal.

# backend/shopos/routes/sync.py
"""
Sync routes.

GET /status is open so the shell can show the pending-sync badge before
anyone signs in. Everything else requires a signed-in user.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import get_runtime, require_login, require_permission
from ..permissions import MANAGE_SETTINGS


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/status")
def sync_status():
    return jsonify(get_runtime().engine.status()), 200


@sync_bp.post("/drain")
@require_login
def drain_route():
    """Replay queued operations now (the "sync now" button)."""
    try:
        result = g.runtime.engine.drain()
    except Exception:
        current_app.logger.exception("Manual sync drain failed")
        return jsonify({"error": "Internal server error"}), 500

    payload = result.to_dict()
    payload["pending"] = g.runtime.queue.count()
    return jsonify(payload), 200


@sync_bp.post("/network")
@require_login
def network_route():
    """
    Report connectivity from the shell (browser online/offline events).

    Body: {"online": bool}. Going online triggers a drain.
    """
    payload = request.get_json(silent=True) or {}
    online = payload.get("online")
    if not isinstance(online, bool):
        return jsonify({"error": "online must be a boolean"}), 400

    changed = g.runtime.network.set_online(online)
    return jsonify({"online": g.runtime.network.is_online, "changed": changed}), 200


@sync_bp.get("/dropped")
@require_login
@require_permission(MANAGE_SETTINGS)
def dropped_route():
    """Operations discarded after exhausting their retries."""
    return jsonify(g.runtime.queue.dropped()), 200


@sync_bp.delete("/dropped")
@require_login
@require_permission(MANAGE_SETTINGS)
def clear_dropped_route():
    cleared = g.runtime.queue.clear_dropped()
    return jsonify({"cleared": cleared}), 200
