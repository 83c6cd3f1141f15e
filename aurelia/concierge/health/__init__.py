# concierge/health/__init__.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from concierge.auth.utils import admin_required
from concierge.extensions import db
from concierge.health.monitor import DOWN, HealthMonitor, database_ping

health_bp = Blueprint("health_bp", __name__, url_prefix="/system")


def get_health_monitor() -> HealthMonitor:
    """The app's monitor, built from config on first use."""
    monitor = current_app.extensions.get("health_monitor")
    if monitor is None:
        cfg = current_app.config
        endpoints = list(cfg.get("HEALTH_ENDPOINTS") or ())
        base = (cfg.get("FUNCTIONS_BASE_URL") or "").rstrip("/")
        if not endpoints and base:
            endpoints = [f"{base}/functions/v1/health-check"]
        monitor = HealthMonitor(
            endpoints,
            timeout=cfg.get("HEALTH_TIMEOUT", 10),
            degraded_ms=cfg.get("HEALTH_DEGRADED_MS", 3000),
            db_check=database_ping(db),
        )
        current_app.extensions["health_monitor"] = monitor
    return monitor


@health_bp.route("/health", methods=["GET"])
def health():
    status = get_health_monitor().check_all()
    code = 503 if status.overall == DOWN else 200
    return jsonify(status.to_dict()), code


@health_bp.route("/heal", methods=["POST"])
@admin_required
def heal():
    monitor = get_health_monitor()
    result = monitor.heal()
    return jsonify(result=result.to_dict(), healing_log=list(monitor.healing_log)), 200
