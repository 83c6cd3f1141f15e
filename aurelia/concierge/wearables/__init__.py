# concierge/wearables/__init__.py
from __future__ import annotations

import base64
import binascii
import threading
from datetime import datetime, timedelta
from typing import Optional

from flask import Blueprint, current_app, jsonify, request

from concierge.auth.utils import current_member, login_required
from concierge.errors import ValidationError
from concierge.wearables.heart_rate import HeartRateSession

wearables_bp = Blueprint("wearables_bp", __name__, url_prefix="/wearables")

_lock = threading.Lock()

# Monitors that have sent nothing for this long are treated as disconnected
SESSION_IDLE = timedelta(minutes=30)


def _sessions() -> dict:
    return current_app.extensions.setdefault("heart_rate_sessions", {})


def prune_sessions(now: Optional[datetime] = None) -> int:
    """Drop idle sessions. Returns how many were dropped."""
    cutoff = (now or datetime.utcnow()) - SESSION_IDLE
    with _lock:
        sessions = _sessions()
        stale = [k for k, s in sessions.items() if s.updated_at is None or s.updated_at < cutoff]
        for member_id in stale:
            del sessions[member_id]
    return len(stale)


def get_session(member_id: str, create: bool = True) -> Optional[HeartRateSession]:
    """The member's in-process monitor session."""
    with _lock:
        sessions = _sessions()
        session = sessions.get(member_id)
        if session is None and create:
            session = sessions[member_id] = HeartRateSession()
        return session


def drop_session(member_id: str) -> bool:
    with _lock:
        return _sessions().pop(member_id, None) is not None


def decode_payload(payload: dict) -> bytes:
    """Raw characteristic bytes from ``{"base64": ...}`` or ``{"hex": ...}``."""
    try:
        if payload.get("base64"):
            return base64.b64decode(payload["base64"], validate=True)
        if payload.get("hex"):
            return bytes.fromhex(payload["hex"])
    except (binascii.Error, ValueError, TypeError):
        raise ValidationError("Measurement is not valid base64 or hex")
    raise ValidationError("Send the measurement as base64 or hex")


@wearables_bp.route("/heart-rate", methods=["POST"])
@login_required
def upload_heart_rate():
    data = decode_payload(request.get_json(silent=True) or {})
    prune_sessions()
    try:
        reading = get_session(current_member().id).add(data)
    except ValueError as e:
        raise ValidationError(str(e))
    return jsonify(reading=reading), 200


@wearables_bp.route("/heart-rate", methods=["GET"])
@login_required
def latest_reading():
    session = get_session(current_member().id, create=False)
    return jsonify(reading=session.reading() if session else None), 200


@wearables_bp.route("/heart-rate", methods=["DELETE"])
@login_required
def disconnect():
    drop_session(current_member().id)
    return jsonify(ok=True), 200
