# concierge/orla/__init__.py
from __future__ import annotations

from flask import Blueprint, Response, current_app, jsonify, request

from concierge.auth.utils import backend_token, login_required
from concierge.functions_client import get_functions_client
from concierge.orla.ambient import DURATIONS, MOODS, AmbientPlayer
from concierge.orla.animation import AvatarAnimator, detect_emotion, emotion_index

orla_bp = Blueprint("orla_bp", __name__, url_prefix="/orla")


def get_ambient_player() -> AmbientPlayer:
    player = current_app.extensions.get("ambient_player")
    if player is None:
        player = AmbientPlayer(get_functions_client())
        current_app.extensions["ambient_player"] = player
    return player


@orla_bp.route("/voice/token", methods=["POST"])
@login_required
def voice_token():
    """Ephemeral token for the real-time voice session."""
    data = get_functions_client().conversation_token(access_token=backend_token())
    token = data.get("token") or data.get("signed_url") or data.get("signedUrl")
    if not token:
        current_app.logger.warning("conversation token response had no token")
        return jsonify(error="Voice session unavailable. Please try again."), 502
    return jsonify(token=token), 200


@orla_bp.route("/emotion", methods=["POST"])
@login_required
def emotion():
    """Emotion Orla should show for a reply, plus the first animation frame for it."""
    payload = request.get_json(silent=True) or {}
    detected = detect_emotion(payload.get("text") or "")
    animator = AvatarAnimator()
    animator.set_emotion(detected, payload.get("intensity", 1.0))
    animator.set_speaking(bool(payload.get("speaking")))
    frame = animator.tick()
    return jsonify(emotion=detected, emotion_index=emotion_index(detected), frame=frame.to_dict()), 200


@orla_bp.route("/ambient/moods", methods=["GET"])
def ambient_moods():
    return jsonify(
        moods=[{"id": k, "name": v[0], "category": v[1]} for k, v in MOODS.items()],
        durations=list(DURATIONS),
    ), 200


@orla_bp.route("/ambient", methods=["POST"])
@login_required
def ambient_track():
    payload = request.get_json(silent=True) or {}
    try:
        duration = int(payload.get("duration") or 60)
    except (TypeError, ValueError):
        return jsonify(error="duration must be a number of seconds"), 400
    audio = get_ambient_player().generate(payload.get("mood") or "luxury", duration)
    return Response(audio, mimetype="audio/mpeg")
