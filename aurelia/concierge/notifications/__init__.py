# concierge/notifications/__init__.py
from __future__ import annotations

import json
import time

import redis
from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from concierge.auth.utils import current_member, login_required
from concierge.errors import NotFound
from concierge.extensions import limiter
from concierge.notifications import service

notifications_bp = Blueprint("notifications_bp", __name__, url_prefix="/notifications")

STREAM_MAX_SECONDS = 300
PING_EVERY = 15


def _sse(data: dict, event: str = None) -> str:
    head = f"event: {event}\n" if event else ""
    return f"{head}data: {json.dumps(data, separators=(',', ':'))}\n\n"


@notifications_bp.route("", methods=["GET"])
@login_required
def index():
    member = current_member()
    items = service.list_notifications(member.id)
    return jsonify(
        notifications=[n.to_dict() for n in items],
        unread=service.unread_count(member.id),
    ), 200


@notifications_bp.route("/<notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id):
    member = current_member()
    if not service.mark_read(member.id, notification_id):
        raise NotFound("Notification not found")
    return jsonify(unread=service.unread_count(member.id)), 200


@notifications_bp.route("/read-all", methods=["POST"])
@login_required
def mark_all_read():
    updated = service.mark_all_read(current_member().id)
    return jsonify(updated=updated, unread=0), 200


@notifications_bp.route("/stream", methods=["GET"])
@limiter.exempt
@login_required
def stream():
    """
    Server-sent events with the unread count.

    Sends the current count, then every change published on the member's
    Redis channel. Without Redis the stream ends after the snapshot and the
    client reconnects after ``retry``.
    """
    member_id = current_member().id
    client = getattr(current_app, "redis", None)
    first = {"unread": service.unread_count(member_id)}
    max_seconds = min(request.args.get("max", STREAM_MAX_SECONDS, type=int), STREAM_MAX_SECONDS)

    def gen():
        yield "retry: 15000\n\n"
        yield _sse(first, "count")
        if client is None:
            return
        pubsub = client.pubsub(ignore_subscribe_messages=True)
        try:
            pubsub.subscribe(service.channel_for(member_id))
            deadline = time.monotonic() + max_seconds
            while time.monotonic() < deadline:
                msg = pubsub.get_message(timeout=PING_EVERY)
                if msg is None:
                    yield "event: ping\ndata: {}\n\n"
                    continue
                try:
                    yield _sse(json.loads(msg["data"]), "count")
                except (TypeError, ValueError):
                    continue
        except redis.RedisError as e:
            current_app.logger.warning(f"notification stream for {member_id} ended: {e}")
        finally:
            pubsub.close()

    return Response(
        stream_with_context(gen()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
