# concierge/social/__init__.py
from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, jsonify, request

from concierge.auth.utils import current_member, login_required
from concierge.errors import ValidationError
from concierge.social import service

social_bp = Blueprint("social_bp", __name__, url_prefix="/social")


def _parse_when(value, field: str):
    """ISO-8601 timestamp -> naive UTC datetime."""
    if not value:
        return None
    try:
        when = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 timestamp")
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc).replace(tzinfo=None)
    return when


@social_bp.route("/platforms", methods=["GET"])
def platforms():
    return jsonify(platforms=service.PLATFORM_LIMITS), 200


# ---------- posts ----------

@social_bp.route("/posts", methods=["GET"])
@login_required
def list_posts():
    posts = service.list_posts(
        current_member().id,
        status=request.args.get("status"),
        campaign_id=request.args.get("campaign_id"),
    )
    return jsonify(posts=[p.to_dict() for p in posts]), 200


@social_bp.route("/posts", methods=["POST"])
@login_required
def create_post():
    payload = request.get_json(silent=True) or {}
    when = _parse_when(payload.get("scheduled_at"), "scheduled_at")
    if when is not None and not str(payload.get("content") or "").strip():
        raise ValidationError("Post content is empty")
    post = service.create_post(
        current_member().id,
        payload.get("platform", ""),
        content=payload.get("content", ""),
        hashtags=payload.get("hashtags"),
        media_urls=payload.get("media_urls"),
        campaign_id=payload.get("campaign_id"),
        account_id=payload.get("account_id"),
    )
    if when is not None:
        service.schedule_post(post, when)
    return jsonify(post=post.to_dict()), 201


@social_bp.route("/posts/<post_id>", methods=["GET"])
@login_required
def get_post(post_id):
    post = service.load_post(current_member().id, post_id)
    data = post.to_dict()
    data["text"] = service.compose_post_text(post)
    return jsonify(post=data), 200


@social_bp.route("/posts/<post_id>/schedule", methods=["POST"])
@login_required
def schedule_post(post_id):
    post = service.load_post(current_member().id, post_id)
    payload = request.get_json(silent=True) or {}
    service.schedule_post(post, _parse_when(payload.get("scheduled_at"), "scheduled_at"))
    return jsonify(post=post.to_dict()), 200


@social_bp.route("/posts/<post_id>/cancel", methods=["POST"])
@login_required
def cancel_post(post_id):
    post = service.cancel_post(service.load_post(current_member().id, post_id))
    return jsonify(post=post.to_dict()), 200


@social_bp.route("/posts/<post_id>/publish", methods=["POST"])
@login_required
def publish_post(post_id):
    post = service.publish_post(service.load_post(current_member().id, post_id))
    status = 200 if post.status == "published" else 502
    return jsonify(post=post.to_dict()), status


# ---------- campaigns ----------

@social_bp.route("/campaigns", methods=["GET"])
@login_required
def list_campaigns():
    campaigns = service.list_campaigns(current_member().id)
    return jsonify(campaigns=[service.campaign_summary(c) for c in campaigns]), 200


@social_bp.route("/campaigns", methods=["POST"])
@login_required
def create_campaign():
    payload = request.get_json(silent=True) or {}
    campaign = service.create_campaign(
        current_member().id,
        payload.get("name", ""),
        description=payload.get("description"),
        campaign_type=payload.get("campaign_type", "awareness"),
        target_platforms=payload.get("target_platforms"),
        target_audience=payload.get("target_audience"),
        budget_cents=payload.get("budget_cents"),
        start_date=_parse_when(payload.get("start_date"), "start_date"),
        end_date=_parse_when(payload.get("end_date"), "end_date"),
    )
    return jsonify(campaign=campaign.to_dict()), 201


@social_bp.route("/campaigns/<campaign_id>", methods=["PATCH"])
@login_required
def update_campaign(campaign_id):
    campaign = service.load_campaign(current_member().id, campaign_id)
    payload = request.get_json(silent=True) or {}
    if "status" in payload:
        service.set_campaign_status(campaign, payload["status"])
    return jsonify(campaign=service.campaign_summary(campaign)), 200
