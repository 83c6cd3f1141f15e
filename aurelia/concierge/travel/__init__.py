# concierge/travel/__init__.py
from __future__ import annotations

from flask import Blueprint, jsonify, request

from concierge.auth.utils import current_member, login_required
from concierge.travel import recommendations as catalog
from concierge.travel import service

travel_bp = Blueprint("travel_bp", __name__, url_prefix="/travel")


def _options(rows):
    return [{"id": r[0], "label": r[1], "description": r[2]} for r in rows]


@travel_bp.route("/options", methods=["GET"])
def options():
    return jsonify(
        archetypes=_options(catalog.TRAVELER_ARCHETYPES),
        paces=_options(catalog.PACE_PREFERENCES),
        accommodation_tiers=_options(catalog.ACCOMMODATION_TIERS),
        cuisines=list(catalog.CUISINE_OPTIONS),
        activities=[{"id": k, "label": v} for k, v in catalog.ACTIVITY_OPTIONS],
    ), 200


@travel_bp.route("/profile", methods=["GET"])
@login_required
def get_profile():
    member_id = current_member().id
    profile = service.get_profile(member_id)
    return jsonify(
        profile=profile.to_dict() if profile else None,
        preferences=[p.to_dict() for p in service.list_preferences(member_id)],
    ), 200


@travel_bp.route("/profile", methods=["PUT"])
@login_required
def save_profile():
    profile = service.save_profile(current_member().id, request.get_json(silent=True) or {})
    return jsonify(profile=profile.to_dict()), 200


@travel_bp.route("/onboarding", methods=["POST"])
@login_required
def complete_onboarding():
    profile = service.complete_onboarding(current_member().id, request.get_json(silent=True) or {})
    return jsonify(profile=profile.to_dict()), 200


@travel_bp.route("/preferences", methods=["POST"])
@login_required
def save_preference():
    payload = request.get_json(silent=True) or {}
    pref = service.save_preference(
        current_member().id,
        payload.get("category"),
        payload.get("key"),
        payload.get("value"),
        source=payload.get("source", "explicit"),
    )
    return jsonify(preference=pref.to_dict()), 200


@travel_bp.route("/recommendations", methods=["GET"])
@login_required
def recommendations_feed():
    member_id = current_member().id
    profile = service.get_profile(member_id)
    limit = max(1, min(request.args.get("limit", 6, type=int), 20))
    recs = service.recommendations_for(member_id, limit=limit)
    archetype = catalog.archetype_label(profile.traveler_archetype if profile else None)
    return jsonify(
        recommendations=[r.to_dict() for r in recs],
        personalized_for=archetype,
    ), 200


@travel_bp.route("/interest", methods=["POST"])
@login_required
def record_interest():
    payload = request.get_json(silent=True) or {}
    service.record_interest(
        current_member().id,
        payload.get("service_id"),
        service_title=payload.get("service_title"),
        match_score=payload.get("match_score"),
    )
    return jsonify(ok=True, message="Your concierge team has been notified and will reach out shortly."), 201
