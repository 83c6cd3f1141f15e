# concierge/referrals/__init__.py
from __future__ import annotations

from flask import Blueprint, jsonify, request

from concierge.auth.utils import current_member, login_required
from concierge.referrals import service

referrals_bp = Blueprint("referrals_bp", __name__, url_prefix="/referrals")


@referrals_bp.route("", methods=["GET"])
@login_required
def index():
    referrals = service.list_referrals(current_member().id)
    return jsonify(
        referrals=[r.to_dict() for r in referrals],
        stats=service.referral_stats(referrals),
    ), 200


@referrals_bp.route("", methods=["POST"])
@login_required
def create():
    payload = request.get_json(silent=True) or {}
    referral = service.create_referral(current_member(), payload.get("email", ""))
    data = referral.to_dict()
    data["link"] = service.referral_link(referral.referral_code)
    return jsonify(referral=data), 201
