# concierge/auth/__init__.py
from __future__ import annotations

from datetime import datetime

from flask import Blueprint, current_app, jsonify, request, session
from flask_login import login_user, logout_user

from concierge.auth.utils import BACKEND_TOKEN_KEY, backend_token, current_member, login_required
from concierge.errors import FunctionInvokeError, ValidationError
from concierge.extensions import db, limiter
from concierge.functions_client import get_functions_client
from concierge.models import TIERS, Member
from concierge.referrals.service import apply_referral_code, reward_referral

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/auth")


def _member_for_backend_user(user: dict, referral_code: str = None) -> Member:
    """Find or create the profile row for a backend auth user."""
    backend_id = str(user.get("id") or "").strip()
    email = (user.get("email") or "").strip().lower()
    if not backend_id or not email:
        raise ValidationError("Backend user is missing id or email")

    member = Member.query.filter_by(backend_user_id=backend_id).first()
    if member is None:
        member = Member.query.filter_by(email=email).first()
    created = member is None
    if created:
        meta = user.get("user_metadata") or {}
        member = Member(email=email, full_name=meta.get("full_name"), role="member")
        db.session.add(member)
        current_app.logger.info(f"Created profile for {email}")
    member.backend_user_id = backend_id
    member.email = email
    db.session.commit()
    if created and referral_code:
        apply_referral_code(member, referral_code)
    return member


def apply_subscription(member: Member, data: dict) -> Member:
    """Store a check-subscription answer on the member."""
    tier = (data.get("tier") or "").lower() or None
    if data.get("subscribed") and tier in TIERS:
        member.tier = tier
        member.subscription_status = data.get("status") or "active"
    else:
        member.tier = None
        member.subscription_status = "inactive"
    member.subscription_checked_at = datetime.utcnow()
    db.session.commit()
    if member.is_subscribed:
        reward_referral(member)
    return member


@auth_bp.route("/session", methods=["POST"])
@limiter.limit("10 per minute")
def create_session():
    """Exchange a backend access token for an app session."""
    payload = request.get_json(silent=True) or {}
    token = (payload.get("access_token") or "").strip()
    if not token:
        return jsonify(error="access_token is required"), 400

    try:
        user = get_functions_client().get_user(token)
    except FunctionInvokeError as e:
        current_app.logger.warning(f"Session token rejected: {e}")
        return jsonify(error="Invalid or expired session"), 401

    member = _member_for_backend_user(user, payload.get("referral_code"))
    login_user(member)
    session[BACKEND_TOKEN_KEY] = token
    current_app.logger.info(f"Member {member.id} signed in")
    return jsonify(member=member.to_dict()), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    logout_user()
    session.pop(BACKEND_TOKEN_KEY, None)
    return jsonify(ok=True), 200


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(member=current_member().to_dict()), 200


@auth_bp.route("/subscription/refresh", methods=["POST"])
@login_required
def refresh_subscription():
    member = current_member()
    data = get_functions_client().check_subscription(access_token=backend_token())
    apply_subscription(member, data)
    return jsonify(member=member.to_dict()), 200
