# concierge/credits/__init__.py
from __future__ import annotations

import json

import stripe
from flask import Blueprint, current_app, jsonify, request

from concierge.auth.utils import backend_token, current_member, login_required
from concierge.context import get_member_context
from concierge.credits import service
from concierge.errors import ValidationError

credits_bp = Blueprint("credits_bp", __name__, url_prefix="/credits")


@credits_bp.route("", methods=["GET"])
@login_required
def balance():
    return jsonify(service.balance_summary(get_member_context())), 200


@credits_bp.route("/transactions", methods=["GET"])
@login_required
def transactions():
    limit = min(request.args.get("limit", 50, type=int), 200)
    items = service.list_transactions(current_member().id, limit=limit)
    return jsonify(transactions=[t.to_dict() for t in items]), 200


@credits_bp.route("/packages", methods=["GET"])
def packages():
    pkgs = service.active_packages()
    best = service.best_value_package(pkgs)
    out = []
    for p in pkgs:
        item = p.to_dict()
        item["price_per_credit"] = service.price_per_credit(p)
        out.append(item)
    return jsonify(packages=out, best_value_id=best.id if best else None), 200


@credits_bp.route("/purchase", methods=["POST"])
@login_required
def purchase():
    payload = request.get_json(silent=True) or {}
    package_id = (payload.get("package_id") or "").strip()
    if not package_id:
        raise ValidationError("package_id is required")
    url = service.start_purchase(current_member(), package_id, access_token=backend_token())
    return jsonify(url=url), 200


@credits_bp.route("/use", methods=["POST"])
@login_required
def use():
    payload = request.get_json(silent=True) or {}
    amount = payload.get("amount", 1)
    tx = service.use_credit(
        get_member_context(),
        amount=amount,
        description=payload.get("description"),
        service_request_id=payload.get("service_request_id"),
    )
    return jsonify(transaction=tx.to_dict(), balance=tx.balance_after), 200


@credits_bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    """Stripe webhook; only signed events are processed."""
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        current_app.logger.error("Stripe webhook called but STRIPE_WEBHOOK_SECRET is not set")
        return jsonify(error="Webhook not configured"), 400

    payload = request.get_data(as_text=True)
    signature = request.headers.get("Stripe-Signature", "")
    try:
        stripe.WebhookSignature.verify_header(payload, signature, secret)
        event = json.loads(payload)
    except stripe.SignatureVerificationError as e:
        current_app.logger.warning(f"Rejected Stripe webhook: {e}")
        return jsonify(error="Invalid signature"), 400
    except ValueError:
        return jsonify(error="Invalid payload"), 400

    handled = service.process_webhook_event(event)
    return jsonify(received=True, handled=handled), 200
