import hashlib
import hmac
import json
import time
from datetime import datetime

import pytest

from concierge.context import MemberContext
from concierge.credits import service
from concierge.errors import InsufficientCredits, ValidationError
from concierge.extensions import db
from concierge.models import Notification
from concierge.models_credits import CreditPackage, CreditTransaction, UserCredits


def _package(name, credits, price_cents, **kw):
    pkg = CreditPackage(name=name, credits=credits, price_cents=price_cents, **kw)
    db.session.add(pkg)
    db.session.commit()
    return pkg


def _signed(payload: str, secret: str = "whsec_test"):
    ts = int(time.time())
    sig = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def _checkout_event(member_id, session_id="cs_test_1", credits="10"):
    return {
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": session_id,
            "metadata": {
                "type": "credit_purchase",
                "user_id": member_id,
                "package_id": "pkg",
                "credits": credits,
                "package_name": "Ten Pack",
            },
        }},
    }


def test_best_value_prefers_lowest_rate_and_first_on_tie(app):
    a = _package("Starter", 5, 5000)
    b = _package("Plus", 10, 9000)
    c = _package("Also Plus", 20, 18000)
    _package("Broken", 0, 100)
    assert service.best_value_package(service.active_packages()) in (b, c)
    assert service.best_value_package([a, b, c]) is b
    assert service.best_value_package([]) is None
    assert service.price_per_credit(b) == "$9.00"


def test_first_use_opens_account_with_tier_allocation(app, member):
    ctx = MemberContext.for_member(member)
    tx = service.use_credit(ctx, 2, description="Dinner reservation")
    assert tx.amount == -2
    assert tx.balance_after == 13
    kinds = [t.transaction_type for t in CreditTransaction.query.order_by(CreditTransaction.amount).all()]
    assert sorted(kinds) == ["allocation", "usage"]


def test_use_credit_validates_amount(app, member):
    ctx = MemberContext.for_member(member)
    for bad in (0, -1, True, 1.5):
        with pytest.raises(ValidationError):
            service.use_credit(ctx, bad)


def test_insufficient_balance(app, make_member):
    silver = make_member(email="s@example.com", tier="silver")
    ctx = MemberContext.for_member(silver)
    service.use_credit(ctx, 5)
    with pytest.raises(InsufficientCredits):
        service.use_credit(ctx, 1)
    assert service.get_account(silver.id).balance == 0


def test_unsubscribed_member_has_no_credits(app, make_member):
    lapsed = make_member(email="l@example.com", tier="gold", status="canceled")
    ctx = MemberContext.for_member(lapsed)
    assert service.balance_summary(ctx) == {"balance": 0, "monthly_allocation": 0, "unlimited": False}
    with pytest.raises(InsufficientCredits):
        service.use_credit(ctx)


def test_unlimited_tier_logs_usage_without_deducting(app, make_member):
    plat = make_member(email="p@example.com", tier="platinum")
    ctx = MemberContext.for_member(plat)
    tx = service.use_credit(ctx, 50)
    assert tx.amount == -50
    assert service.get_account(plat.id).balance == 999
    assert service.balance_summary(ctx)["unlimited"] is True


def test_use_route_returns_402(app, client, make_member, login):
    login(make_member(email="s@example.com", tier="silver"))
    r = client.post("/credits/use", json={"amount": 6})
    assert r.status_code == 402
    assert r.get_json()["error"] == "Insufficient credits"


def test_balance_route(app, client, member, login):
    login(member)
    r = client.get("/credits")
    assert r.get_json() == {"balance": 15, "monthly_allocation": 15, "unlimited": False}


def test_purchase_uses_functions_without_stripe_key(app, client, member, login, functions):
    pkg = _package("Ten Pack", 10, 9000)
    functions.responses["purchase-credits"] = {"url": "https://checkout.example/abc"}
    login(member)
    r = client.post("/credits/purchase", json={"package_id": pkg.id})
    assert r.status_code == 200
    assert r.get_json()["url"] == "https://checkout.example/abc"
    assert functions.named("purchase-credits") == [{"packageId": pkg.id}]

    assert client.post("/credits/purchase", json={}).status_code == 400
    assert client.post("/credits/purchase", json={"package_id": "missing"}).status_code == 404


def test_packages_route_marks_best_value(app, client):
    _package("Starter", 5, 5000, sort_order=1)
    best = _package("Plus", 10, 9000, sort_order=2)
    _package("Hidden", 100, 100, is_active=False)
    data = client.get("/credits/packages").get_json()
    assert [p["name"] for p in data["packages"]] == ["Starter", "Plus"]
    assert data["best_value_id"] == best.id


def test_webhook_rejects_bad_signature(app, client, member):
    payload = json.dumps(_checkout_event(member.id))
    r = client.post("/credits/webhook", data=payload, headers={"Stripe-Signature": "t=1,v1=bad"})
    assert r.status_code == 400
    assert service.get_account(member.id) is None


def test_webhook_fulfils_purchase_once(app, client, member):
    payload = json.dumps(_checkout_event(member.id))
    headers = {"Stripe-Signature": _signed(payload), "Content-Type": "application/json"}

    r = client.post("/credits/webhook", data=payload, headers=headers)
    assert r.status_code == 200
    assert r.get_json() == {"received": True, "handled": True}
    assert service.get_account(member.id).balance == 10

    r = client.post("/credits/webhook", data=payload, headers=headers)
    assert r.status_code == 200
    assert service.get_account(member.id).balance == 10
    assert CreditTransaction.query.filter_by(external_ref="cs_test_1").count() == 1
    assert Notification.query.filter_by(user_id=member.id, kind="credits").count() == 1


def test_webhook_ignores_other_events(app, client):
    payload = json.dumps({"type": "invoice.paid", "data": {"object": {}}})
    r = client.post("/credits/webhook", data=payload, headers={"Stripe-Signature": _signed(payload)})
    assert r.get_json()["handled"] is False


def test_checkout_for_unknown_member_is_ignored(app):
    event = _checkout_event("no-such-member")
    assert service.handle_checkout_completed(event["data"]["object"]) is None


def test_monthly_reset_tops_up_once_per_month(app, make_member):
    gold = make_member(email="g@example.com", tier="gold")
    rich = make_member(email="r@example.com", tier="gold")
    service.use_credit(MemberContext.for_member(gold), 10)
    service.add_credits(rich.id, 40, "purchase", "Bought")
    rich_account = service.get_account(rich.id)
    rich_account.last_allocation_at = datetime(2026, 9, 1)
    service.get_account(gold.id).last_allocation_at = datetime(2026, 9, 1)
    db.session.commit()

    now = datetime(2026, 10, 1, 0, 5)
    assert service.reset_monthly_credits(now) == 2
    assert service.get_account(gold.id).balance == 15
    assert rich_account.balance == 40
    assert rich_account.monthly_allocation == 15

    assert service.reset_monthly_credits(now) == 0


def test_add_credits_rejects_usage_kind(app, member):
    with pytest.raises(ValidationError):
        service.add_credits(member.id, 5, "usage")
    assert UserCredits.query.count() == 0


def test_best_value_compares_cost_per_credit():
    a = CreditPackage(id="a", name="A", credits=10, price_cents=1000)
    b = CreditPackage(id="b", name="B", credits=30, price_cents=2400)
    assert service.best_value_package([a, b]).id == "b"


def test_bonus_before_first_use_keeps_tier_allowance(app, member):
    service.add_credits(member.id, 5, "bonus", "Referral reward")
    account = service.ensure_credit_account(MemberContext.for_member(member))
    assert account.monthly_allocation == 15
    assert account.balance == 20
    assert account.last_allocation_at is not None

    service.ensure_credit_account(MemberContext.for_member(member))
    assert account.balance == 20
    kinds = sorted(t.transaction_type for t in CreditTransaction.query.filter_by(user_id=member.id))
    assert kinds == ["allocation", "bonus"]
