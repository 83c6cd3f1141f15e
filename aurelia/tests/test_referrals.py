import pytest

from concierge.credits.service import get_account
from concierge.errors import ValidationError
from concierge.extensions import db
from concierge.models import Notification, Referral
from concierge.referrals import service


def test_create_referral_sends_invitation(app, make_member, functions):
    member = make_member(email="ada@example.com", full_name="Ada")
    referral = service.create_referral(member, "  Friend@Example.com ")
    assert referral.referred_email == "friend@example.com"
    assert referral.status == "pending"

    sent = functions.named("referral-email")
    assert sent == [{
        "type": "invitation",
        "referredEmail": "friend@example.com",
        "referrerName": "Ada",
        "referralLink": f"https://aurelia-privateconcierge.com/auth?ref={referral.referral_code}",
    }]


def test_create_referral_rejections(app, member):
    with pytest.raises(ValidationError):
        service.create_referral(member, "not-an-email")
    with pytest.raises(ValidationError) as exc:
        service.create_referral(member, member.email.upper())
    assert exc.value.message == "You cannot refer yourself"
    service.create_referral(member, "friend@example.com")
    with pytest.raises(ValidationError) as exc:
        service.create_referral(member, "friend@example.com")
    assert exc.value.message == "You have already invited this email"


def test_email_failure_keeps_referral(app, member, functions):
    functions.fail("referral-email", "smtp down")
    referral = service.create_referral(member, "friend@example.com")
    assert db.session.get(Referral, referral.id) is not None


def test_signup_and_subscription_reward_referrer(app, client, member, functions):
    referral = service.create_referral(member, "friend@example.com")
    functions.users["tok-friend"] = {"id": "auth-2", "email": "friend@example.com"}

    r = client.post("/auth/session", json={"access_token": "tok-friend", "referral_code": referral.referral_code})
    assert r.status_code == 200
    assert referral.status == "signed_up"
    assert referral.referred_user_id == r.get_json()["member"]["id"]

    functions.responses["check-subscription"] = {"subscribed": True, "tier": "silver"}
    r = client.post("/auth/subscription/refresh")
    assert r.status_code == 200
    assert referral.status == "rewarded"
    assert referral.reward_credits == 5
    assert referral.converted_at is not None
    assert get_account(member.id).balance == 5

    types = [body["type"] for body in functions.named("referral-email")]
    assert types == ["invitation", "signup_notification", "reward_confirmation"]
    assert Notification.query.filter_by(user_id=member.id).count() == 2

    # a later refresh does not pay out again
    client.post("/auth/subscription/refresh")
    assert get_account(member.id).balance == 5


def test_referral_code_ignored_for_existing_members(app, make_member, member):
    referral = service.create_referral(member, "friend@example.com")
    other = make_member(email="other@example.com")
    assert service.apply_referral_code(member, referral.referral_code) is None
    assert service.apply_referral_code(other, "nope") is None
    assert service.apply_referral_code(other, referral.referral_code.lower()) is referral


def test_referral_stats():
    rows = [
        Referral(status="pending", reward_credits=0),
        Referral(status="signed_up", reward_credits=0),
        Referral(status="rewarded", reward_credits=5),
    ]
    assert service.referral_stats(rows) == {
        "total": 3, "pending": 1, "signed_up": 2, "subscribed": 1, "total_earned": 5,
    }


def test_referral_routes(app, client, member, login):
    login(member)
    r = client.post("/referrals", json={"email": "friend@example.com"})
    assert r.status_code == 201
    assert r.get_json()["referral"]["link"].endswith(r.get_json()["referral"]["referral_code"])
    assert client.post("/referrals", json={"email": "friend@example.com"}).status_code == 400

    data = client.get("/referrals").get_json()
    assert data["stats"]["total"] == 1
    assert data["stats"]["pending"] == 1
