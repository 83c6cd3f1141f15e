# concierge/referrals/service.py
from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from concierge.credits.service import add_credits
from concierge.errors import FunctionInvokeError, ValidationError
from concierge.extensions import db
from concierge.functions_client import get_functions_client
from concierge.models import Member, Referral
from concierge.notifications.service import notify

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

SIGNED_UP_STATES = ("signed_up", "subscribed", "rewarded")
SUBSCRIBED_STATES = ("subscribed", "rewarded")


def _display_name(member: Member) -> str:
    return member.full_name or member.email.split("@")[0]


def referral_link(code: str) -> str:
    base = current_app.config.get("REFERRAL_BASE_URL", "").rstrip("/")
    return f"{base}?ref={code}"


def _send(payload: dict) -> bool:
    """Referral emails are best effort; the referral row is kept either way."""
    try:
        get_functions_client().referral_email(payload)
        return True
    except FunctionInvokeError as e:
        current_app.logger.warning(f"Referral email ({payload.get('type')}) failed: {e}")
        return False


def list_referrals(member_id: str) -> List[Referral]:
    return (
        Referral.query.filter_by(referrer_id=member_id)
        .order_by(Referral.created_at.desc())
        .all()
    )


def referral_stats(referrals: List[Referral]) -> Dict[str, int]:
    return {
        "total": len(referrals),
        "pending": sum(1 for r in referrals if r.status == "pending"),
        "signed_up": sum(1 for r in referrals if r.status in SIGNED_UP_STATES),
        "subscribed": sum(1 for r in referrals if r.status in SUBSCRIBED_STATES),
        "total_earned": sum(r.reward_credits or 0 for r in referrals if r.status == "rewarded"),
    }


def create_referral(member: Member, email: str) -> Referral:
    """
    Invite ``email`` on behalf of ``member``.

    Raises:
        ValidationError: invalid email, self-referral or an existing invite
    """
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email address")
    if email == (member.email or "").lower():
        raise ValidationError("You cannot refer yourself")
    if Referral.query.filter_by(referrer_id=member.id, referred_email=email).first() is not None:
        raise ValidationError("You have already invited this email")

    referral = Referral(referrer_id=member.id, referred_email=email)
    db.session.add(referral)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("You have already invited this email")

    _send({
        "type": "invitation",
        "referredEmail": email,
        "referrerName": _display_name(member),
        "referralLink": referral_link(referral.referral_code),
    })
    current_app.logger.info(f"Member {member.id} referred {email}")
    return referral


def apply_referral_code(member: Member, code: str) -> Optional[Referral]:
    """Link a newly signed-up member to the referral that invited them."""
    code = (code or "").strip().upper()
    if not code:
        return None
    referral = Referral.query.filter_by(referral_code=code).first()
    if referral is None or referral.status != "pending" or referral.referrer_id == member.id:
        return None

    referral.referred_user_id = member.id
    referral.status = "signed_up"
    db.session.commit()

    referrer = db.session.get(Member, referral.referrer_id)
    if referrer is not None:
        _send({
            "type": "signup_notification",
            "referrerEmail": referrer.email,
            "referrerName": _display_name(referrer),
            "referredName": _display_name(member),
        })
        notify(referrer.id, "Your referral joined", f"{_display_name(member)} signed up with your invitation.",
               kind="info", link="/dashboard?tab=referrals")
    return referral


def reward_referral(member: Member) -> Optional[Referral]:
    """
    Reward the referrer once the referred member subscribes.

    Moves the referral through subscribed to rewarded and grants the referrer
    ``REFERRAL_REWARD_CREDITS`` bonus credits. Runs once per referral.
    """
    referral = Referral.query.filter_by(referred_user_id=member.id, status="signed_up").first()
    if referral is None or not member.is_subscribed:
        return None

    reward = int(current_app.config.get("REFERRAL_REWARD_CREDITS", 0))
    referral.status = "subscribed"
    referral.converted_at = datetime.utcnow()
    if reward > 0:
        add_credits(referral.referrer_id, reward, "bonus", f"Referral reward for {member.email}", commit=False)
        referral.reward_credits = reward
        referral.status = "rewarded"
    db.session.commit()

    referrer = db.session.get(Member, referral.referrer_id)
    if referrer is not None and reward > 0:
        _send({
            "type": "reward_confirmation",
            "referrerEmail": referrer.email,
            "referrerName": _display_name(referrer),
            "rewardType": "credit",
            "rewardValue": reward,
        })
        notify(referrer.id, "Referral reward applied", f"{reward} bonus credits were added to your account.",
               kind="credits", link="/dashboard/credits", data={"credits": reward})
    return referral
