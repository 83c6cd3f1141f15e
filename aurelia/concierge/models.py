# concierge/models.py
from __future__ import annotations

import secrets
import uuid
from datetime import datetime

from flask_login import UserMixin
from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text

from concierge.extensions import db

TIERS = ("silver", "gold", "platinum")
ACTIVE_SUBSCRIPTION_STATES = ("active", "trialing")


def new_id() -> str:
    return str(uuid.uuid4())


# -------------------------
# Member (profiles)
# -------------------------
class Member(UserMixin, db.Model):
    __tablename__ = "profiles"

    id = db.Column(String(36), primary_key=True, default=new_id)
    backend_user_id = db.Column(String(64), unique=True, index=True, nullable=True)
    email = db.Column(String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(String(255), nullable=True)
    role = db.Column(String(16), nullable=False, default="member")  # member|admin

    tier = db.Column(String(16), nullable=True)  # silver|gold|platinum
    subscription_status = db.Column(String(32), nullable=True)  # active|trialing|past_due|canceled
    subscription_checked_at = db.Column(DateTime, nullable=True)

    created_at = db.Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == "admin"

    @property
    def is_subscribed(self) -> bool:
        return bool(self.tier) and (self.subscription_status or "") in ACTIVE_SUBSCRIPTION_STATES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "tier": self.tier,
            "subscription_status": self.subscription_status,
            "subscribed": self.is_subscribed,
        }

    def __repr__(self) -> str:
        return f"<Member {self.email} tier={self.tier}>"


# -------------------------
# Notifications
# -------------------------
class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(String(36), primary_key=True, default=new_id)
    user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    title = db.Column(String(255), nullable=False)
    message = db.Column(Text, nullable=True)
    kind = db.Column(String(32), nullable=False, default="info")  # info|credits|partner|social|system
    link = db.Column(String(512), nullable=True)
    data = db.Column(JSON, nullable=True)
    is_read = db.Column(Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "kind": self.kind,
            "link": self.link,
            "data": self.data or {},
            "is_read": bool(self.is_read),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# -------------------------
# Referrals
# -------------------------
class Referral(db.Model):
    __tablename__ = "referrals"

    id = db.Column(String(36), primary_key=True, default=new_id)
    referrer_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    referred_email = db.Column(String(255), nullable=False)
    referred_user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    referral_code = db.Column(String(32), unique=True, nullable=False, default=lambda: secrets.token_hex(4).upper())
    status = db.Column(String(16), nullable=False, default="pending")  # pending|signed_up|subscribed|rewarded
    reward_credits = db.Column(Integer, nullable=False, default=0)
    created_at = db.Column(DateTime, default=datetime.utcnow, nullable=False)
    converted_at = db.Column(DateTime, nullable=True)

    __table_args__ = (
        db.UniqueConstraint("referrer_id", "referred_email", name="uq_referral_referrer_email"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "referred_email": self.referred_email,
            "referral_code": self.referral_code,
            "status": self.status,
            "reward_credits": self.reward_credits,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
