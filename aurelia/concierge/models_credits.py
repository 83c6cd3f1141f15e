# concierge/models_credits.py
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text

from concierge.extensions import db
from concierge.models import new_id

TRANSACTION_TYPES = ("allocation", "usage", "purchase", "bonus", "refund")


class CreditPackage(db.Model):
    __tablename__ = "credit_packages"

    id = db.Column(String(36), primary_key=True, default=new_id)
    name = db.Column(String(150), nullable=False)
    credits = db.Column(Integer, nullable=False)
    price_cents = db.Column(Integer, nullable=False)
    currency = db.Column(String(8), nullable=False, default="usd")
    description = db.Column(Text, nullable=True)
    is_active = db.Column(Boolean, nullable=False, default=True)
    sort_order = db.Column(Integer, nullable=False, default=0)
    created_at = db.Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "credits": self.credits,
            "price_cents": self.price_cents,
            "currency": self.currency,
            "description": self.description,
        }


class UserCredits(db.Model):
    __tablename__ = "user_credits"

    id = db.Column(String(36), primary_key=True, default=new_id)
    user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), unique=True, nullable=False)
    balance = db.Column(Integer, nullable=False, default=0)
    monthly_allocation = db.Column(Integer, nullable=False, default=0)
    last_allocation_at = db.Column(DateTime, nullable=True)
    created_at = db.Column(DateTime, default=datetime.utcnow)
    updated_at = db.Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "balance": self.balance,
            "monthly_allocation": self.monthly_allocation,
            "last_allocation_at": self.last_allocation_at.isoformat() if self.last_allocation_at else None,
        }


class CreditTransaction(db.Model):
    """Ledger row. Rows are only ever inserted."""

    __tablename__ = "credit_transactions"

    id = db.Column(String(36), primary_key=True, default=new_id)
    user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    amount = db.Column(Integer, nullable=False)  # negative for usage
    transaction_type = db.Column(String(16), nullable=False)
    description = db.Column(String(255), nullable=True)
    balance_after = db.Column(Integer, nullable=False)
    service_request_id = db.Column(String(64), nullable=True)
    external_ref = db.Column(String(128), unique=True, nullable=True)  # checkout session id for purchases
    created_at = db.Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "transaction_type": self.transaction_type,
            "description": self.description,
            "balance_after": self.balance_after,
            "service_request_id": self.service_request_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
