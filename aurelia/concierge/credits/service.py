# concierge/credits/service.py
"""
Service credits: balances, the append-only ledger and Stripe top-ups.

Provides:
- Initial and monthly tier allocations
- Credit usage (unlimited tiers are recorded without deducting)
- Credit package checkout and webhook fulfilment
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import stripe
from flask import current_app
from sqlalchemy.exc import IntegrityError

from concierge.context import TIER_CREDIT_ALLOCATION, MemberContext
from concierge.errors import InsufficientCredits, NotFound, ValidationError
from concierge.extensions import db
from concierge.functions_client import get_functions_client
from concierge.models import Member
from concierge.models_credits import TRANSACTION_TYPES, CreditPackage, CreditTransaction, UserCredits
from concierge.notifications.service import notify


def get_stripe_client() -> stripe:
    """Get configured Stripe client."""
    api_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not api_key:
        raise ValueError("STRIPE_SECRET_KEY not configured")
    stripe.api_key = api_key
    return stripe


# ===== Packages =====

def active_packages() -> List[CreditPackage]:
    return (
        CreditPackage.query.filter_by(is_active=True)
        .order_by(CreditPackage.sort_order.asc(), CreditPackage.price_cents.asc())
        .all()
    )


def best_value_package(packages: Iterable[CreditPackage]) -> Optional[CreditPackage]:
    """Package with the lowest price per credit; the first one wins a tie."""
    best = None
    best_rate = None
    for pkg in packages:
        if not pkg.credits or pkg.credits <= 0:
            continue
        rate = pkg.price_cents / pkg.credits
        if best_rate is None or rate < best_rate:
            best, best_rate = pkg, rate
    return best


def price_per_credit(pkg: CreditPackage) -> str:
    if not pkg.credits:
        return "-"
    return f"${pkg.price_cents / pkg.credits / 100:.2f}"


# ===== Balances =====

def get_account(member_id: str) -> Optional[UserCredits]:
    return UserCredits.query.filter_by(user_id=member_id).first()


def _record(member_id: str, amount: int, kind: str, balance_after: int,
            description: Optional[str] = None, service_request_id: Optional[str] = None,
            external_ref: Optional[str] = None) -> CreditTransaction:
    if kind not in TRANSACTION_TYPES:
        raise ValueError(f"unknown transaction type {kind!r}")
    tx = CreditTransaction(
        user_id=member_id,
        amount=amount,
        transaction_type=kind,
        description=description,
        balance_after=balance_after,
        service_request_id=service_request_id,
        external_ref=external_ref,
    )
    db.session.add(tx)
    return tx


def ensure_credit_account(ctx: MemberContext) -> Optional[UserCredits]:
    """
    Return the member's credit account, creating it on first use.

    A subscribed member without an account gets their tier allowance plus an
    ``allocation`` ledger row. Members without a subscription get no account.
    """
    if ctx.member_id is None:
        return None
    account = get_account(ctx.member_id)
    if not (ctx.subscribed and ctx.tier):
        return account
    if account is not None and account.last_allocation_at is not None:
        return account

    # Accounts opened by a bonus or purchase have not had their allowance yet
    allocation = ctx.monthly_allocation
    if account is None:
        account = UserCredits(user_id=ctx.member_id, balance=0, monthly_allocation=0)
        db.session.add(account)
    account.balance += allocation
    account.monthly_allocation = allocation
    account.last_allocation_at = datetime.utcnow()
    _record(ctx.member_id, allocation, "allocation", account.balance, "Initial monthly credit allocation")
    db.session.commit()
    current_app.logger.info(f"Opened credit account for {ctx.member_id} with {allocation} credits")
    return account


def balance_summary(ctx: MemberContext) -> Dict[str, Any]:
    account = ensure_credit_account(ctx)
    return {
        "balance": account.balance if account else 0,
        "monthly_allocation": ctx.monthly_allocation,
        "unlimited": ctx.unlimited_credits,
    }


def list_transactions(member_id: str, limit: int = 50) -> List[CreditTransaction]:
    return (
        CreditTransaction.query.filter_by(user_id=member_id)
        .order_by(CreditTransaction.created_at.desc())
        .limit(limit)
        .all()
    )


def use_credit(ctx: MemberContext, amount: int = 1, description: Optional[str] = None,
               service_request_id: Optional[str] = None) -> CreditTransaction:
    """
    Spend ``amount`` credits.

    Unlimited tiers log a ``usage`` row without touching the balance.

    Raises:
        ValidationError: amount is not a positive integer
        InsufficientCredits: no account or balance below ``amount``
    """
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError("Amount must be a positive number of credits")

    account = ensure_credit_account(ctx)
    if ctx.unlimited_credits:
        balance = account.balance if account else 0
        tx = _record(ctx.member_id, -amount, "usage", balance, description, service_request_id)
        db.session.commit()
        return tx

    if account is None or account.balance < amount:
        raise InsufficientCredits()

    account.balance -= amount
    tx = _record(ctx.member_id, -amount, "usage", account.balance, description, service_request_id)
    db.session.commit()
    current_app.logger.info(f"Member {ctx.member_id} used {amount} credit(s), {account.balance} left")
    return tx


def add_credits(member_id: str, amount: int, kind: str = "bonus", description: Optional[str] = None,
                external_ref: Optional[str] = None, commit: bool = True) -> CreditTransaction:
    """Credit a member's balance (purchase, bonus or refund), opening the account if needed."""
    if amount <= 0:
        raise ValidationError("Amount must be a positive number of credits")
    if kind not in ("purchase", "bonus", "refund"):
        raise ValidationError(f"Cannot add credits as {kind!r}")

    account = get_account(member_id)
    if account is None:
        account = UserCredits(user_id=member_id, balance=0, monthly_allocation=0)
        db.session.add(account)
    account.balance += amount
    tx = _record(member_id, amount, kind, account.balance, description, external_ref=external_ref)
    if commit:
        db.session.commit()
    return tx


def reset_monthly_credits(now: Optional[datetime] = None) -> int:
    """
    Re-allocate every subscribed member's tier allowance.

    The balance is set to the allowance when it is below it; purchased
    credits above the allowance are kept. Returns the number of accounts
    allocated.
    """
    now = now or datetime.utcnow()
    count = 0
    rows = (
        db.session.query(UserCredits, Member)
        .join(Member, Member.id == UserCredits.user_id)
        .all()
    )
    for account, member in rows:
        ctx = MemberContext.for_member(member)
        allocation = TIER_CREDIT_ALLOCATION.get(ctx.tier or "", 0) if ctx.subscribed else 0
        account.monthly_allocation = allocation
        if allocation <= 0:
            continue
        if account.last_allocation_at and (account.last_allocation_at.year, account.last_allocation_at.month) == (now.year, now.month):
            continue
        topped_up = max(allocation - account.balance, 0)
        account.balance += topped_up
        account.last_allocation_at = now
        _record(member.id, topped_up, "allocation", account.balance, "Monthly credit allocation")
        count += 1
    db.session.commit()
    return count


# ===== Purchases =====

def start_purchase(member: Member, package_id: str, access_token: Optional[str] = None) -> str:
    """
    Start a checkout for a credit package and return its URL.

    Uses Stripe Checkout when a secret key is configured, otherwise the
    ``purchase-credits`` backend function.
    """
    pkg = CreditPackage.query.filter_by(id=package_id, is_active=True).first()
    if pkg is None:
        raise NotFound("Credit package not found")

    if not current_app.config.get("STRIPE_SECRET_KEY"):
        return get_functions_client().purchase_credits(package_id, access_token)

    get_stripe_client()
    session = stripe.checkout.Session.create(
        mode="payment",
        customer_email=member.email,
        line_items=[{
            "price_data": {
                "currency": pkg.currency,
                "unit_amount": pkg.price_cents,
                "product_data": {"name": pkg.name, "description": pkg.description or f"{pkg.credits} credits"},
            },
            "quantity": 1,
        }],
        success_url=current_app.config.get("STRIPE_SUCCESS_URL"),
        cancel_url=current_app.config.get("STRIPE_CANCEL_URL"),
        metadata={
            "type": "credit_purchase",
            "user_id": member.id,
            "package_id": pkg.id,
            "credits": str(pkg.credits),
            "package_name": pkg.name,
        },
    )
    current_app.logger.info(f"Created credit checkout session {session.id} for member {member.id}")
    return session.url


def handle_checkout_completed(session: Dict[str, Any]) -> Optional[CreditTransaction]:
    """
    Fulfil a paid credit checkout.

    Runs at most once per checkout session id; replays return None.
    """
    metadata = session.get("metadata") or {}
    if metadata.get("type") != "credit_purchase":
        return None

    session_id = session.get("id")
    user_id = metadata.get("user_id")
    try:
        credits = int(metadata.get("credits") or 0)
    except (TypeError, ValueError):
        credits = 0
    if not session_id or not user_id or credits <= 0:
        current_app.logger.warning(f"Ignoring malformed credit checkout {session_id}")
        return None

    if CreditTransaction.query.filter_by(external_ref=session_id).first() is not None:
        current_app.logger.info(f"Checkout {session_id} already fulfilled")
        return None
    if db.session.get(Member, user_id) is None:
        current_app.logger.warning(f"Checkout {session_id} for unknown member {user_id}")
        return None

    package_name = metadata.get("package_name") or "credit package"
    try:
        tx = add_credits(user_id, credits, "purchase", f"Purchased {package_name}", external_ref=session_id)
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(f"Checkout {session_id} fulfilled concurrently")
        return None

    notify(
        user_id,
        "Credits added",
        f"{credits} credits from {package_name} are now available.",
        kind="credits",
        link="/dashboard/credits",
        data={"credits": credits, "balance": tx.balance_after},
    )
    current_app.logger.info(f"Added {credits} purchased credits for member {user_id}")
    return tx


WEBHOOK_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
}


def process_webhook_event(event: Dict[str, Any]) -> bool:
    """
    Process a verified Stripe event.

    Returns:
        True if the event type has a handler, False otherwise
    """
    event_type = event.get("type")
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler is None:
        current_app.logger.debug(f"No handler for webhook event: {event_type}")
        return False
    current_app.logger.info(f"Processing webhook event: {event_type}")
    handler(event["data"]["object"])
    return True
