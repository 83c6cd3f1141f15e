# concierge/context.py
"""
Per-request member context.

Holds the signed-in member's tier, subscription flag and credit allowance.
Built once per request in a ``before_request`` hook and stored on ``flask.g``;
services receive it explicitly instead of reading module-level state.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import g
from flask_login import current_user

# Monthly credit allocation per tier; platinum is treated as unlimited
TIER_CREDIT_ALLOCATION = {"silver": 5, "gold": 15, "platinum": 999}
UNLIMITED_TIERS = frozenset({"platinum"})


@dataclass
class MemberContext:
    member: Optional[object] = None
    tier: Optional[str] = None
    subscribed: bool = False

    @property
    def member_id(self) -> Optional[str]:
        return getattr(self.member, "id", None)

    @property
    def is_admin(self) -> bool:
        return bool(self.member is not None and getattr(self.member, "is_admin", False))

    @property
    def unlimited_credits(self) -> bool:
        return self.subscribed and self.tier in UNLIMITED_TIERS

    @property
    def monthly_allocation(self) -> int:
        if not self.subscribed:
            return 0
        return TIER_CREDIT_ALLOCATION.get(self.tier or "", 0)

    @classmethod
    def for_member(cls, member) -> "MemberContext":
        if member is None:
            return cls()
        return cls(member=member, tier=member.tier, subscribed=member.is_subscribed)


def load_member_context() -> None:
    """before_request hook: attach a MemberContext to ``g``."""
    member = current_user if getattr(current_user, "is_authenticated", False) else None
    g.member_ctx = MemberContext.for_member(member)


def discard_member_context(_exc=None) -> None:
    g.pop("member_ctx", None)


def get_member_context() -> MemberContext:
    ctx = g.get("member_ctx")
    if ctx is None:
        load_member_context()
        ctx = g.member_ctx
    return ctx
