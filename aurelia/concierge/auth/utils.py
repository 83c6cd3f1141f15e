# concierge/auth/utils.py
from __future__ import annotations

from functools import wraps
from typing import Optional

from flask import jsonify, session
from flask_login import current_user

from concierge.context import get_member_context

# ---------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------

BACKEND_TOKEN_KEY = "backend_token"


def current_member():
    """The signed-in Member, or None."""
    return current_user if getattr(current_user, "is_authenticated", False) else None


def backend_token() -> Optional[str]:
    """The member's backend access token, used when functions act on their behalf."""
    return session.get(BACKEND_TOKEN_KEY)


def _deny(message: str, status: int):
    return jsonify(error=message), status


# ---------------------------------------------------------------------
# Decorators
# ---------------------------------------------------------------------

def login_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if current_member() is None:
            return _deny("Authentication required", 401)
        return view_func(*args, **kwargs)
    return wrapper


def admin_required(view_func):
    """Staff tooling (partner discovery, healing) is admin only."""
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        member = current_member()
        if member is None:
            return _deny("Authentication required", 401)
        if not member.is_admin:
            return _deny("Administrator access required", 403)
        return view_func(*args, **kwargs)
    return wrapper


def tier_required(*tiers: str):
    """
    Guard a route for subscribed members of the given tiers.

    Usage:
        @tier_required("gold", "platinum")
    """
    allowed = frozenset(tiers)

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(*args, **kwargs):
            ctx = get_member_context()
            if ctx.member is None:
                return _deny("Authentication required", 401)
            if not ctx.subscribed or (allowed and ctx.tier not in allowed):
                label = " or ".join(t.title() for t in tiers) or "An active"
                return _deny(f"{label} membership required", 403)
            return view_func(*args, **kwargs)
        return wrapper
    return decorator
