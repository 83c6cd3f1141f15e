# concierge/errors.py
"""
Error taxonomy shared by services and blueprints.

Services raise these; blueprints (and the app-level handler) turn them into
``{"error": message}`` JSON with the matching HTTP status.
"""
from __future__ import annotations

from typing import Any, Optional


class ConciergeError(Exception):
    status_code = 400

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(ConciergeError):
    status_code = 400


class PermissionDenied(ConciergeError):
    status_code = 403


class NotFound(ConciergeError):
    status_code = 404


class TierLimitReached(PermissionDenied):
    pass


class InsufficientCredits(ConciergeError):
    status_code = 402

    def __init__(self, message: str = "Insufficient credits"):
        super().__init__(message)


class FunctionInvokeError(ConciergeError):
    """A named backend function rejected the call or returned an ``error`` field."""

    status_code = 502

    def __init__(self, function: str, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(f"{function}: {message}")
        self.function = function
        self.status = status
        self.payload = payload
