# concierge/monitoring/__init__.py
"""
Error tracking integration.

Provides:
- Sentry error tracking and performance sampling
- Member and request context on events
- Manual capture helpers for failures that are handled (bulk sends, jobs)
"""

from typing import Optional

import sentry_sdk
from flask import Flask, request
from flask_login import current_user
from sentry_sdk.integrations.flask import FlaskIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

# Handled client errors that should not become Sentry issues
_IGNORED_TYPES = {"NotFound", "ValidationError", "PermissionDenied", "TierLimitReached", "InsufficientCredits"}


def init_sentry(app: Flask) -> bool:
    """
    Initialize Sentry when SENTRY_DSN is configured.

    Args:
        app: Flask application instance

    Returns:
        True if Sentry was initialized.
    """
    sentry_dsn = app.config.get("SENTRY_DSN")
    if not sentry_dsn:
        app.logger.info("Sentry DSN not configured - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[
            FlaskIntegration(transaction_style="url"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=None, event_level=None),
        ],
        traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.1),
        environment=app.config.get("SENTRY_ENVIRONMENT", "production"),
        release=app.config.get("SENTRY_RELEASE", "unknown"),
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
        ignore_errors=[KeyboardInterrupt, SystemExit],
        sample_rate=app.config.get("SENTRY_SAMPLE_RATE", 1.0),
        before_send=before_send_event,
    )
    register_context_processors(app)
    app.logger.info(
        f"Sentry initialized (environment={app.config.get('SENTRY_ENVIRONMENT', 'production')})"
    )
    return True


def before_send_event(event, hint):
    """
    Filter events before sending to Sentry.

    Returns:
        The event, or None to drop it.
    """
    url = (event.get("request") or {}).get("url", "")
    if url.endswith("/__health__") or "/system/health" in url:
        return None

    values = (event.get("exception") or {}).get("values") or [{}]
    exc_type = values[0].get("type")
    if exc_type in _IGNORED_TYPES:
        return None

    if exc_type:
        event["fingerprint"] = [exc_type, (values[0].get("value") or "")[:100]]
    return event


def register_context_processors(app: Flask):
    @app.before_request
    def add_sentry_context():
        if getattr(current_user, "is_authenticated", False):
            sentry_sdk.set_user({"id": str(current_user.id)})
            sentry_sdk.set_tag("tier", current_user.tier or "none")
        sentry_sdk.set_tag("endpoint", request.endpoint or "unknown")


# Helpers for manual reporting

def capture_exception(error: Exception, **extra_context):
    """
    Capture a handled exception.

    Args:
        error: Exception to capture
        **extra_context: Named context dicts attached to the event
    """
    if extra_context:
        with sentry_sdk.new_scope() as scope:
            for key, value in extra_context.items():
                scope.set_context(key, value)
            sentry_sdk.capture_exception(error)
    else:
        sentry_sdk.capture_exception(error)


def capture_message(message: str, level: str = "info", **extra_context):
    if extra_context:
        with sentry_sdk.new_scope() as scope:
            for key, value in extra_context.items():
                scope.set_context(key, value)
            sentry_sdk.capture_message(message, level=level)
    else:
        sentry_sdk.capture_message(message, level=level)


def add_breadcrumb(message: str, category: str = "custom", level: str = "info", data: Optional[dict] = None):
    sentry_sdk.add_breadcrumb(message=message, category=category, level=level, data=data or {})
