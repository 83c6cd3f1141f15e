# concierge/cron_tasks.py
"""
Cron entry points for hosts without the in-process scheduler.

Hit ``/__cron__/run/<minutely|hourly|daily>?key=...`` or run
``flask cron-minutely`` (and friends). Each task is isolated so one failure
doesn't stop the rest.
"""
from __future__ import annotations

from datetime import datetime


def _safe(app, db, name, func, *args):
    try:
        return func(*args)
    except Exception:
        app.logger.exception("[CRON] %s failed", name)
        db.session.rollback()
        return None


# =========================
# Core CRON entrypoints
# =========================

def run_minutely(app, db):
    """Publish social posts that are due."""
    from concierge.social.service import publish_due_posts

    app.logger.info("[CRON] minutely tick at %s", datetime.utcnow().isoformat())
    published = _safe(app, db, "publish_due_posts", publish_due_posts)
    if published:
        app.logger.info("[CRON] published %s scheduled social posts", published)


def run_hourly(app, db):
    """Health sweep."""
    from concierge.health import get_health_monitor

    app.logger.info("[CRON] hourly tick at %s", datetime.utcnow().isoformat())
    status = _safe(app, db, "check_system_health", lambda: get_health_monitor().check_all())
    if status is not None:
        app.logger.info("[CRON] system health: %s", status.overall)


def run_daily(app, db):
    """Monthly credit allocation (acts on the 1st of the month only)."""
    from concierge.credits.service import reset_monthly_credits

    now = datetime.utcnow()
    app.logger.info("[CRON] daily tick at %s", now.isoformat())
    if now.day != 1:
        return
    count = _safe(app, db, "reset_monthly_credits", reset_monthly_credits, now)
    app.logger.info("[CRON] monthly credit allocation done for %s members", count or 0)
