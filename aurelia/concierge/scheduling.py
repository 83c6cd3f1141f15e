# concierge/scheduling.py
"""
Background jobs on APScheduler.

Two job stores:
- ``default`` (memory): the recurring housekeeping jobs registered at startup
- ``persistent`` (SQLAlchemy): one-off jobs such as a scheduled social post,
  stored in the app database so they survive restarts

``DeferredTask`` is the handle for a one-off job. Whoever schedules it owns
the handle and cancels it on teardown; cancelling twice, or after the job
already ran, is a no-op.

Usage:
    init_scheduler(app)
    task = DeferredTask.schedule(app.scheduler, "concierge.scheduling:publish_scheduled_post",
                                 run_at=when, args=[post.id], job_id=f"social-post-{post.id}")
    task.cancel()
"""

import atexit
import logging
import os
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence, Union

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask

from concierge.monitoring import capture_exception

# App the persistent jobs run against; set by init_scheduler
logger = logging.getLogger(__name__)
_app: Optional[Flask] = None


class DeferredTask:
    """Cancellable handle for a one-off scheduled job."""

    def __init__(self, scheduler, job_id: str):
        self.scheduler = scheduler
        self.job_id = job_id
        self.cancelled = False

    @classmethod
    def schedule(
        cls,
        scheduler,
        func: Union[str, Callable],
        delay: Optional[float] = None,
        run_at: Optional[datetime] = None,
        args: Sequence = (),
        kwargs: Optional[dict] = None,
        job_id: Optional[str] = None,
        jobstore: str = "default",
    ) -> "DeferredTask":
        """
        Run ``func`` once, ``delay`` seconds from now or at ``run_at`` (UTC).

        Args:
            scheduler: a started APScheduler scheduler
            func: callable or "module:function" reference (required for the persistent store)
            delay: seconds from now
            run_at: absolute naive-UTC time
            args, kwargs: passed to ``func``
            job_id: stable id; an existing job with the same id is replaced
            jobstore: "default" or "persistent"
        """
        if (delay is None) == (run_at is None):
            raise ValueError("pass exactly one of delay or run_at")
        when = run_at if run_at is not None else datetime.utcnow() + timedelta(seconds=delay)
        job = scheduler.add_job(
            func,
            trigger="date",
            run_date=when,
            timezone="UTC",
            args=list(args),
            kwargs=kwargs or {},
            id=job_id,
            replace_existing=job_id is not None,
            jobstore=jobstore,
            misfire_grace_time=3600,
        )
        return cls(scheduler, job.id)

    def cancel(self) -> bool:
        """Remove the job. Returns True only if it was still pending."""
        if self.cancelled:
            return False
        self.cancelled = True
        try:
            self.scheduler.remove_job(self.job_id)
            return True
        except JobLookupError:
            return False

    @property
    def pending(self) -> bool:
        return not self.cancelled and self.scheduler.get_job(self.job_id) is not None


def init_scheduler(app: Flask):
    """
    Start the background scheduler for ``app``.

    Args:
        app: Flask application instance
    """
    global _app

    # Skip in the Flask reloader parent process
    if os.environ.get("WERKZEUG_RUN_MAIN") == "false":
        return None

    jobstores = {
        "default": MemoryJobStore(),
        "persistent": SQLAlchemyJobStore(url=app.config["SQLALCHEMY_DATABASE_URI"], tablename="scheduled_jobs"),
    }
    executors = {
        "default": ThreadPoolExecutor(max_workers=app.config.get("SCHEDULER_MAX_WORKERS", 3)),
    }
    job_defaults = {
        "coalesce": True,  # Combine missed runs
        "max_instances": 1,  # Don't run same job concurrently
        "misfire_grace_time": 300,
    }

    scheduler = BackgroundScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone="UTC",
    )
    register_scheduled_jobs(scheduler, app)

    # Misfired persistent jobs may fire from inside start()
    _app = app
    app.scheduler = scheduler
    scheduler.start()
    app.logger.info("Background job scheduler started")
    atexit.register(lambda: scheduler.shutdown(wait=False))
    return scheduler


def register_scheduled_jobs(scheduler, app: Flask):
    """Register the recurring jobs."""
    scheduler.add_job(
        func=publish_due_social_posts,
        trigger="interval",
        minutes=1,
        id="publish_due_social_posts",
        replace_existing=True,
        kwargs={"app": app},
    )
    scheduler.add_job(
        func=check_system_health,
        trigger="interval",
        minutes=5,
        id="check_system_health",
        replace_existing=True,
        kwargs={"app": app},
    )
    scheduler.add_job(
        func=allocate_monthly_credits,
        trigger="cron",
        day=1,
        hour=0,
        minute=5,
        id="allocate_monthly_credits",
        replace_existing=True,
        kwargs={"app": app},
    )
    app.logger.info("Registered 3 scheduled background jobs")


# ===== Scheduled Job Functions =====

def _run_job(app: Flask, name: str, func: Callable, *args):
    with app.app_context():
        from concierge.extensions import db
        try:
            return func(*args)
        except Exception as e:
            app.logger.error(f"Scheduled job {name} failed: {e}", exc_info=True)
            capture_exception(e, job={"name": name})
            db.session.rollback()
            return None


def publish_due_social_posts(app: Flask):
    from concierge.social.service import publish_due_posts
    count = _run_job(app, "publish_due_social_posts", publish_due_posts)
    if count:
        app.logger.info(f"Published {count} scheduled social posts")


def check_system_health(app: Flask):
    from concierge.health import get_health_monitor
    _run_job(app, "check_system_health", lambda: get_health_monitor().check_all())


def allocate_monthly_credits(app: Flask):
    from concierge.credits.service import reset_monthly_credits
    count = _run_job(app, "allocate_monthly_credits", reset_monthly_credits)
    app.logger.info(f"Monthly credit allocation done for {count or 0} members")


def publish_scheduled_post(post_id: str):
    """Persistent-store job: publish one scheduled post."""
    if _app is None:
        logger.warning(f"Scheduler has no app; post {post_id} left for the minutely sweep")
        return
    from concierge.social.service import publish_scheduled
    _run_job(_app, f"publish_scheduled_post:{post_id}", publish_scheduled, post_id)
