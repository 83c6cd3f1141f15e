# concierge/__init__.py
from __future__ import annotations

import logging
import os as _os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from flask import Flask, abort, jsonify, request
from flask_wtf.csrf import CSRFError

# Shared extensions (singletons) live in concierge/extensions.py
from concierge.extensions import csrf, db, limiter, login_manager, migrate
from concierge.errors import ConciergeError

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _mask_uri(uri: str) -> str:
    """Hide password in logs."""
    if "@" in uri and "://" in uri:
        head, tail = uri.split("://", 1)
        creds, rest = tail.split("@", 1)
        if ":" in creds:
            user, _pwd = creds.split(":", 1)
            return f"{head}://{user}:***@{rest}"
    return uri


def _configure_logging(app: Flask) -> None:
    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(logging.INFO)
    stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    app.logger.handlers.clear()
    app.logger.addHandler(stderr_handler)

    log_path = app.config.get("APP_ERROR_LOG")
    if log_path:
        try:
            _os.makedirs(_os.path.dirname(log_path) or ".", exist_ok=True)
            file_handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            app.logger.addHandler(file_handler)
        except OSError as e:
            app.logger.warning(f"File logging disabled ({log_path}): {e}")

    app.logger.setLevel(logging.INFO)
    app.logger.propagate = False

    # Service modules log through logging.getLogger("concierge.*")
    pkg_logger = logging.getLogger("concierge")
    pkg_logger.handlers = list(app.logger.handlers)
    pkg_logger.setLevel(logging.INFO)
    pkg_logger.propagate = False


def _init_redis_and_limiter(app: Flask) -> None:
    import redis

    def _probe_redis(url: str) -> bool:
        if not url:
            return False
        try:
            client = redis.from_url(url, decode_responses=True, socket_timeout=2)
            client.ping()
            return True
        except redis.RedisError as e:
            app.logger.warning(f"Redis probe failed: {e}")
            return False

    redis_url = app.config.get("REDIS_URL", "")
    app.redis = None
    if _probe_redis(redis_url):
        app.redis = redis.from_url(redis_url, decode_responses=True, socket_timeout=3)
        app.logger.info("Connected to Redis")
    else:
        app.logger.warning("Redis not available; continuing without app Redis client")

    preferred = app.config.get("RATELIMIT_STORAGE_URI") or redis_url
    storage_uri = "memory://"
    if preferred and preferred != "memory://" and _probe_redis(preferred):
        storage_uri = preferred
    app.config["RATELIMIT_STORAGE_URI"] = storage_uri
    app.config.setdefault("RATELIMIT_IN_MEMORY_FALLBACK_ENABLED", True)
    limiter.init_app(app)
    app.logger.info(f"Rate limit storage: {storage_uri}")


def create_app(config_overrides: dict | None = None):
    app = Flask(__name__, instance_relative_config=False)

    # ---- Config: class defaults, optional pyfile, .env, explicit overrides --
    from dotenv import load_dotenv
    load_dotenv()

    from concierge.config import Config
    app.config.from_object(Config)

    cfg_file = _os.getenv("APP_CONFIG_FILE")
    if cfg_file and Path(cfg_file).exists():
        app.config.from_pyfile(cfg_file)
    if config_overrides:
        app.config.update(config_overrides)

    if app.config.get("PREFERRED_URL_SCHEME") == "https":
        app.config.setdefault("SESSION_COOKIE_SECURE", True)

    _configure_logging(app)
    if cfg_file:
        app.logger.info(f"Loaded config from APP_CONFIG_FILE={cfg_file}")

    # ---- DB / Extensions init ----------------------------------------------
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    # ---- Flask-Login init ---------------------------------------------------
    login_manager.init_app(app)
    login_manager.session_protection = app.config.get("SESSION_PROTECTION") or None

    @login_manager.user_loader
    def load_user(user_id: str):
        from concierge.models import Member
        return db.session.get(Member, user_id)

    @login_manager.unauthorized_handler
    def _unauthorized():
        return jsonify(error="Authentication required"), 401

    # ---- Load models early --------------------------------------------------
    from concierge import models, models_atelier, models_credits, models_partners  # noqa: F401
    from concierge import models_social, models_travel  # noqa: F401

    # ---- Redis + Limiter ----------------------------------------------------
    _init_redis_and_limiter(app)

    app.logger.info(f"Logger initialized. DB: {_mask_uri(app.config['SQLALCHEMY_DATABASE_URI'])}")

    # ---- Error tracking -----------------------------------------------------
    from concierge.monitoring import init_sentry
    init_sentry(app)

    # ---- Member context -----------------------------------------------------
    from concierge.context import discard_member_context, load_member_context
    app.before_request(load_member_context)
    app.teardown_request(discard_member_context)

    # ---- Security headers ---------------------------------------------------
    @app.after_request
    def _security_headers(resp):
        resp.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if app.config.get("PREFERRED_URL_SCHEME", "https") == "https":
            resp.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        resp.headers.setdefault("Permissions-Policy", "geolocation=(), camera=(self), microphone=(self), bluetooth=(self)")
        return resp

    # ---- Register blueprints -----------------------------------------------
    # JSON API blueprints authenticate by session and are exempt from form CSRF
    from concierge.atelier import atelier_bp
    from concierge.auth import auth_bp
    from concierge.credits import credits_bp, stripe_webhook
    from concierge.health import health_bp
    from concierge.notifications import notifications_bp
    from concierge.orla import orla_bp
    from concierge.partners import partners_bp
    from concierge.referrals import referrals_bp
    from concierge.social import social_bp
    from concierge.travel import travel_bp
    from concierge.wearables import wearables_bp

    for bp in (
        auth_bp,
        atelier_bp,
        orla_bp,
        credits_bp,
        partners_bp,
        social_bp,
        travel_bp,
        notifications_bp,
        referrals_bp,
        wearables_bp,
        health_bp,
    ):
        app.register_blueprint(bp)
        csrf.exempt(bp)
        app.logger.info(f"{bp.name} registered at {bp.url_prefix}")
    csrf.exempt(stripe_webhook)
    limiter.exempt(stripe_webhook)

    # ---- Background jobs ----------------------------------------------------
    if app.config.get("SCHEDULER_ENABLED"):
        from concierge.scheduling import init_scheduler
        init_scheduler(app)

    # ---- Cron runner (HTTP) -------------------------------------------------
    @app.route("/__cron__/run/<name>", methods=["GET", "POST"])
    def __cron_run(name):
        if name not in ("minutely", "hourly", "daily"):
            return ("unknown task", 404)

        key = request.args.get("key") or request.headers.get("X-Cron-Key")
        if not key or key != app.config.get("CRON_SECRET", ""):
            return abort(403)

        from concierge.cron_tasks import run_daily, run_hourly, run_minutely
        {"minutely": run_minutely, "hourly": run_hourly, "daily": run_daily}[name](app, db)
        app.logger.info("[CRON] %s completed", name)
        return ("ok", 200)

    csrf.exempt(__cron_run)

    @app.route("/__health__")
    def __health__():
        return "ok", 200

    # ---- Flask CLI cron commands -------------------------------------------
    @app.cli.command("cron-minutely")
    def cron_minutely():
        from concierge.cron_tasks import run_minutely
        run_minutely(app, db)

    @app.cli.command("cron-hourly")
    def cron_hourly():
        from concierge.cron_tasks import run_hourly
        run_hourly(app, db)

    @app.cli.command("cron-daily")
    def cron_daily():
        from concierge.cron_tasks import run_daily
        run_daily(app, db)

    # ---- Error handlers -----------------------------------------------------
    @app.errorhandler(ConciergeError)
    def _concierge_error(err):
        if err.status_code >= 500:
            app.logger.warning(f"{request.method} {request.path} failed: {err.message}")
        db.session.rollback()
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF failed: {getattr(e, 'description', str(e))}")
        return jsonify(error="Your session expired. Please try again."), 400

    @app.errorhandler(404)
    def _404(err):
        return jsonify(error=f"Not found: {request.path}"), 404

    @app.errorhandler(Exception)
    def _500(err):
        from werkzeug.exceptions import HTTPException
        if isinstance(err, HTTPException):
            return err
        app.logger.exception("Unhandled exception")
        db.session.rollback()
        return jsonify(error="Internal Server Error"), 500

    return app
