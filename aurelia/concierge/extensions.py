# concierge/extensions.py
from __future__ import annotations

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

# Shared singletons, bound to the app in create_app()
db = SQLAlchemy()
csrf = CSRFProtect()
migrate = Migrate()
login_manager = LoginManager()
# Storage comes from RATELIMIT_STORAGE_URI, chosen at startup after probing Redis
limiter = Limiter(key_func=get_remote_address, default_limits=["200 per day", "50 per hour"])

__all__ = ["db", "csrf", "migrate", "login_manager", "limiter"]
