# concierge/health/monitor.py
"""
System health checks.

Each watched endpoint is probed with a GET:

- healthy   2xx/3xx within ``degraded_ms``
- degraded  4xx, or slower than ``degraded_ms``
- down      5xx, timeout or connection error

``heal()`` re-checks whatever is not healthy and reports what recovered. It
takes no corrective action of its own.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

import requests
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

log = logging.getLogger(__name__)

HEALTHY, DEGRADED, DOWN = "healthy", "degraded", "down"
_RANK = {HEALTHY: 0, DEGRADED: 1, DOWN: 2}

HEALING_LOG_SIZE = 50


@dataclass
class EndpointHealth:
    name: str
    status: str
    response_ms: Optional[int] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "response_ms": self.response_ms,
            "status_code": self.status_code,
            "error": self.error,
            "checked_at": self.checked_at.isoformat(),
        }


@dataclass
class HealthStatus:
    overall: str
    endpoints: Dict[str, EndpointHealth]
    checked_at: Optional[datetime] = None
    auto_healed: int = 0

    def to_dict(self) -> dict:
        return {
            "overall": self.overall,
            "endpoints": {k: v.to_dict() for k, v in self.endpoints.items()},
            "checked_at": self.checked_at.isoformat() if self.checked_at else None,
            "auto_healed": self.auto_healed,
        }


@dataclass
class HealingResult:
    attempted: List[str]
    recovered: List[str]
    still_failing: List[str]
    status: HealthStatus

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "recovered": self.recovered,
            "still_failing": self.still_failing,
            "status": self.status.to_dict(),
        }


def overall_status(results: Sequence[EndpointHealth]) -> str:
    """Worst status wins; nothing watched counts as healthy."""
    worst = HEALTHY
    for r in results:
        if _RANK[r.status] > _RANK[worst]:
            worst = r.status
    return worst


class HealthMonitor:
    """
    Watches the configured endpoints plus the database.

    Usage:
        monitor = HealthMonitor(["https://api.example.com/health"], db_check=ping)
        monitor.check_all()
        monitor.status.overall
    """

    def __init__(self, endpoints: Sequence[str] = (), timeout: float = 10.0, degraded_ms: int = 3000,
                 db_check: Optional[Callable[[], None]] = None, session: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.endpoints = list(endpoints)
        self.timeout = timeout
        self.degraded_ms = degraded_ms
        self.db_check = db_check
        self._s = session or requests.Session()
        self._clock = clock
        self._lock = threading.Lock()
        self._results: Dict[str, EndpointHealth] = {}
        self._checked_at: Optional[datetime] = None
        self.auto_healed = 0
        self.healing_log = deque(maxlen=HEALING_LOG_SIZE)

    # ---------- checks ----------

    def check_endpoint(self, url: str) -> EndpointHealth:
        started = self._clock()
        try:
            r = self._s.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            return EndpointHealth(url, DOWN, error=str(e))
        elapsed = round((self._clock() - started) * 1000)

        if r.status_code >= 500:
            status = DOWN
        elif r.status_code >= 400 or elapsed > self.degraded_ms:
            status = DEGRADED
        else:
            status = HEALTHY
        return EndpointHealth(url, status, response_ms=elapsed, status_code=r.status_code)

    def check_database(self) -> EndpointHealth:
        started = self._clock()
        try:
            self.db_check()
        except SQLAlchemyError as e:
            return EndpointHealth("database", DOWN, error=str(e.__class__.__name__))
        elapsed = round((self._clock() - started) * 1000)
        status = DEGRADED if elapsed > self.degraded_ms else HEALTHY
        return EndpointHealth("database", status, response_ms=elapsed)

    def _check(self, name: str) -> EndpointHealth:
        if name == "database":
            return self.check_database()
        return self.check_endpoint(name)

    def _names(self) -> List[str]:
        names = list(self.endpoints)
        if self.db_check is not None:
            names.insert(0, "database")
        return names

    def check_all(self) -> HealthStatus:
        results = {name: self._check(name) for name in self._names()}
        with self._lock:
            self._results = results
            self._checked_at = datetime.utcnow()
        unhealthy = [r.name for r in results.values() if r.status != HEALTHY]
        if unhealthy:
            log.warning("health check: %s not healthy", ", ".join(unhealthy))
        return self.status

    @property
    def status(self) -> HealthStatus:
        with self._lock:
            results = dict(self._results)
            checked_at = self._checked_at
        return HealthStatus(
            overall=overall_status(list(results.values())),
            endpoints=results,
            checked_at=checked_at,
            auto_healed=self.auto_healed,
        )

    # ---------- healing ----------

    def heal(self) -> HealingResult:
        """Re-check every endpoint that is not healthy and record what recovered."""
        if not self._results:
            self.check_all()
        with self._lock:
            attempted = [name for name, r in self._results.items() if r.status != HEALTHY]

        recovered, still_failing = [], []
        for name in attempted:
            result = self._check(name)
            with self._lock:
                self._results[name] = result
            if result.status == HEALTHY:
                recovered.append(name)
            else:
                still_failing.append(name)

        now = datetime.utcnow()
        with self._lock:
            self._checked_at = now
            self.auto_healed += len(recovered)
            for name in recovered:
                self.healing_log.append({"at": now.isoformat(), "target": name, "result": "recovered"})
            for name in still_failing:
                self.healing_log.append({"at": now.isoformat(), "target": name, "result": "still failing"})
        if recovered:
            log.info("health: recovered %s", ", ".join(recovered))
        return HealingResult(attempted=attempted, recovered=recovered, still_failing=still_failing,
                             status=self.status)


def database_ping(db) -> Callable[[], None]:
    def ping():
        db.session.execute(text("SELECT 1"))
    return ping
