import logging
import os
import platform
import sys
import threading
import time
from collections import deque
from typing import Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.academics import Attendance, Class
from app.models.auth import LoginAttempt, RateLimitEntry, User, UserSession
from app.models.exams import Grade, ReportCard
from app.models.finance import Payment, StudentFee
from app.models.users import Student, Teacher
from app.services.cache_service import CacheService
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000
STARTED_AT = time.monotonic()

TRACKED_TABLES = {
    "users": User,
    "students": Student,
    "teachers": Teacher,
    "classes": Class,
    "attendance": Attendance,
    "grades": Grade,
    "reportCards": ReportCard,
    "studentFees": StudentFee,
    "payments": Payment,
    "sessions": UserSession,
    "loginAttempts": LoginAttempt,
    "rateLimitEntries": RateLimitEntry,
}


class RequestStats:
    """Timings of the most recent requests, recorded by the timing middleware."""

    def __init__(self, max_requests: int = 1000):
        self._timings = deque(maxlen=max_requests)
        self._lock = threading.Lock()

    def record(self, method: str, path: str, status_code: int, duration_ms: float) -> None:
        timing = {
            "method": method,
            "path": path,
            "statusCode": status_code,
            "duration": round(duration_ms, 2),
            "timestamp": utcnow().isoformat(),
        }
        with self._lock:
            self._timings.append(timing)
        if duration_ms > SLOW_REQUEST_MS:
            logger.warning("Slow request: %s %s took %.2fms", method, path, duration_ms)

    def clear(self) -> None:
        with self._lock:
            self._timings.clear()

    def summary(self) -> Dict:
        with self._lock:
            timings = list(self._timings)
        if not timings:
            return {
                "totalRequests": 0,
                "averageResponseTime": 0.0,
                "minResponseTime": 0.0,
                "maxResponseTime": 0.0,
                "slowRequests": 0,
                "errorRequests": 0,
                "recentRequests": [],
                "slowestRequests": [],
                "byEndpoint": {},
            }

        durations = [t["duration"] for t in timings]
        by_endpoint: Dict[str, Dict] = {}
        for timing in timings:
            key = f"{timing['method']} {timing['path']}"
            bucket = by_endpoint.setdefault(key, {"count": 0, "totalDuration": 0.0, "maxDuration": 0.0})
            bucket["count"] += 1
            bucket["totalDuration"] += timing["duration"]
            bucket["maxDuration"] = max(bucket["maxDuration"], timing["duration"])
        for bucket in by_endpoint.values():
            bucket["avgDuration"] = round(bucket.pop("totalDuration") / bucket["count"], 2)

        return {
            "totalRequests": len(timings),
            "averageResponseTime": round(sum(durations) / len(durations), 2),
            "minResponseTime": min(durations),
            "maxResponseTime": max(durations),
            "slowRequests": sum(1 for d in durations if d > SLOW_REQUEST_MS),
            "errorRequests": sum(1 for t in timings if t["statusCode"] >= 500),
            "recentRequests": timings[-10:][::-1],
            "slowestRequests": sorted(timings, key=lambda t: t["duration"], reverse=True)[:10],
            "byEndpoint": by_endpoint,
        }


class MonitoringService:
    def __init__(self, db: Session, cache: Optional[CacheService] = None, requests: Optional[RequestStats] = None):
        self.db = db
        self.cache = cache
        self.requests = requests

    def request_stats(self) -> Dict:
        return self.requests.summary() if self.requests is not None else RequestStats().summary()

    def system(self) -> Dict:
        load = os.getloadavg() if hasattr(os, "getloadavg") else None
        return {
            "platform": platform.system(),
            "release": platform.release(),
            "arch": platform.machine(),
            "hostname": platform.node(),
            "cpus": os.cpu_count(),
            "loadAverage": list(load) if load else None,
            "process": {
                "pid": os.getpid(),
                "uptimeSeconds": round(time.monotonic() - STARTED_AT, 1),
                "threads": threading.active_count(),
                "pythonVersion": platform.python_version(),
                "implementation": sys.implementation.name,
            },
        }

    def database(self) -> Dict:
        bind = self.db.get_bind()
        start = time.perf_counter()
        try:
            self.db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Database metrics unavailable: %s", e)
            return {"status": "down", "dialect": bind.dialect.name, "error": e.__class__.__name__}
        latency = round((time.perf_counter() - start) * 1000, 2)

        pool = bind.pool
        pool_metrics = {"class": pool.__class__.__name__, "status": pool.status()}
        for name in ("size", "checkedin", "checkedout", "overflow"):
            method = getattr(pool, name, None)
            if callable(method):
                pool_metrics[name] = method()
        return {
            "status": "up",
            "dialect": bind.dialect.name,
            "responseTimeMs": latency,
            "pool": pool_metrics,
            "rowCounts": {name: self.db.query(model).count() for name, model in TRACKED_TABLES.items()},
        }

    def cache_metrics(self) -> Dict:
        if self.cache is None:
            return {"enabled": False}
        return self.cache.stats()

    def dashboard(self) -> Dict:
        return {
            "requestStats": self.request_stats(),
            "dbMetrics": self.database(),
            "cacheStats": self.cache_metrics(),
            "systemMetrics": self.system(),
            "timestamp": utcnow().isoformat(),
        }

