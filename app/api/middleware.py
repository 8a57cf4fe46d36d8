import json
import logging
import re
import time
from urllib.parse import unquote_plus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.audit import audit
from app.core.errors import error_body
from app.services.monitoring_service import RequestStats

logger = logging.getLogger(__name__)

SQL_INJECTION_PATTERN = re.compile(
    r"(\bunion\b\s+(all\s+)?\bselect\b)"
    r"|(\bselect\b\s+.+\s+\bfrom\b)"
    r"|(\binsert\s+into\b)"
    r"|(\bupdate\s+\w+\s+set\b)"
    r"|(\bdelete\s+from\b)"
    r"|(\bdrop\s+(table|database)\b)"
    r"|(;\s*(drop|delete|insert|update|alter|truncate|exec)\b)"
    r"|('\s*(or|and)\s+'?\d+'?\s*=\s*'?\d+)"
    r"|(/\*.*?\*/)"
    r"|('\s*--)",
    re.IGNORECASE,
)


def looks_like_sql_injection(value: str) -> bool:
    return bool(value) and SQL_INJECTION_PATTERN.search(value) is not None


def _strings(data):
    if isinstance(data, dict):
        for key, value in data.items():
            yield str(key)
            yield from _strings(value)
    elif isinstance(data, list):
        for item in data:
            yield from _strings(item)
    elif isinstance(data, str):
        yield data


def register_middleware(app: FastAPI) -> None:
    app.state.request_stats = RequestStats()

    @app.middleware("http")
    async def sql_injection_filter(request: Request, call_next):
        candidates = [unquote_plus(request.url.query)] if request.url.query else []
        content_type = request.headers.get("content-type", "")
        if request.method in ("POST", "PUT", "PATCH") and content_type.startswith("application/json"):
            raw = await request.body()
            if raw:
                try:
                    candidates.extend(_strings(json.loads(raw)))
                except ValueError:
                    # malformed JSON is reported by request validation
                    pass
        if any(looks_like_sql_injection(value) for value in candidates):
            logger.warning("Blocked suspicious input from %s on %s", request.client.host if request.client else "-", request.url.path)
            audit.suspicious(request, "SQL_INJECTION_BLOCKED")
            return JSONResponse(status_code=400, content=error_body("Invalid input detected", "SQLI_DETECTED"))
        return await call_next(request)

    @app.middleware("http")
    async def request_timing(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        app.state.request_stats.record(request.method, request.url.path, response.status_code, elapsed_ms)
        logger.info("%s %s %s %.2fms", request.method, request.url.path, response.status_code, elapsed_ms)
        return response
