import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Application error carrying an HTTP status, an optional machine code and context."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        is_operational: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.context = context
        self.is_operational = is_operational


def error_body(
    message: str,
    code: Optional[str] = None,
    details: Optional[list] = None,
    context: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if code:
        body["code"] = code
    if details:
        body["details"] = details
    if context:
        body["context"] = context
    return body


def _validation_details(exc: RequestValidationError) -> list:
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(loc), "message": err.get("msg")})
    return details


def _integrity_error(exc: IntegrityError) -> JSONResponse:
    pgcode = getattr(getattr(exc, "orig", None), "pgcode", None)
    text = str(getattr(exc, "orig", exc)).lower()
    if pgcode == "23503" or "foreign key" in text:
        return JSONResponse(
            status_code=400, content=error_body("Referenced resource does not exist")
        )
    if pgcode == "23505" or "unique" in text or "duplicate" in text:
        return JSONResponse(status_code=409, content=error_body("Resource already exists"))
    logger.error("Unhandled integrity error: %s", exc)
    return JSONResponse(status_code=400, content=error_body("Data integrity violation"))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if not exc.is_operational or exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = None
        if exc.status_code == 429 and exc.context and exc.context.get("retry_after"):
            headers = {"Retry-After": str(exc.context["retry_after"])}
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, exc.code, context=exc.context),
            headers=headers,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info("Validation error on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=400,
            content=error_body("Validation error", details=_validation_details(exc)),
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        return _integrity_error(exc)

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError):
        pgcode = getattr(getattr(exc, "orig", None), "pgcode", None)
        if pgcode == "40P01":
            return JSONResponse(
                status_code=503,
                content=error_body("Service temporarily unavailable, please retry"),
            )
        logger.exception("Database error on %s", request.url.path)
        return JSONResponse(status_code=500, content=error_body("Database error"))

    @app.exception_handler(ExpiredSignatureError)
    async def expired_token_handler(request: Request, exc: ExpiredSignatureError):
        return JSONResponse(status_code=401, content=error_body("Token expired"))

    @app.exception_handler(JWTError)
    async def jwt_error_handler(request: Request, exc: JWTError):
        return JSONResponse(status_code=401, content=error_body("Invalid token"))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_body("Internal server error"))
