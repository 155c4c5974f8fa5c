"""
Error types and the handlers that render them.

Every failure leaves the API as the same JSON envelope:

    {"success": false, "error": {"message": ..., "code": ..., "fields": ...}}

Route code raises APIError (or one of the helpers below) and returns early;
anything else that escapes a handler is caught by the catch-all handler and
converted into a generic 500 so stack traces never reach the client.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventskona.core.config import settings

logger = logging.getLogger(__name__)


class APIError(Exception):
    """An error with a status code and a stable code string for clients"""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        fields: Optional[Dict[str, List[str]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.status_code = status_code
        self.message = message
        self.code = code
        self.fields = fields
        self.headers = headers
        super().__init__(message)


class RateLimitExceeded(APIError):
    def __init__(self, retry_after: int):
        super().__init__(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "Too many requests. Please try again later.",
            code="RATE_LIMIT_EXCEEDED",
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after


class ConfigurationError(Exception):
    """A required server setting (usually a secret) is missing"""


def bad_request(message: str, code: Optional[str] = None) -> APIError:
    return APIError(status.HTTP_400_BAD_REQUEST, message, code=code)


def unauthorized(message: str = "Authentication required", code: str = "UNAUTHORIZED") -> APIError:
    return APIError(
        status.HTTP_401_UNAUTHORIZED,
        message,
        code=code,
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden(message: str = "Insufficient permissions", code: str = "FORBIDDEN") -> APIError:
    return APIError(status.HTTP_403_FORBIDDEN, message, code=code)


def not_found(message: str = "Resource not found", code: str = "NOT_FOUND") -> APIError:
    return APIError(status.HTTP_404_NOT_FOUND, message, code=code)


def conflict(message: str, code: str) -> APIError:
    return APIError(status.HTTP_409_CONFLICT, message, code=code)


def error_body(
    message: str,
    code: Optional[str] = None,
    fields: Optional[Dict[str, List[str]]] = None,
    details: Any = None,
) -> Dict[str, Any]:
    error: Dict[str, Any] = {"message": message}
    if code:
        error["code"] = code
    if fields:
        error["fields"] = fields
    if settings.DEBUG and details:
        error["details"] = details
    return {"success": False, "error": error}


def validation_fields(exc: RequestValidationError) -> Dict[str, List[str]]:
    """Group pydantic errors by dotted field path"""
    fields: Dict[str, List[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        # Drop the "body"/"query" prefix FastAPI adds
        if loc and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        path = ".".join(loc) or "body"
        fields.setdefault(path, []).append(err.get("msg", "Invalid value"))
    return fields


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.code, exc.fields),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Validation failed", "VALIDATION_ERROR", validation_fields(exc)),
    )


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    # Detail stays in the server log
    logger.error(f"Configuration error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error", details=str(exc)),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled route error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error", details=str(exc)),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
