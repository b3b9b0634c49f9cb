from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any, Mapping

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import ProposalError, StorageError

logger = logging.getLogger(__name__)

STATUS_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    422: "validation_error",
    429: "rate_limited",
}

# Request sections FastAPI prefixes onto validation error locations
_LOCATION_SECTIONS = {"body", "query", "path", "header", "cookie"}


def status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Render the service-wide error envelope."""
    body = {"code": code, "message": message, "data": None, "details": dict(details or {})}
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        headers=dict(headers) if headers else None,
    )


def _validation_message(errors: list[dict[str, Any]]) -> str:
    if not errors:
        return "Validation failed"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in _LOCATION_SECTIONS)
    text = first.get("msg") or "Validation failed"
    return f"{field}: {text}" if field else str(text)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = STATUS_CODES.get(exc.status_code, "http_error")
    detail = exc.detail
    if isinstance(detail, dict):
        code = detail.get("code", code)
        message = detail.get("message") or status_phrase(exc.status_code)
        details = detail.get("details") or {}
    else:
        message = str(detail) if detail else status_phrase(exc.status_code)
        details = {}
    return error_response(exc.status_code, code, message, details, getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = list(exc.errors())
    return error_response(422, "validation_error", _validation_message(errors), {"errors": errors})


async def proposal_error_handler(request: Request, exc: ProposalError) -> JSONResponse:
    if isinstance(exc, StorageError):
        # The cause stays in the logs; clients only see the generic message
        logger.error(
            "Storage failure on %s %s: %s",
            request.method,
            request.url.path,
            exc.__cause__ or exc,
            exc_info=exc.__cause__ is not None,
        )
        return error_response(exc.status_code, exc.code, "Storage operation failed")
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s %s: %s", request.method, request.url.path, exc.detail)
    return error_response(
        429,
        "rate_limited",
        status_phrase(429),
        {"limit": str(exc.detail)},
        getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "internal_server_error", "Internal server error")


def register_exception_handlers(app) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(ProposalError, proposal_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
