"""Wrap successful JSON responses in the service envelope.

Error responses are already enveloped by the handlers in ``app.core.errors``.
Streamed file downloads and other non-JSON responses pass through untouched.
"""

from __future__ import annotations

import json
import logging
from http import HTTPStatus
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

_SUCCESS_CODES = {200: "ok", 201: "created", 202: "accepted"}
_DROPPED_HEADERS = {"content-length", "content-type"}


def envelope(data: Any, status_code: int) -> dict[str, Any]:
    try:
        message = HTTPStatus(status_code).phrase
    except ValueError:
        message = "Success"
    return {
        "code": _SUCCESS_CODES.get(status_code, "ok"),
        "message": message,
        "data": data,
        "details": {},
    }


def _already_enveloped(payload: Any) -> bool:
    return (
        isinstance(payload, dict)
        and {"code", "message", "data", "details"}.issubset(payload)
    )


def _rebuild(original: Response, status_code: int, content: Any) -> JSONResponse:
    rebuilt = JSONResponse(status_code=status_code, content=content)
    for key, value in original.headers.items():
        if key.lower() not in _DROPPED_HEADERS:
            rebuilt.headers[key] = value
    return rebuilt


class ResponseEnvelopeMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next) -> Response:
        response = await call_next(request)
        if not 200 <= response.status_code < 300:
            return response

        # Deletes answer 204; clients still get an envelope
        if response.status_code == 204:
            return _rebuild(response, 200, envelope(None, 200))

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("application/json"):
            return response

        body = b""
        async for chunk in response.body_iterator:
            body += chunk
        try:
            payload = json.loads(body) if body else None
        except ValueError:
            logger.warning("Response for %s is not valid JSON; passing through", request.url.path)
            return Response(
                content=body,
                status_code=response.status_code,
                headers=dict(response.headers),
                media_type=response.media_type,
            )

        if _already_enveloped(payload):
            return _rebuild(response, response.status_code, payload)
        return _rebuild(response, response.status_code, envelope(payload, response.status_code))


def register_response_envelope(app) -> None:
    app.add_middleware(ResponseEnvelopeMiddleware)
