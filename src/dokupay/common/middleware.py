"""Starlette middleware: request id context and API key authentication."""

from __future__ import annotations

import hmac
import uuid
from collections.abc import Iterable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from dokupay.common.errors import ErrorCode, error_response
from dokupay.common.logging import get_logger

logger = get_logger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id into the log context and echo it on the response."""

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID") -> None:
        super().__init__(app)
        self._header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self._header_name) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers.setdefault(self._header_name, request_id)
            return response
        finally:
            structlog.contextvars.clear_contextvars()


def extract_api_key(request: Request) -> str | None:
    """Read the key from ``X-API-Key`` or an ``Authorization: Bearer`` header."""
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return api_key
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Require the configured API key on merchant-facing routes."""

    def __init__(
        self,
        app: ASGIApp,
        api_key: str,
        exempt_paths: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self._api_key = api_key
        self._exempt_paths = set(exempt_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exempt_paths:
            return await call_next(request)

        if not self._api_key:
            return error_response(
                ErrorCode.NOT_CONFIGURED,
                "API key not configured",
                500,
            )

        provided = extract_api_key(request)
        if not provided:
            return error_response(
                ErrorCode.UNAUTHORIZED,
                "API key is required. Include X-API-Key header or Authorization Bearer token.",
                401,
            )

        if not hmac.compare_digest(provided.encode("utf-8"), self._api_key.encode("utf-8")):
            logger.warning("Rejected request with invalid API key")
            return error_response(ErrorCode.UNAUTHORIZED, "Invalid API key provided.", 401)

        return await call_next(request)
