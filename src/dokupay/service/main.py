"""Payment service - merchant routes and DOKU notification endpoint."""

import json
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from dokupay.common.errors import ErrorCode, error_response
from dokupay.common.logging import get_logger, setup_logging
from dokupay.common.metrics import MetricsMiddleware, metrics_endpoint, record_notification
from dokupay.common.middleware import ApiKeyMiddleware, RequestIdMiddleware
from dokupay.common.settings import Settings, get_settings
from dokupay.gateway.client import GatewayClient, GatewayConfig, NotificationState
from dokupay.gateway.errors import (
    DokuPayError,
    GatewayError,
    NotFound,
    TransportError,
    ValidationError,
)
from dokupay.gateway.models import parse_payment_request

logger = get_logger(__name__)

NotificationHandler = Callable[[dict[str, Any]], Awaitable[None]]


def _error_for(exc: DokuPayError) -> JSONResponse:
    """Map a gateway-layer failure to an HTTP response."""
    if isinstance(exc, ValidationError):
        return error_response(ErrorCode.VALIDATION_FAILED, str(exc), 400, exc.errors)
    if isinstance(exc, NotFound):
        return error_response(ErrorCode.NOT_FOUND, str(exc), 404, exc.body)
    if isinstance(exc, GatewayError):
        return error_response(ErrorCode.GATEWAY_ERROR, str(exc), exc.status_code, exc.body)
    if isinstance(exc, TransportError):
        return error_response(ErrorCode.GATEWAY_UNAVAILABLE, str(exc), 502)
    return error_response(ErrorCode.GATEWAY_ERROR, str(exc), 500)


class PaymentServer:
    """HTTP handlers around a ``GatewayClient``."""

    def __init__(
        self,
        settings: Settings,
        client: GatewayClient | None = None,
        notification_handler: NotificationHandler | None = None,
    ):
        """Initialize server."""
        self._settings = settings
        self._client = client or GatewayClient(GatewayConfig.from_settings(settings))
        self._notification_handler = notification_handler

    @property
    def client(self) -> GatewayClient:
        return self._client

    async def startup(self) -> None:
        """Initialize components."""
        logger.info(
            "Starting payment service",
            doku_env=self._settings.doku_env,
            base_url=self._client.config.base_url,
        )

    async def shutdown(self) -> None:
        """Clean up resources."""
        await self._client.close()

    async def _json_body(self, request: Request) -> dict[str, Any] | None:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        return body if isinstance(body, dict) else None

    def _callback_urls(self) -> dict[str, str]:
        base = self._settings.public_base_url
        if not base:
            return {}
        base = base.rstrip("/")
        return {
            "callback_url": f"{base}/payment/return",
            "callback_url_result": f"{base}/payment/result",
        }

    async def handle_create(self, request: Request) -> JSONResponse:
        """Create a payment from ``{amount, invoiceNumber}``."""
        body = await self._json_body(request)
        if body is None:
            return error_response(ErrorCode.INVALID_JSON, "Invalid JSON", 400)

        try:
            payment = parse_payment_request(
                {
                    "amount": body.get("amount"),
                    "invoice_number": body.get("invoiceNumber"),
                    **self._callback_urls(),
                }
            )
            result = await self._client.create_payment(payment)
        except DokuPayError as exc:
            logger.error("Create payment failed", error=str(exc), status=getattr(exc, "status_code", None))
            return _error_for(exc)

        return JSONResponse(result.data)

    async def handle_create_comprehensive(self, request: Request) -> JSONResponse:
        """Create a payment from the full checkout payload."""
        body = await self._json_body(request)
        if body is None:
            return error_response(ErrorCode.INVALID_JSON, "Invalid JSON", 400)

        try:
            result = await self._client.create_payment_from_payload(body)
        except DokuPayError as exc:
            logger.error(
                "Create comprehensive payment failed",
                error=str(exc),
                status=getattr(exc, "status_code", None),
            )
            return _error_for(exc)

        return JSONResponse(result.data)

    async def handle_status(self, request: Request) -> JSONResponse:
        """Check payment status by invoice number."""
        invoice_number = request.path_params.get("invoice_number", "")

        try:
            result = await self._client.check_status(invoice_number)
        except DokuPayError as exc:
            logger.error(
                "Check payment status failed",
                error=str(exc),
                status=getattr(exc, "status_code", None),
                invoice_number=invoice_number,
            )
            return _error_for(exc)

        return JSONResponse(result.data)

    async def handle_notify(self, request: Request) -> JSONResponse:
        """Verify and accept a DOKU payment notification."""
        raw_body = await request.body()
        state = NotificationState.RECEIVED
        logger.debug("Notification received", state=state.value, size=len(raw_body))

        state = NotificationState.VERIFYING
        logger.debug("Verifying notification signature", state=state.value)
        if not self._client.verify_notification(request.headers, raw_body):
            state = NotificationState.REJECTED
            record_notification(state.value)
            logger.warning(
                "Notification signature mismatch",
                error_type="signature_mismatch",
                state=state.value,
                client_id=request.headers.get("Client-Id", ""),
                notification_request_id=request.headers.get("Request-Id", ""),
            )
            return error_response(ErrorCode.INVALID_SIGNATURE, "Invalid signature", 401)

        state = NotificationState.ACCEPTED
        record_notification(state.value)

        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        order = payload.get("order") if isinstance(payload.get("order"), dict) else {}
        transaction = payload.get("transaction") if isinstance(payload.get("transaction"), dict) else {}
        logger.info(
            "Notification accepted",
            state=state.value,
            invoice_number=order.get("invoice_number"),
            transaction_status=transaction.get("status"),
        )

        if self._notification_handler is not None:
            await self._notification_handler(payload)

        return JSONResponse({"message": "OK"})

    async def handle_health(self, request: Request) -> JSONResponse:
        """Health check."""
        return JSONResponse({"ok": True})


def create_app(
    settings: Settings | None = None,
    client: GatewayClient | None = None,
    notification_handler: NotificationHandler | None = None,
) -> Starlette:
    """Create the Starlette application."""
    settings = settings or get_settings()
    server = PaymentServer(settings, client, notification_handler)
    notification_path = server.client.config.notification_path

    @asynccontextmanager
    async def lifespan(app: Starlette):
        await server.startup()
        yield
        await server.shutdown()

    routes = [
        Route("/payments/doku/create", server.handle_create, methods=["POST"]),
        Route(
            "/payments/doku/create-comprehensive",
            server.handle_create_comprehensive,
            methods=["POST"],
        ),
        Route(
            "/payments/doku/status/{invoice_number}",
            server.handle_status,
            methods=["GET"],
        ),
        Route(notification_path, server.handle_notify, methods=["POST"]),
        Route("/health", server.handle_health, methods=["GET"]),
        Route("/metrics", metrics_endpoint, methods=["GET"]),
    ]

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.server = server

    app.add_middleware(
        ApiKeyMiddleware,
        api_key=settings.api_secret_key,
        exempt_paths=(*settings.auth_exempt_paths, notification_path),
    )
    app.add_middleware(
        MetricsMiddleware,
        exclude_paths=["/health", "/metrics"],
    )
    app.add_middleware(RequestIdMiddleware)

    return app


def main():
    """Entry point for the payment service."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
