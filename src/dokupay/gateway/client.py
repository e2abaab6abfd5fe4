"""HTTP client for the DOKU checkout API."""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal
from urllib.parse import quote

import aiohttp

from dokupay.common.logging import get_logger
from dokupay.common.metrics import record_gateway_call
from dokupay.common.settings import Settings
from dokupay.gateway.errors import GatewayError, NotFound, SignatureMismatch, TransportError
from dokupay.gateway.models import (
    PaymentRequest,
    parse_comprehensive_payload,
    parse_payment_request,
    serialize_body,
    validate_invoice_number,
)
from dokupay.gateway.signature import components_for, format_timestamp, sign, signatures_match

logger = get_logger(__name__)

DokuEnv = Literal["sandbox", "production"]

CHECKOUT_PATH = "/checkout/v1/payment"
STATUS_PATH = "/orders/v1/status/{invoice_number}"
NOTIFICATION_PATH = "/payments/doku/notify"

CLIENT_ID_HEADER = "Client-Id"
REQUEST_ID_HEADER = "Request-Id"
REQUEST_TIMESTAMP_HEADER = "Request-Timestamp"
SIGNATURE_HEADER = "Signature"

_BASE_URLS: dict[str, str] = {
    "production": "https://api.doku.com",
    "sandbox": "https://api-sandbox.doku.com",
}


def get_base_url(env: DokuEnv) -> str:
    """Return the API host for a DOKU environment."""
    return _BASE_URLS["production"] if env == "production" else _BASE_URLS["sandbox"]


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable per-merchant gateway configuration."""

    client_id: str
    secret_key: str = field(repr=False)
    base_url: str = _BASE_URLS["sandbox"]
    default_currency: str = "IDR"
    notification_path: str = NOTIFICATION_PATH
    timeout: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> GatewayConfig:
        return cls(
            client_id=settings.client_id,
            secret_key=settings.secret_key,
            base_url=(settings.doku_base_url or get_base_url(settings.doku_env)).rstrip("/"),
            default_currency=settings.default_currency,
            notification_path=settings.notification_path,
            timeout=settings.http_timeout,
        )


@dataclass(frozen=True)
class PaymentResult:
    """Parsed checkout creation response."""

    data: Any
    status_code: int
    request_id: str

    @property
    def payment_url(self) -> str | None:
        """Redirect URL for the customer, if the gateway returned one."""
        if not isinstance(self.data, dict):
            return None
        for container in (self.data.get("response"), self.data):
            if isinstance(container, dict):
                payment = container.get("payment")
                if isinstance(payment, dict) and payment.get("url"):
                    return payment["url"]
        return None


@dataclass(frozen=True)
class StatusResult:
    """Parsed payment status response."""

    data: Any
    status_code: int
    request_id: str

    @property
    def transaction_status(self) -> str | None:
        if not isinstance(self.data, dict):
            return None
        transaction = self.data.get("transaction")
        if isinstance(transaction, dict):
            return transaction.get("status")
        return None


class NotificationState(Enum):
    """Lifecycle of an inbound notification.

    ``ACCEPTED`` proves authenticity only; applying the status change
    idempotently is up to the caller.
    """

    RECEIVED = "received"
    VERIFYING = "verifying"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


def _parse_body(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return {"raw": text}


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return ""


def verify_notification(
    headers: Mapping[str, str],
    raw_body: bytes,
    secret: str,
    target: str = NOTIFICATION_PATH,
) -> bool:
    """
    Check an inbound notification against its ``Signature`` header.

    The request target is the pinned notification path rather than whatever
    path the request arrived on, and the digest is taken over ``raw_body``
    exactly as received.

    Args:
        headers: Inbound request headers (case-insensitive lookup)
        raw_body: Body bytes as received, never re-serialized
        secret: Shared secret key
        target: Pinned notification path

    Returns:
        True only if the recomputed signature equals the provided one
    """
    provided = _header(headers, SIGNATURE_HEADER)
    if not provided:
        return False
    components = components_for(
        _header(headers, CLIENT_ID_HEADER),
        _header(headers, REQUEST_ID_HEADER),
        _header(headers, REQUEST_TIMESTAMP_HEADER),
        target,
        bytes(raw_body),
    )
    return signatures_match(sign(components, secret), provided)


def ensure_notification(
    headers: Mapping[str, str],
    raw_body: bytes,
    secret: str,
    target: str = NOTIFICATION_PATH,
) -> None:
    """Raise ``SignatureMismatch`` unless the notification verifies."""
    if not verify_notification(headers, raw_body, secret, target):
        raise SignatureMismatch(
            request_id=_header(headers, REQUEST_ID_HEADER),
            client_id=_header(headers, CLIENT_ID_HEADER),
        )


class GatewayClient:
    """
    Signed client for DOKU checkout payment creation and status queries.

    Does not retry. Every failure is surfaced to the caller as a typed error.
    """

    def __init__(
        self,
        config: GatewayConfig,
        session: aiohttp.ClientSession | None = None,
    ):
        """
        Initialize the gateway client.

        Args:
            config: Gateway configuration
            session: Optional externally managed session
        """
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._timeout = (
            aiohttp.ClientTimeout(total=config.timeout) if config.timeout else None
        )
        self._session = session
        self._owns_session = session is None

    @property
    def config(self) -> GatewayConfig:
        return self._config

    async def __aenter__(self) -> GatewayClient:
        """Enter async context."""
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context."""
        await self.close()

    async def close(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure session exists."""
        if not self._session:
            if self._timeout is not None:
                self._session = aiohttp.ClientSession(timeout=self._timeout)
            else:
                self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _signed_headers(self, target: str, body: bytes | None) -> dict[str, str]:
        request_id = str(uuid.uuid4())
        timestamp = format_timestamp()
        components = components_for(
            self._config.client_id, request_id, timestamp, target, body
        )
        return {
            "Content-Type": "application/json",
            CLIENT_ID_HEADER: self._config.client_id,
            REQUEST_ID_HEADER: request_id,
            REQUEST_TIMESTAMP_HEADER: timestamp,
            SIGNATURE_HEADER: sign(components, self._config.secret_key),
        }

    async def _send(
        self,
        operation: str,
        method: str,
        target: str,
        body: bytes | None = None,
    ) -> tuple[int, Any, str]:
        """
        Sign and send a request.

        Args:
            operation: Operation name for logs and metrics
            method: HTTP method
            target: Request path, signed as Request-Target
            body: Serialized body; the same bytes are digested and sent

        Returns:
            (status code, parsed body, request id)

        Raises:
            TransportError: On network-level failure
        """
        headers = self._signed_headers(target, body)
        request_id = headers[REQUEST_ID_HEADER]
        url = f"{self._base_url}{target}"
        session = self._ensure_session()

        logger.debug("Sending gateway request", operation=operation, url=url, request_id=request_id)

        start = time.perf_counter()
        try:
            response = await session.request(method, url, data=body, headers=headers)
            async with response:
                text = await response.text()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            record_gateway_call(operation, "transport_error", time.perf_counter() - start)
            logger.error(
                "Gateway transport failure",
                operation=operation,
                request_id=request_id,
                error=str(e),
            )
            raise TransportError(f"Request to DOKU failed: {e}") from e

        outcome = "success" if 200 <= status < 300 else "gateway_error"
        record_gateway_call(operation, outcome, time.perf_counter() - start)
        return status, _parse_body(text), request_id

    def _raise_for_status(self, operation: str, status: int, data: Any, request_id: str) -> None:
        if 200 <= status < 300:
            return
        logger.warning(
            "Gateway returned error",
            operation=operation,
            status=status,
            request_id=request_id,
            body=data,
        )
        if status == 404 and operation == "check_status":
            raise NotFound(status, data, f"Invoice not found (DOKU error {status})")
        raise GatewayError(status, data)

    # === Payments ===

    async def create_payment(
        self,
        request: PaymentRequest | Mapping[str, Any],
    ) -> PaymentResult:
        """
        Create a checkout payment.

        Args:
            request: Payment request or a mapping validated into one

        Returns:
            Parsed gateway response; ``payment_url`` holds the redirect URL

        Raises:
            ValidationError: If the request is malformed (nothing is sent)
            GatewayError: On non-2xx response
            TransportError: On network failure
        """
        if not isinstance(request, PaymentRequest):
            request = parse_payment_request(request)

        body = serialize_body(request.build_body(self._config.default_currency))

        logger.info(
            "Creating payment",
            invoice_number=request.invoice_number,
            amount=request.amount,
        )

        status, data, request_id = await self._send("create_payment", "POST", CHECKOUT_PATH, body)
        self._raise_for_status("create_payment", status, data, request_id)
        return PaymentResult(data=data, status_code=status, request_id=request_id)

    async def create_payment_from_payload(self, payload: Mapping[str, Any]) -> PaymentResult:
        """Create a payment from the comprehensive payload shape."""
        return await self.create_payment(parse_comprehensive_payload(payload))

    async def check_status(self, invoice_number: str) -> StatusResult:
        """
        Query the status of a payment by invoice number.

        Raises:
            ValidationError: If the invoice number is empty or too long
            NotFound: If the gateway has no such invoice
            GatewayError: On other non-2xx responses
            TransportError: On network failure
        """
        validate_invoice_number(invoice_number)
        target = STATUS_PATH.format(invoice_number=quote(invoice_number, safe=""))

        logger.debug("Checking payment status", invoice_number=invoice_number)

        status, data, request_id = await self._send("check_status", "GET", target)
        self._raise_for_status("check_status", status, data, request_id)
        return StatusResult(data=data, status_code=status, request_id=request_id)

    # === Notifications ===

    def verify_notification(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        """Verify a notification against this client's secret and notification path."""
        return verify_notification(
            headers,
            raw_body,
            self._config.secret_key,
            self._config.notification_path,
        )

    def ensure_notification(self, headers: Mapping[str, str], raw_body: bytes) -> None:
        """Raise ``SignatureMismatch`` unless the notification verifies."""
        ensure_notification(
            headers,
            raw_body,
            self._config.secret_key,
            self._config.notification_path,
        )
