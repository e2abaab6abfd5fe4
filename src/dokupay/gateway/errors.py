"""Typed failures raised by the gateway layer."""

from __future__ import annotations

from typing import Any


class DokuPayError(Exception):
    """Base class for gateway integration errors."""


class ValidationError(DokuPayError):
    """Caller input rejected before any network call."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class TransportError(DokuPayError):
    """Network-level failure (DNS, connect, timeout) talking to the gateway."""


class GatewayError(DokuPayError):
    """Non-2xx response from the gateway."""

    def __init__(self, status_code: int, body: Any, message: str | None = None):
        super().__init__(message or f"DOKU error {status_code}")
        self.status_code = status_code
        self.body = body


class NotFound(GatewayError):
    """The gateway reported no such invoice."""


class SignatureMismatch(DokuPayError):
    """An inbound notification failed signature verification.

    Never transient: it means tampering or a canonicalization bug.
    """

    def __init__(self, request_id: str = "", client_id: str = ""):
        super().__init__("Notification signature mismatch")
        self.request_id = request_id
        self.client_id = client_id
