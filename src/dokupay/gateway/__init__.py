"""DOKU checkout gateway: request signing, client and notification verification."""

from dokupay.gateway.client import (
    GatewayClient,
    GatewayConfig,
    NotificationState,
    PaymentResult,
    StatusResult,
    ensure_notification,
    get_base_url,
    verify_notification,
)
from dokupay.gateway.errors import (
    DokuPayError,
    GatewayError,
    NotFound,
    SignatureMismatch,
    TransportError,
    ValidationError,
)
from dokupay.gateway.models import PaymentRequest

__all__ = [
    "DokuPayError",
    "GatewayClient",
    "GatewayConfig",
    "GatewayError",
    "NotFound",
    "NotificationState",
    "PaymentRequest",
    "PaymentResult",
    "SignatureMismatch",
    "StatusResult",
    "TransportError",
    "ValidationError",
    "ensure_notification",
    "get_base_url",
    "verify_notification",
]
