"""DOKU Non-SNAP request signing.

The canonical string is a fixed-order list of ``Name:value`` lines joined by a
single newline, with no trailing newline::

    Client-Id:{client_id}
    Request-Id:{request_id}
    Request-Timestamp:{timestamp}
    Request-Target:{target}
    Digest:{base64(sha256(body))}

The ``Digest`` line only exists for requests that carry a body. The signature
is ``HMACSHA256=`` followed by the base64 HMAC-SHA256 of that string.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timezone

SIGNATURE_ALGORITHM = "HMACSHA256"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass(frozen=True)
class BodylessComponents:
    """Signed fields of a request without a body (e.g. status queries)."""

    client_id: str
    request_id: str
    timestamp: str
    target: str


@dataclass(frozen=True)
class BodyComponents:
    """Signed fields of a request carrying a body."""

    client_id: str
    request_id: str
    timestamp: str
    target: str
    digest: str


SignatureComponents = BodylessComponents | BodyComponents


def digest(body: bytes) -> str:
    """Base64-encoded SHA-256 of the literal body bytes."""
    if not isinstance(body, (bytes, bytearray, memoryview)):
        raise TypeError(f"digest expects bytes, got {type(body).__name__}")
    return base64.b64encode(hashlib.sha256(body).digest()).decode("ascii")


def format_timestamp(moment: datetime | None = None) -> str:
    """Format an instant as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC.

    Naive datetimes are taken to already be UTC.
    """
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def components_for(
    client_id: str,
    request_id: str,
    timestamp: str,
    target: str,
    body: bytes | None = None,
) -> SignatureComponents:
    """Build the component variant matching the presence of a body."""
    if body is None:
        return BodylessComponents(client_id, request_id, timestamp, target)
    return BodyComponents(client_id, request_id, timestamp, target, digest(body))


def canonical_string(components: SignatureComponents) -> str:
    """Join the signed fields into the canonical newline-separated string."""
    if not isinstance(components, (BodyComponents, BodylessComponents)):
        raise TypeError(f"Unsupported signature components: {type(components).__name__}")
    lines = [
        f"Client-Id:{components.client_id}",
        f"Request-Id:{components.request_id}",
        f"Request-Timestamp:{components.timestamp}",
        f"Request-Target:{components.target}",
    ]
    if isinstance(components, BodyComponents):
        lines.append(f"Digest:{components.digest}")
    return "\n".join(lines)


def sign(components: SignatureComponents, secret: str) -> str:
    """Compute the ``Signature`` header value for the given components."""
    mac = hmac.new(
        secret.encode("utf-8"),
        canonical_string(components).encode("utf-8"),
        hashlib.sha256,
    )
    return f"{SIGNATURE_ALGORITHM}={base64.b64encode(mac.digest()).decode('ascii')}"


def signatures_match(expected: str, provided: str) -> bool:
    """Compare two signature strings in constant time."""
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))
