"""Tests for the payment service routes."""

import json
from unittest.mock import AsyncMock

import aiohttp
import pytest
from starlette.testclient import TestClient

from conftest import TEST_API_KEY, TEST_CLIENT_ID, TEST_SECRET, make_response
from dokupay.common.settings import Settings
from dokupay.gateway.client import GatewayClient, GatewayConfig
from dokupay.gateway.signature import components_for, sign
from dokupay.service.main import create_app

AUTH = {"X-API-Key": TEST_API_KEY}


@pytest.fixture
def app(settings, gateway_client):
    return create_app(settings, client=gateway_client)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def _notify_headers(raw_body: bytes, target: str = "/payments/doku/notify") -> dict[str, str]:
    headers = {
        "Client-Id": TEST_CLIENT_ID,
        "Request-Id": "RID-NOTIFY-1",
        "Request-Timestamp": "2024-01-01T00:00:05Z",
        "Content-Type": "application/json",
    }
    components = components_for(
        TEST_CLIENT_ID,
        headers["Request-Id"],
        headers["Request-Timestamp"],
        target,
        raw_body,
    )
    headers["Signature"] = sign(components, TEST_SECRET)
    return headers


class TestAuth:
    """API key authentication."""

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_missing_api_key(self, client):
        response = client.post("/payments/doku/create", json={"amount": 1, "invoiceNumber": "INV"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"

    def test_invalid_api_key(self, client):
        response = client.post(
            "/payments/doku/create",
            json={"amount": 1, "invoiceNumber": "INV"},
            headers={"X-API-Key": "wrong"},
        )
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid API key provided."

    def test_bearer_token(self, client):
        response = client.post(
            "/payments/doku/create",
            json={"amount": 1, "invoiceNumber": "INV"},
            headers={"Authorization": f"Bearer {TEST_API_KEY}"},
        )
        assert response.status_code == 200

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"


class TestCreateRoutes:
    """Payment creation routes."""

    def test_create_returns_gateway_json(self, client, mock_session):
        response = client.post(
            "/payments/doku/create",
            json={"amount": 10000, "invoiceNumber": "INV-001"},
            headers=AUTH,
        )

        assert response.status_code == 200
        assert response.json()["response"]["payment"]["url"] == "https://pay.example/abc"

        sent = json.loads(mock_session.request.await_args.kwargs["data"])
        assert sent["order"]["amount"] == 10000
        assert sent["order"]["invoice_number"] == "INV-001"
        assert "callback_url" not in sent["order"]

    def test_create_adds_callback_urls(self, settings, gateway_client, mock_session):
        settings = settings.model_copy(update={"public_base_url": "https://shop.example/"})
        with TestClient(create_app(settings, client=gateway_client)) as test_client:
            response = test_client.post(
                "/payments/doku/create",
                json={"amount": 10000, "invoiceNumber": "INV-001"},
                headers=AUTH,
            )

        assert response.status_code == 200
        sent = json.loads(mock_session.request.await_args.kwargs["data"])
        assert sent["order"]["callback_url"] == "https://shop.example/payment/return"
        assert sent["order"]["callback_url_result"] == "https://shop.example/payment/result"

    def test_create_validation_error(self, client, mock_session):
        response = client.post(
            "/payments/doku/create",
            json={"amount": -5, "invoiceNumber": ""},
            headers=AUTH,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_failed"
        mock_session.request.assert_not_awaited()

    def test_create_invalid_json(self, client):
        response = client.post(
            "/payments/doku/create",
            content=b"not json",
            headers={**AUTH, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_json"

    def test_gateway_error_passthrough(self, client, mock_session):
        mock_session.request.return_value = make_response(400, '{"error":"bad"}')

        response = client.post(
            "/payments/doku/create",
            json={"amount": 10000, "invoiceNumber": "INV-001"},
            headers=AUTH,
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "gateway_error"
        assert error["details"] == {"error": "bad"}

    def test_empty_gateway_body_kept_in_details(self, client, mock_session):
        mock_session.request.return_value = make_response(503, "{}")

        response = client.post(
            "/payments/doku/create",
            json={"amount": 10000, "invoiceNumber": "INV-001"},
            headers=AUTH,
        )

        assert response.status_code == 503
        assert response.json()["error"]["details"] == {}

    def test_transport_error_is_bad_gateway(self, client, mock_session):
        mock_session.request.side_effect = aiohttp.ClientConnectionError("refused")

        response = client.post(
            "/payments/doku/create",
            json={"amount": 10000, "invoiceNumber": "INV-001"},
            headers=AUTH,
        )

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "gateway_unavailable"

    def test_create_comprehensive(self, client, mock_session):
        payload = {
            "customer": {"name": "Ayu"},
            "order": {
                "amount": 100000,
                "invoice_number": "INV-100",
                "line_items": [{"name": "Sneaker", "price": 100000, "quantity": 1}],
            },
            "payment": {},
            "shipping_address": {},
            "billing_address": {},
            "amount": 100000,
            "invoiceNumber": "INV-100",
        }

        response = client.post("/payments/doku/create-comprehensive", json=payload, headers=AUTH)

        assert response.status_code == 200
        sent = json.loads(mock_session.request.await_args.kwargs["data"])
        assert sent["order"]["line_items"][0]["name"] == "Sneaker"


class TestStatusRoute:
    """Payment status route."""

    def test_status(self, client, mock_session):
        mock_session.request.return_value = make_response(
            200, '{"transaction":{"status":"SUCCESS"}}'
        )

        response = client.get("/payments/doku/status/INV-001", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"transaction": {"status": "SUCCESS"}}
        method, url = mock_session.request.await_args.args
        assert method == "GET"
        assert url.endswith("/orders/v1/status/INV-001")

    def test_status_not_found(self, client, mock_session):
        mock_session.request.return_value = make_response(404, '{"error":"missing"}')

        response = client.get("/payments/doku/status/INV-404", headers=AUTH)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"


class TestNotifyRoute:
    """DOKU notification endpoint."""

    def test_accepts_signed_notification(self, client, sample_notification):
        raw_body = json.dumps(sample_notification, indent=1).encode("utf-8")

        response = client.post(
            "/payments/doku/notify",
            content=raw_body,
            headers=_notify_headers(raw_body),
        )

        assert response.status_code == 200
        assert response.json() == {"message": "OK"}

    def test_does_not_require_api_key(self, client, sample_notification):
        raw_body = json.dumps(sample_notification).encode("utf-8")
        response = client.post(
            "/payments/doku/notify",
            content=raw_body,
            headers=_notify_headers(raw_body),
        )
        assert response.status_code == 200

    def test_rejects_tampered_body(self, client, sample_notification):
        raw_body = json.dumps(sample_notification).encode("utf-8")
        headers = _notify_headers(raw_body)
        tampered = raw_body.replace(b"SUCCESS", b"FAILED!")

        response = client.post("/payments/doku/notify", content=tampered, headers=headers)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_signature"

    def test_rejects_unsigned(self, client):
        response = client.post("/payments/doku/notify", content=b"{}")
        assert response.status_code == 401

    def test_handler_receives_payload(self, settings, gateway_client, sample_notification):
        handler = AsyncMock()
        raw_body = json.dumps(sample_notification).encode("utf-8")

        with TestClient(
            create_app(settings, client=gateway_client, notification_handler=handler)
        ) as test_client:
            response = test_client.post(
                "/payments/doku/notify",
                content=raw_body,
                headers=_notify_headers(raw_body),
            )

        assert response.status_code == 200
        handler.assert_awaited_once_with(sample_notification)

    def test_handler_not_called_on_mismatch(self, settings, gateway_client):
        handler = AsyncMock()

        with TestClient(
            create_app(settings, client=gateway_client, notification_handler=handler)
        ) as test_client:
            test_client.post("/payments/doku/notify", content=b"{}")

        handler.assert_not_awaited()


class TestCustomNotificationPath:
    """Notification endpoint mounted away from the default path."""

    def test_path_from_settings(self, sample_notification):
        settings = Settings(
            _env_file=None,
            client_id=TEST_CLIENT_ID,
            secret_key=TEST_SECRET,
            api_secret_key=TEST_API_KEY,
            notification_path="/hooks/doku",
        )
        raw_body = json.dumps(sample_notification).encode("utf-8")

        with TestClient(create_app(settings)) as test_client:
            response = test_client.post(
                "/hooks/doku",
                content=raw_body,
                headers=_notify_headers(raw_body, "/hooks/doku"),
            )

        assert response.status_code == 200
        assert response.json() == {"message": "OK"}

    def test_route_follows_client_config(self, settings, mock_session, sample_notification):
        config = GatewayConfig(
            client_id=TEST_CLIENT_ID,
            secret_key=TEST_SECRET,
            notification_path="/hooks/doku",
        )
        gateway_client = GatewayClient(config, session=mock_session)
        raw_body = json.dumps(sample_notification).encode("utf-8")

        with TestClient(create_app(settings, client=gateway_client)) as test_client:
            response = test_client.post(
                "/hooks/doku",
                content=raw_body,
                headers=_notify_headers(raw_body, "/hooks/doku"),
            )

        assert response.status_code == 200

    def test_signature_for_default_path_rejected(self, settings, mock_session, sample_notification):
        config = GatewayConfig(
            client_id=TEST_CLIENT_ID,
            secret_key=TEST_SECRET,
            notification_path="/hooks/doku",
        )
        gateway_client = GatewayClient(config, session=mock_session)
        raw_body = json.dumps(sample_notification).encode("utf-8")

        with TestClient(create_app(settings, client=gateway_client)) as test_client:
            response = test_client.post(
                "/hooks/doku",
                content=raw_body,
                headers=_notify_headers(raw_body),
            )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_signature"


def test_metrics_endpoint(client):
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "dokupay_http_requests_total" in response.text
