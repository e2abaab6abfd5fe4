"""Pytest configuration and fixtures."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from dokupay.common.settings import Settings
from dokupay.gateway.client import GatewayClient, GatewayConfig

TEST_SECRET = "dokupay-test-secret"
TEST_CLIENT_ID = "CID1"
TEST_API_KEY = "merchant-api-key"


def make_response(status: int, text: str) -> AsyncMock:
    """Build a mock aiohttp response usable with ``async with``."""
    response = AsyncMock()
    response.status = status
    response.text = AsyncMock(return_value=text)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        doku_env="sandbox",
        client_id=TEST_CLIENT_ID,
        secret_key=TEST_SECRET,
        api_secret_key=TEST_API_KEY,
        default_currency="IDR",
        http_timeout=None,
    )


@pytest.fixture
def gateway_config() -> GatewayConfig:
    """Gateway configuration pointing at the sandbox host."""
    return GatewayConfig(
        client_id=TEST_CLIENT_ID,
        secret_key=TEST_SECRET,
        base_url="https://api-sandbox.doku.com",
        default_currency="IDR",
    )


@pytest.fixture
def mock_session() -> MagicMock:
    """Mock aiohttp session returning a successful checkout response."""
    session = MagicMock()
    session.request = AsyncMock(
        return_value=make_response(
            200,
            '{"message":["SUCCESS"],"response":{"payment":{"url":"https://pay.example/abc"}}}',
        )
    )
    session.close = AsyncMock()
    return session


@pytest.fixture
def gateway_client(gateway_config: GatewayConfig, mock_session: MagicMock) -> GatewayClient:
    """Gateway client wired to the mock session."""
    return GatewayClient(gateway_config, session=mock_session)


@pytest.fixture
def sample_notification() -> dict[str, Any]:
    """Sample DOKU payment notification body."""
    return {
        "order": {"invoice_number": "INV-001", "amount": 10000},
        "transaction": {
            "status": "SUCCESS",
            "date": "2024-01-01T00:00:05Z",
            "original_request_id": "RID-ORIGINAL",
        },
        "service": {"id": "VIRTUAL_ACCOUNT"},
    }
