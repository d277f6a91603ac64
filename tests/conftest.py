"""Shared fixtures for gateway tests."""
import pytest
from unittest.mock import MagicMock

from paygate.auth.credentials import CredentialIssuer
from paygate.core.config import Settings
from paygate.registry import FileResourceRegistry
from paygate.x402.models import SettlementResult

from helpers import ORIGIN, PAYOUT_ADDRESS, TEST_SECRET


@pytest.fixture
def settings():
    return Settings(JWT_SECRET=TEST_SECRET, AUDIT_LOG_PATH=None)


@pytest.fixture
def registry(tmp_path):
    return FileResourceRegistry(str(tmp_path / "protected-resources.json"))


@pytest.fixture
def issuer():
    return CredentialIssuer(TEST_SECRET, ttl_seconds=3600)


@pytest.fixture
def settlement_client():
    client = MagicMock()
    client.settle.return_value = SettlementResult(
        success=True, transaction="0xabc123", network="polygon-amoy", payer="0xpayer"
    )
    return client


@pytest.fixture
def protected_origin(registry):
    """Registry with one enabled resource at ORIGIN."""
    return registry.create(ORIGIN, {
        "payoutAddress": PAYOUT_ADDRESS,
        "price": "100",
        "network": "polygon-amoy",
        "description": "Premium API access",
    })
