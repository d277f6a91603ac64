"""
Tests for the facilitator process: signers, service routing, the HTTP
surface and EIP-3009 verification.

Chain access is never needed: mechanisms are faked for routing tests and
the balance lookup is mocked for EVM verification.
"""
import secrets
import time
import pytest
from unittest.mock import MagicMock

from eth_account import Account
from eth_account.messages import encode_typed_data
from fastapi.testclient import TestClient
from solders.keypair import Keypair

from paygate.core.config import Settings
from paygate.core.exceptions import ValidationError
from paygate.facilitator.main import create_app
from paygate.facilitator.mechanisms import ExactEvmMechanism, SchemeMechanism
from paygate.facilitator.service import FacilitatorService
from paygate.facilitator.signers import EvmSigner, SvmSigner, build_signers
from paygate.x402.models import PaymentRequirements
from paygate.x402.networks import NetworkFamily

EVM_KEY = "0x" + "11" * 32
PAYER_KEY = "0x" + "22" * 32
PAY_TO = "0x376b7271dD22D14D82Ef594324ea14e7670ed5b2"
AMOY_USDC = "0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582"


def make_requirements(network: str = "polygon-amoy", **overrides) -> PaymentRequirements:
    fields = {
        "scheme": "exact",
        "network": network,
        "payTo": PAY_TO,
        "maxAmountRequired": "100",
        "maxTimeoutSeconds": 3600,
        "asset": AMOY_USDC,
        "resource": "http://testserver/premium",
        "description": "Premium API access",
        **overrides,
    }
    return PaymentRequirements(**fields)


class FakeMechanism(SchemeMechanism):
    """Records calls and returns canned results."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def verify(self, payload, requirements):
        self.calls.append(("verify", requirements.network))
        return {"isValid": True, "invalidReason": None, "payer": "0xpayer"}

    def settle(self, payload, requirements):
        self.calls.append(("settle", requirements.network))
        return {"success": True, "errorReason": None, "transaction": "0xtx", "network": requirements.network, "payer": "0xpayer"}


class TestSigners:
    """Test signer construction."""

    def test_evm_signer(self):
        signer = EvmSigner.from_private_key(EVM_KEY)
        assert signer.address == Account.from_key(EVM_KEY).address

    def test_invalid_evm_key(self):
        with pytest.raises(ValidationError):
            EvmSigner.from_private_key("0x1234")

    def test_svm_signer(self):
        keypair = Keypair()
        signer = SvmSigner.from_private_key(str(keypair))
        assert signer.address == str(keypair.pubkey())

    def test_only_families_with_keys(self):
        signers = build_signers(EVM_KEY, None)
        assert list(signers) == [NetworkFamily.EVM]
        assert build_signers(None, None) == {}


class TestFacilitatorService:
    """Test routing by network family."""

    def make_service(self):
        evm = FakeMechanism()
        service = FacilitatorService(
            signers={NetworkFamily.EVM: EvmSigner.from_private_key(EVM_KEY)},
            mechanisms={NetworkFamily.EVM: evm},
            networks={NetworkFamily.EVM: ["polygon-amoy", "base-sepolia"], NetworkFamily.SVM: ["solana-devnet"]},
        )
        return service, evm

    def test_routes_to_family_mechanism(self):
        service, evm = self.make_service()

        result = service.settle({}, make_requirements("base-sepolia"))

        assert result["success"] is True
        assert evm.calls == [("settle", "base-sepolia")]

    def test_family_without_signer(self):
        service, _ = self.make_service()
        with pytest.raises(ValidationError, match="No signer configured for svm"):
            service.verify({}, make_requirements("solana-devnet"))

    def test_unknown_network(self):
        service, evm = self.make_service()
        with pytest.raises(ValidationError, match="Unsupported network"):
            service.settle({}, make_requirements("dogecoin"))
        assert evm.calls == []

    def test_supported_lists_only_signed_families(self):
        service, _ = self.make_service()

        kinds = service.supported()["kinds"]

        assert [k["network"] for k in kinds] == ["polygon-amoy", "base-sepolia"]
        assert all(k["x402Version"] == 1 and k["scheme"] == "exact" for k in kinds)
        assert all("extra" not in k for k in kinds)

    def test_supported_svm_fee_payer(self):
        keypair = Keypair()
        service = FacilitatorService.from_settings(Settings(SVM_PRIVATE_KEY=str(keypair)))

        kinds = service.supported()["kinds"]

        assert kinds == [{
            "x402Version": 1,
            "scheme": "exact",
            "network": "solana-devnet",
            "extra": {"feePayer": str(keypair.pubkey())},
        }]

    def test_from_settings_without_keys(self):
        service = FacilitatorService.from_settings(Settings(EVM_PRIVATE_KEY=None, SVM_PRIVATE_KEY=None))
        assert service.supported() == {"kinds": []}

    def test_network_in_wrong_family_rejected(self):
        with pytest.raises(ValidationError):
            FacilitatorService.from_settings(Settings(FACILITATOR_EVM_NETWORKS="solana"))


class TestFacilitatorApi:
    """HTTP surface of the facilitator."""

    @pytest.fixture
    def fake(self):
        return FakeMechanism()

    @pytest.fixture
    def client(self, fake):
        service = FacilitatorService(
            signers={NetworkFamily.EVM: EvmSigner.from_private_key(EVM_KEY)},
            mechanisms={NetworkFamily.EVM: fake},
            networks={NetworkFamily.EVM: ["polygon-amoy"]},
        )
        return TestClient(create_app(settings=Settings(), service=service))

    def body(self, network: str = "polygon-amoy") -> dict:
        return {
            "paymentPayload": {"x402Version": 1, "scheme": "exact", "network": network, "payload": {}},
            "paymentRequirements": make_requirements(network).model_dump(),
        }

    def test_describe_endpoints(self, client):
        assert client.get("/verify").json()["endpoint"] == "/verify"
        assert client.get("/settle").json()["endpoint"] == "/settle"

    def test_verify(self, client, fake):
        response = client.post("/verify", json=self.body())

        assert response.status_code == 200
        assert response.json()["isValid"] is True
        assert fake.calls == [("verify", "polygon-amoy")]

    def test_settle(self, client, fake):
        response = client.post("/settle", json=self.body())

        assert response.status_code == 200
        assert response.json()["transaction"] == "0xtx"

    def test_invalid_body(self, client, fake):
        response = client.post("/settle", json={"paymentPayload": {}})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")
        assert fake.calls == []

    def test_non_json_body(self, client):
        response = client.post("/settle", content=b"not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    def test_unknown_network(self, client):
        response = client.post("/settle", json=self.body("dogecoin"))

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request: Unsupported network: dogecoin"}

    def test_missing_signer(self, client):
        response = client.post("/verify", json=self.body("solana-devnet"))
        assert response.status_code == 400

    def test_supported(self, client):
        kinds = client.get("/supported").json()["kinds"]
        assert [k["network"] for k in kinds] == ["polygon-amoy"]

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy", "families": ["evm"]}


class TestExactEvmVerify:
    """EIP-3009 verification against a locally signed authorization."""

    @pytest.fixture
    def mechanism(self):
        mechanism = ExactEvmMechanism(EvmSigner.from_private_key(EVM_KEY))
        mechanism.balance_of = MagicMock(return_value=10 ** 6)
        return mechanism

    def signed_payload(self, requirements: PaymentRequirements, **authorization_overrides) -> dict:
        payer = Account.from_key(PAYER_KEY)
        now = int(time.time())
        authorization = {
            "from": payer.address,
            "to": PAY_TO,
            "value": "100",
            "validAfter": str(now - 60),
            "validBefore": str(now + 600),
            "nonce": "0x" + secrets.token_hex(32),
            **authorization_overrides,
        }
        typed_data = ExactEvmMechanism.authorization_typed_data(authorization, requirements, 80002)
        signed = Account.sign_message(encode_typed_data(full_message=typed_data), PAYER_KEY)
        return {
            "x402Version": 1,
            "scheme": "exact",
            "network": requirements.network,
            "payload": {"signature": "0x" + bytes(signed.signature).hex(), "authorization": authorization},
        }

    def test_valid_authorization(self, mechanism):
        requirements = make_requirements()

        result = mechanism.verify(self.signed_payload(requirements), requirements)

        assert result == {"isValid": True, "invalidReason": None, "payer": Account.from_key(PAYER_KEY).address}

    def test_signature_by_someone_else(self, mechanism):
        requirements = make_requirements()
        payload = self.signed_payload(requirements)
        payload["payload"]["authorization"]["from"] = Account.from_key(EVM_KEY).address

        result = mechanism.verify(payload, requirements)

        assert result["invalidReason"] == "invalid_exact_evm_payload_signature"

    def test_recipient_mismatch(self, mechanism):
        requirements = make_requirements()
        payload = self.signed_payload(requirements, to=Account.from_key(EVM_KEY).address)

        assert mechanism.verify(payload, requirements)["invalidReason"] == "invalid_exact_evm_payload_recipient_mismatch"

    def test_value_too_low(self, mechanism):
        requirements = make_requirements()
        payload = self.signed_payload(requirements, value="99")

        assert mechanism.verify(payload, requirements)["invalidReason"] == "invalid_exact_evm_payload_authorization_value"

    def test_expired_authorization(self, mechanism):
        requirements = make_requirements()
        payload = self.signed_payload(requirements, validBefore=str(int(time.time()) - 1))

        assert mechanism.verify(payload, requirements)["invalidReason"] == "invalid_exact_evm_payload_authorization_valid_before"

    def test_insufficient_balance(self, mechanism):
        mechanism.balance_of.return_value = 50
        requirements = make_requirements()

        assert mechanism.verify(self.signed_payload(requirements), requirements)["invalidReason"] == "insufficient_funds"

    def test_non_string_payer(self, mechanism):
        requirements = make_requirements()
        payload = self.signed_payload(requirements)
        payload["payload"]["authorization"]["from"] = 12345

        result = mechanism.verify(payload, requirements)

        assert result["isValid"] is False
        assert result["invalidReason"] == "invalid_exact_evm_payload"

    def test_network_mismatch(self, mechanism):
        requirements = make_requirements()
        payload = self.signed_payload(requirements)
        payload["network"] = "base"

        assert mechanism.verify(payload, requirements)["invalidReason"] == "invalid_network"

    def test_settle_rejects_invalid_without_sending(self, mechanism):
        requirements = make_requirements()
        payload = self.signed_payload(requirements, value="1")

        result = mechanism.settle(payload, requirements)

        assert result["success"] is False
        assert result["errorReason"] == "invalid_exact_evm_payload_authorization_value"
        assert mechanism._clients == {}
