"""
Unit tests for the facilitator settlement client.
"""
import pytest
import requests
from unittest.mock import MagicMock

from paygate.core.config import Settings
from paygate.core.exceptions import InternalError, ValidationError
from paygate.x402.networks import NetworkFamily
from paygate.x402.settlement import (
    FacilitatorError,
    SettlementClient,
    classify_facilitator_error,
)

PAYLOAD = {"x402Version": 1, "scheme": "exact", "network": "polygon-amoy", "payload": {}}
REQUIREMENTS = {"scheme": "exact", "network": "polygon-amoy", "payTo": "0xpayto"}


def make_response(status_code=200, json_data=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    else:
        response.raise_for_status.return_value = None
    return response


def make_client(response=None, side_effect=None, **kwargs):
    session = MagicMock()
    if side_effect is not None:
        session.post.side_effect = side_effect
    else:
        session.post.return_value = response
    return SettlementClient("https://facilitator.example", session=session, **kwargs), session


class TestSettle:
    """Test settle outcomes."""

    def test_success(self):
        client, session = make_client(make_response(json_data={
            "success": True, "transactionHash": "0xabc", "network": "polygon-amoy", "payer": "0xpayer",
        }))

        result = client.settle(PAYLOAD, REQUIREMENTS)

        assert result.success is True
        assert result.transaction == "0xabc"
        assert result.payer == "0xpayer"
        args, kwargs = session.post.call_args
        assert args[0] == "https://facilitator.example/settle"
        assert kwargs["json"] == {"paymentPayload": PAYLOAD, "paymentRequirements": REQUIREMENTS}
        assert kwargs["timeout"] == 30.0

    def test_reported_failure(self):
        client, _ = make_client(make_response(json_data={"success": False, "errorReason": "insufficient_funds"}))

        result = client.settle(PAYLOAD, REQUIREMENTS)

        assert result.success is False
        assert result.error == "insufficient_funds"

    def test_truthy_non_boolean_success_is_failure(self):
        client, _ = make_client(make_response(json_data={"success": "yes"}))
        assert client.settle(PAYLOAD, REQUIREMENTS).success is False

    def test_unreachable_facilitator(self):
        """No response at all is an internal error."""
        client, _ = make_client(side_effect=requests.ConnectionError("refused"))

        with pytest.raises(InternalError) as exc:
            client.settle(PAYLOAD, REQUIREMENTS)
        assert exc.value.status_code == 500
        assert exc.value.message == "Payment settlement failed"

    def test_timeout(self):
        client, _ = make_client(side_effect=requests.Timeout("slow"))
        with pytest.raises(InternalError):
            client.settle(PAYLOAD, REQUIREMENTS)

    def test_error_response_propagates_status_and_message(self):
        client, _ = make_client(make_response(400, {"error": "Invalid payment payload"}))

        with pytest.raises(FacilitatorError) as exc:
            client.settle(PAYLOAD, REQUIREMENTS)
        assert exc.value.status_code == 400
        assert exc.value.message == "Invalid payment payload"

    def test_non_object_body(self):
        client, _ = make_client(make_response(json_data=["unexpected"]))
        with pytest.raises(InternalError):
            client.settle(PAYLOAD, REQUIREMENTS)

    def test_unknown_network_rejected_before_call(self):
        client, session = make_client(make_response(json_data={"success": True}))

        with pytest.raises(ValidationError, match="Unsupported network: dogecoin"):
            client.settle(PAYLOAD, {**REQUIREMENTS, "network": "dogecoin"})
        session.post.assert_not_called()


class TestVerify:
    """Test verify calls."""

    def test_verify(self):
        client, session = make_client(make_response(json_data={"isValid": True, "payer": "0xpayer"}))

        result = client.verify(PAYLOAD, REQUIREMENTS)

        assert result.isValid is True
        assert session.post.call_args[0][0] == "https://facilitator.example/verify"


class TestRouting:
    """Test per-family facilitator selection."""

    def test_family_override(self):
        client = SettlementClient(
            "https://default.example",
            family_urls={NetworkFamily.SVM: "https://svm.example/api"},
            session=MagicMock(),
        )
        assert client.facilitator_url_for("solana-devnet") == "https://svm.example/api"
        assert client.facilitator_url_for("polygon-amoy") == "https://default.example"

    def test_from_settings(self):
        client = SettlementClient.from_settings(Settings(
            FACILITATOR_URL="https://default.example",
            FACILITATOR_EVM_URL="https://evm.example",
            FACILITATOR_TIMEOUT_SECONDS=5,
        ))
        assert client.facilitator_url_for("base-sepolia") == "https://evm.example"
        assert client.facilitator_url_for("solana") == "https://default.example"
        assert client.timeout == 5

    def test_operation_joined_under_base_path(self):
        client, session = make_client(make_response(json_data={"success": True}))
        client.family_urls = {NetworkFamily.EVM: "https://evm.example/x402"}

        client.settle(PAYLOAD, REQUIREMENTS)

        assert session.post.call_args[0][0] == "https://evm.example/x402/settle"


class TestClassifyFacilitatorError:
    """Test failure classification."""

    def test_no_response(self):
        assert isinstance(classify_facilitator_error(requests.ConnectionError()), InternalError)

    def test_body_without_error_field(self):
        response = make_response(503, {"detail": "down"})
        error = classify_facilitator_error(requests.HTTPError(response=response))
        assert error.status_code == 503
        assert error.message == "Payment settlement failed"

    def test_non_json_body(self):
        response = make_response(502)
        response.json.side_effect = ValueError("no json")
        error = classify_facilitator_error(requests.HTTPError(response=response))
        assert error.status_code == 502
