# paygate/x402/settlement.py
"""
Client for the external facilitator's verify and settle operations.

Calls are blocking, bounded by a timeout and never retried. Failures are
classified by whether the facilitator answered at all:
- no answer (connection error, timeout, unreadable body) -> InternalError (500)
- an error answer -> FacilitatorError carrying the facilitator's status/message
- an answer of {"success": false} -> SettlementResult(success=False)
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests
from requests.exceptions import RequestException

from paygate.core.config import Settings
from paygate.core.exceptions import GatewayError, InternalError
from paygate.x402.models import SettlementResult, VerificationResult
from paygate.x402.networks import NetworkFamily, resolve_network_family

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Payment settlement failed"


class FacilitatorError(GatewayError):
    """The facilitator answered with an error status."""
    status_code = 502
    default_message = DEFAULT_FAILURE_MESSAGE


def classify_facilitator_error(error: RequestException) -> GatewayError:
    """Turn a transport-level failure into a domain error."""
    response = getattr(error, "response", None)
    if response is None:
        return InternalError(DEFAULT_FAILURE_MESSAGE)

    message = DEFAULT_FAILURE_MESSAGE
    try:
        body = response.json()
        if isinstance(body, dict) and body.get("error"):
            message = str(body["error"])
    except ValueError:
        pass
    return FacilitatorError(message, status_code=response.status_code)


class SettlementClient:
    """
    Facilitator client with per-network-family endpoints.

    family_urls overrides the default facilitator for a family; unknown
    networks are rejected before any network call is made.
    """

    def __init__(
        self,
        facilitator_url: str,
        family_urls: Optional[Dict[NetworkFamily, str]] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.facilitator_url = facilitator_url
        self.family_urls = {family: url for family, url in (family_urls or {}).items() if url}
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettlementClient":
        return cls(
            facilitator_url=settings.FACILITATOR_URL,
            family_urls={
                NetworkFamily.EVM: settings.FACILITATOR_EVM_URL,
                NetworkFamily.SVM: settings.FACILITATOR_SVM_URL,
            },
            timeout=settings.FACILITATOR_TIMEOUT_SECONDS,
        )

    def facilitator_url_for(self, network: Optional[str]) -> str:
        """Facilitator base URL for a network; raises ValidationError for unknown networks."""
        family = resolve_network_family(network)
        return self.family_urls.get(family, self.facilitator_url)

    def _post(self, operation: str, payload: Dict[str, Any], requirements: Dict[str, Any]) -> Dict[str, Any]:
        base_url = self.facilitator_url_for(requirements.get("network"))
        url = urljoin(base_url.rstrip("/") + "/", operation)

        try:
            response = self._session.post(
                url,
                json={"paymentPayload": payload, "paymentRequirements": requirements},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except RequestException as e:
            logger.error(f"Facilitator {operation} call to {url} failed: {e}")
            raise classify_facilitator_error(e) from e

        if not isinstance(data, dict):
            logger.error(f"Facilitator {operation} returned unexpected data: {type(data)}")
            raise InternalError("Invalid response from facilitator")
        return data

    def settle(self, payload: Dict[str, Any], requirements: Dict[str, Any]) -> SettlementResult:
        """
        Ask the facilitator to execute the payment.

        Raises:
            ValidationError: unknown network
            FacilitatorError: facilitator answered with an error status
            InternalError: facilitator unreachable or answered garbage
        """
        result = SettlementResult.from_response(self._post("settle", payload, requirements))
        if result.success:
            logger.info(f"Settlement succeeded on {requirements.get('network')}: {result.transaction}")
        else:
            logger.warning(f"Settlement rejected on {requirements.get('network')}: {result.error}")
        return result

    def verify(self, payload: Dict[str, Any], requirements: Dict[str, Any]) -> VerificationResult:
        """Check a payment assertion without executing a transfer. Same errors as settle()."""
        return VerificationResult.from_response(self._post("verify", payload, requirements))
