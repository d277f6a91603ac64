# paygate/x402/gateway.py
"""
Per-request access decision for protected origins.

The decision runs in a fixed order:
1. Resolve the calling origin (Origin, else Referer). Absent or unparsable
   -> ALLOW: protection simply does not apply to this request.
2. Look the origin up in the registry. Unknown or disabled -> ALLOW.
3. A valid credential -> ALLOW. With CREDENTIAL_BIND_TO_RESOURCE on, only
   a credential issued for this resource counts.
4. A payment assertion -> settle it. Success mints a credential and
   ALLOWs; failure DENYs with the facilitator's status/message.
5. Otherwise DENY_WITH_REQUIREMENTS: 402 with the payment that would
   satisfy this resource.

Only the success path of step 4 has a side effect (the new credential).
The registry is never written here.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import jwt

from paygate.auth.credentials import CredentialClaims, CredentialIssuer
from paygate.core.config import Settings
from paygate.core.exceptions import GatewayError, PaymentRequiredError, SettlementFailedError
from paygate.registry.base import ProtectedResource, ResourceRegistry, canonical_origin
from paygate.x402 import audit
from paygate.x402.models import PaymentAssertion, PaymentRequirements, SettlementResult
from paygate.x402.networks import usdc_asset
from paygate.x402.settlement import SettlementClient

logger = logging.getLogger(__name__)


class AccessOutcome(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    DENY_WITH_REQUIREMENTS = "deny_with_requirements"


class AccessReason(str, Enum):
    NO_ORIGIN = "no_origin"
    UNPROTECTED = "unprotected"
    DISABLED = "disabled"
    CREDENTIAL = "credential"
    PAYMENT = "payment"
    SETTLEMENT_FAILED = "settlement_failed"
    PAYMENT_REQUIRED = "payment_required"


@dataclass
class AccessDecision:
    outcome: AccessOutcome
    reason: AccessReason
    status_code: int = 200
    origin: Optional[str] = None
    resource: Optional[ProtectedResource] = None
    claims: Optional[CredentialClaims] = None
    credential: Optional[str] = None
    settlement: Optional[SettlementResult] = None
    error: Optional[str] = None
    payment_requirements: Optional[PaymentRequirements] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is AccessOutcome.ALLOW

    def error_body(self) -> dict:
        """JSON body for a denied request."""
        body = {"error": self.error}
        if self.payment_requirements is not None:
            body["paymentRequirements"] = self.payment_requirements.model_dump(exclude_none=True)
        return body


def resolve_origin(origin_header: Optional[str], referer_header: Optional[str]) -> Optional[str]:
    """Calling origin of a request: the Origin header, falling back to Referer."""
    return canonical_origin(origin_header or referer_header)


class AuthorizationGateway:
    """Composes registry, credential issuer and settlement client into one decision."""

    def __init__(
        self,
        registry: ResourceRegistry,
        issuer: CredentialIssuer,
        settlement_client: SettlementClient,
        settings: Settings,
    ):
        self.registry = registry
        self.issuer = issuer
        self.settlement_client = settlement_client
        self.settings = settings
        self.audit_log_path = audit.get_audit_log_path(settings)

    def build_payment_requirements(self, resource: ProtectedResource, resource_url: str) -> PaymentRequirements:
        asset = usdc_asset(resource.network)
        if asset is None:
            logger.warning(f"No known asset for network {resource.network} of {resource.id}")
        return PaymentRequirements(
            scheme="exact",
            network=resource.network,
            payTo=resource.payoutAddress,
            maxAmountRequired=self.settings.PAYMENT_MAX_AMOUNT_REQUIRED,
            maxTimeoutSeconds=self.settings.PAYMENT_MAX_TIMEOUT_SECONDS,
            asset=asset or "",
            resource=resource_url,
            description=resource.description,
            mimeType=self.settings.PAYMENT_MIME_TYPE,
        )

    def _credential_applies(self, claims: Optional[CredentialClaims], resource: ProtectedResource) -> bool:
        if claims is None:
            return False
        if self.settings.CREDENTIAL_BIND_TO_RESOURCE and claims.resource != resource.id:
            logger.info(f"access: credential for {claims.resource} presented to {resource.id}, ignoring")
            return False
        return True

    def authorize(
        self,
        origin_header: Optional[str],
        referer_header: Optional[str],
        claims: Optional[CredentialClaims],
        assertion: Optional[PaymentAssertion],
        resource_url: str,
    ) -> AccessDecision:
        """Decide whether a request to a protected route may proceed."""
        origin = resolve_origin(origin_header, referer_header)
        if origin is None:
            return AccessDecision(AccessOutcome.ALLOW, AccessReason.NO_ORIGIN)

        resource = self.registry.find(origin)
        if resource is None:
            return AccessDecision(AccessOutcome.ALLOW, AccessReason.UNPROTECTED, origin=origin)
        if not resource.enabled:
            return AccessDecision(AccessOutcome.ALLOW, AccessReason.DISABLED, origin=origin)

        if self._credential_applies(claims, resource):
            logger.info(f"access: credential accepted for {origin}")
            return AccessDecision(
                AccessOutcome.ALLOW, AccessReason.CREDENTIAL,
                origin=origin, resource=resource, claims=claims,
            )

        requirements = self.build_payment_requirements(resource, resource_url)

        if assertion is None:
            logger.info(f"access: no credential or payment for {origin}, returning 402")
            audit.log_payment_required_sent(
                resource.id, resource.network, resource.payoutAddress, log_path=self.audit_log_path
            )
            return AccessDecision(
                AccessOutcome.DENY_WITH_REQUIREMENTS, AccessReason.PAYMENT_REQUIRED,
                status_code=PaymentRequiredError.status_code,
                origin=origin, resource=resource,
                error=PaymentRequiredError.default_message,
                payment_requirements=requirements,
            )

        return self._settle(resource, assertion, requirements)

    def _settle(
        self,
        resource: ProtectedResource,
        assertion: PaymentAssertion,
        requirements: PaymentRequirements,
    ) -> AccessDecision:
        request_id = audit.generate_request_id()
        audit.log_settlement_requested(
            resource.id, assertion.network, request_id=request_id, log_path=self.audit_log_path
        )

        def deny(status_code: int, error: str, settlement: Optional[SettlementResult] = None) -> AccessDecision:
            audit.log_payment_failed(
                resource.id, status_code, error, request_id=request_id, log_path=self.audit_log_path
            )
            return AccessDecision(
                AccessOutcome.DENY, AccessReason.SETTLEMENT_FAILED,
                status_code=status_code, origin=resource.id, resource=resource,
                settlement=settlement, error=error,
                payment_requirements=requirements if status_code == 402 else None,
            )

        try:
            result = self.settlement_client.settle(assertion.paymentPayload, assertion.paymentRequirements)
        except GatewayError as e:
            logger.warning(f"access: settlement for {resource.id} failed ({e.status_code}): {e.message}")
            return deny(e.status_code, e.message)

        if not result.success:
            logger.warning(f"access: facilitator reported failure for {resource.id}: {result.error}")
            return deny(SettlementFailedError.status_code, SettlementFailedError.default_message, result)

        audit.log_payment_settled(
            resource.id, result.transaction, result.network, result.payer,
            request_id=request_id, log_path=self.audit_log_path,
        )

        try:
            token = self.issuer.issue(resource.id, resource.price, result.transaction)
        except (jwt.PyJWTError, TypeError) as e:
            logger.error(f"Error generating credential for {resource.id}: {e}")
            return deny(500, "Internal server error", result)

        audit.log_credential_issued(
            resource.id, result.transaction, request_id=request_id, log_path=self.audit_log_path
        )
        logger.info(f"access: credential issued for {resource.id} after settlement {result.transaction}")
        return AccessDecision(
            AccessOutcome.ALLOW, AccessReason.PAYMENT,
            origin=resource.id, resource=resource,
            claims=self.issuer.try_verify(token), credential=token, settlement=result,
        )
