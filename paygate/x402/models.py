# paygate/x402/models.py
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class PaymentRequirements(BaseModel):
    """
    What a caller must pay to use a protected resource (the 402 body's
    paymentRequirements object).
    """
    scheme: str = "exact"
    network: str
    payTo: str
    maxAmountRequired: str
    maxTimeoutSeconds: int
    asset: str
    resource: str
    description: str
    mimeType: str = "application/json"
    extra: Optional[Dict[str, Any]] = None


class PaymentAssertion(BaseModel):
    """Caller-supplied (payload, requirements) pair driving one settlement call."""
    paymentPayload: Dict[str, Any]
    paymentRequirements: Dict[str, Any]

    @classmethod
    def from_body(cls, body: Any) -> Optional["PaymentAssertion"]:
        """Build an assertion from a decoded request body, or None if it carries none."""
        if not isinstance(body, dict):
            return None
        payload = body.get("paymentPayload")
        requirements = body.get("paymentRequirements")
        if not isinstance(payload, dict) or not isinstance(requirements, dict):
            return None
        if not payload or not requirements:
            return None
        return cls(paymentPayload=payload, paymentRequirements=requirements)

    @property
    def network(self) -> Optional[str]:
        return self.paymentRequirements.get("network")


class SettlementResult(BaseModel):
    """Outcome reported by the facilitator's settle operation."""
    success: bool
    transaction: Optional[str] = Field(None, description="Settlement / transaction identifier")
    network: Optional[str] = None
    payer: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "SettlementResult":
        return cls(
            success=data.get("success") is True,
            transaction=data.get("transactionHash") or data.get("transaction") or data.get("id"),
            network=data.get("network"),
            payer=data.get("payer"),
            error=data.get("errorReason") or data.get("error"),
        )


class VerificationResult(BaseModel):
    """Outcome reported by the facilitator's verify operation."""
    isValid: bool
    invalidReason: Optional[str] = None
    payer: Optional[str] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "VerificationResult":
        return cls(
            isValid=data.get("isValid") is True,
            invalidReason=data.get("invalidReason") or data.get("error"),
            payer=data.get("payer"),
        )
