# paygate/core/exceptions.py
"""
Error taxonomy shared by the gateway, the registry and the settlement client.

Each error carries the HTTP status it maps to, so the layer that finally
answers the request (route handler or middleware) can convert it without a
lookup table.
"""
from typing import Optional


class GatewayError(Exception):
    """Base class for all paygate domain errors."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(GatewayError):
    status_code = 400
    default_message = "Invalid request"


class UnauthenticatedError(GatewayError):
    status_code = 401
    default_message = "Valid access token required"


class PaymentRequiredError(GatewayError):
    status_code = 402
    default_message = "Payment Required"


class SettlementFailedError(GatewayError):
    status_code = 402
    default_message = "Payment settlement failed"


class NotFoundError(GatewayError):
    status_code = 404
    default_message = "Protected resource not found"


class ConflictError(GatewayError):
    status_code = 409
    default_message = "Resource already exists"


class InternalError(GatewayError):
    status_code = 500
    default_message = "Internal server error"
