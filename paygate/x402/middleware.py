# paygate/x402/middleware.py
"""
FastAPI middleware applying the access gateway.

For every request the middleware:
1. Reads any credential (cookie, else bearer header) and stores the verified
   claims, or None, in request.state.credential. Verification never blocks.
2. On protected endpoints, extracts the payment assertion (JSON body or
   X-PAYMENT header) and asks the AuthorizationGateway for a decision.
3. Answers denied requests itself; for allowed ones it calls the endpoint
   and attaches any newly minted credential as a cookie.
"""
import json
import logging
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from x402.encoding import safe_base64_decode

from paygate.auth.credentials import CredentialIssuer, extract_token
from paygate.core.config import Settings
from paygate.core.exceptions import GatewayError
from paygate.x402.gateway import AccessReason, AuthorizationGateway
from paygate.x402.models import PaymentAssertion

logger = logging.getLogger(__name__)

X_PAYMENT_HEADER = "X-PAYMENT"

# Endpoints subject to the pay-or-credential decision
PROTECTED_ENDPOINTS = [
    ("GET", "/premium"),
    ("POST", "/premium"),
]

BODY_METHODS = {"POST", "PUT", "PATCH"}


def is_protected_endpoint(method: str, path: str) -> bool:
    """Check if the request matches a protected endpoint."""
    normalized = path.rstrip("/") or "/"
    return any(
        method == protected_method and normalized == protected_path
        for protected_method, protected_path in PROTECTED_ENDPOINTS
    )


def decode_payment_header(header_value: str) -> Optional[PaymentAssertion]:
    """
    Decode an X-PAYMENT header holding base64 JSON
    {"paymentPayload": ..., "paymentRequirements": ...}.

    Returns:
        PaymentAssertion if the header decodes, None otherwise
    """
    try:
        decoded_str = safe_base64_decode(header_value)
        if not decoded_str:
            logger.warning("Failed to decode X-PAYMENT header: invalid base64")
            return None
        return PaymentAssertion.from_body(json.loads(decoded_str))
    except (ValueError, TypeError) as e:
        logger.warning(f"Failed to decode X-PAYMENT header: {e}")
        return None


async def extract_payment_assertion(request: Request) -> Optional[PaymentAssertion]:
    """Payment assertion carried by the request: X-PAYMENT header first, then JSON body."""
    header_value = request.headers.get(X_PAYMENT_HEADER)
    if header_value:
        assertion = decode_payment_header(header_value)
        if assertion is not None:
            return assertion

    if request.method not in BODY_METHODS:
        return None

    body = await request.body()
    if not body:
        return None
    try:
        return PaymentAssertion.from_body(json.loads(body))
    except ValueError:
        logger.debug("Request body is not JSON, no payment assertion")
        return None


def set_credential_cookie(response: Response, token: str, settings: Settings) -> None:
    """Attach a credential as an HTTP-only cookie."""
    response.set_cookie(
        key=settings.CREDENTIAL_COOKIE_NAME,
        value=token,
        max_age=settings.CREDENTIAL_TTL_SECONDS,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


class AccessGatewayMiddleware(BaseHTTPMiddleware):
    """Credential reading for every request, access decisions for protected endpoints."""

    def __init__(self, app, gateway: AuthorizationGateway, issuer: CredentialIssuer, settings: Settings):
        super().__init__(app)
        self.gateway = gateway
        self.issuer = issuer
        self.settings = settings

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response]
    ) -> Response:
        token = extract_token(request, self.settings.CREDENTIAL_COOKIE_NAME)
        claims = self.issuer.try_verify(token)
        request.state.credential = claims
        request.state.access_method = None

        if not is_protected_endpoint(request.method, request.url.path):
            return await call_next(request)

        assertion = await extract_payment_assertion(request)

        try:
            decision = await run_in_threadpool(
                self.gateway.authorize,
                request.headers.get("origin"),
                request.headers.get("referer"),
                claims,
                assertion,
                str(request.url),
            )
        except GatewayError as e:
            logger.error(f"access: decision failed for {request.url.path}: {e.message}")
            return JSONResponse(status_code=e.status_code, content={"error": e.message})

        if not decision.allowed:
            return JSONResponse(status_code=decision.status_code, content=decision.error_body())

        if decision.reason is AccessReason.PAYMENT:
            request.state.credential = decision.claims
            request.state.access_method = "payment"
        elif decision.reason is AccessReason.CREDENTIAL:
            request.state.access_method = "credential"

        response = await call_next(request)

        if decision.credential:
            set_credential_cookie(response, decision.credential, self.settings)
        return response
