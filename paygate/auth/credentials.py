# paygate/auth/credentials.py
"""
Session credentials issued after a successful settlement.

Credentials are HS256 JWTs with a fixed lifetime. Nothing is stored
server-side: a credential is valid when its signature checks out and it has
not expired.

Verification is split in two:
- try_verify() never raises; bad, expired or forged tokens look exactly like
  "no token" so middleware can keep going.
- require_valid() is the explicit gate for credential-only routes.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.requests import HTTPConnection

from paygate.core.exceptions import UnauthenticatedError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
BEARER_PREFIX = "bearer"


class CredentialClaims(BaseModel):
    """Claims carried by a credential."""
    resource: str
    paid: bool
    timestamp: str
    price: str
    settlementId: Optional[str] = None
    iat: Optional[int] = None
    exp: Optional[int] = None


class CredentialIssuer:
    """Mints and validates signed, time-limited session credentials."""

    def __init__(self, secret: str, ttl_seconds: int = 24 * 60 * 60):
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, resource: str, price: str, settlement_id: Optional[str]) -> str:
        """Sign a credential bound to a resource and the settlement that paid for it."""
        now = datetime.now(timezone.utc)
        body = {
            "resource": resource,
            "paid": True,
            "timestamp": now.isoformat(),
            "price": price,
            "settlementId": settlement_id,
            "iat": now,
            "exp": now + timedelta(seconds=self.ttl_seconds),
        }
        return jwt.encode(body, self._secret, algorithm=JWT_ALGORITHM)

    def try_verify(self, token: Optional[str]) -> Optional[CredentialClaims]:
        """Return the claims of a valid credential, or None. Never raises."""
        if not token or not isinstance(token, str):
            return None
        try:
            payload = jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])
            return CredentialClaims(**payload)
        except jwt.ExpiredSignatureError:
            logger.debug("Credential expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug(f"Invalid credential: {e}")
            return None
        except (PydanticValidationError, TypeError) as e:
            logger.warning(f"Credential has unexpected claims: {e}")
            return None

    @staticmethod
    def require_valid(claims: Optional[CredentialClaims]) -> CredentialClaims:
        """
        Gate for credential-only routes.

        Raises:
            UnauthenticatedError: if no valid credential was presented
        """
        if claims is None:
            raise UnauthenticatedError()
        return claims


def extract_token(connection: HTTPConnection, cookie_name: str) -> Optional[str]:
    """Read the credential from the cookie, falling back to an Authorization bearer header."""
    token = connection.cookies.get(cookie_name)
    if token:
        return token

    authorization = connection.headers.get("authorization")
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == BEARER_PREFIX and value.strip():
            return value.strip()
    return None
