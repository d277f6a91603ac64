"""
Unit tests for credential issuance and verification.
"""
import jwt
import pytest
from starlette.requests import Request

from paygate.auth.credentials import (
    JWT_ALGORITHM,
    CredentialClaims,
    CredentialIssuer,
    extract_token,
)
from paygate.core.exceptions import UnauthenticatedError

SECRET = "unit-test-secret-0123456789abcdef"


def make_request(headers: dict) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


class TestIssue:
    """Test credential minting."""

    def test_issue_then_verify(self):
        issuer = CredentialIssuer(SECRET, ttl_seconds=3600)
        token = issuer.issue("https://example.com", "100", "0xabc")

        claims = issuer.try_verify(token)
        assert claims.resource == "https://example.com"
        assert claims.paid is True
        assert claims.price == "100"
        assert claims.settlementId == "0xabc"
        assert claims.exp - claims.iat == 3600

    def test_second_credential_does_not_revoke_first(self):
        issuer = CredentialIssuer(SECRET)
        first = issuer.issue("https://example.com", "100", "0x1")
        second = issuer.issue("https://example.com", "100", "0x2")

        assert issuer.try_verify(first).settlementId == "0x1"
        assert issuer.try_verify(second).settlementId == "0x2"


class TestTryVerify:
    """try_verify never raises."""

    def test_expired(self):
        issuer = CredentialIssuer(SECRET, ttl_seconds=-10)
        assert issuer.try_verify(issuer.issue("https://example.com", "100", None)) is None

    def test_wrong_secret(self):
        token = CredentialIssuer("another-secret-0123456789abcdef").issue("https://example.com", "100", None)
        assert CredentialIssuer(SECRET).try_verify(token) is None

    def test_garbage(self):
        issuer = CredentialIssuer(SECRET)
        assert issuer.try_verify("not.a.jwt") is None
        assert issuer.try_verify("") is None
        assert issuer.try_verify(None) is None

    def test_missing_claims(self):
        """A correctly signed token without credential claims is rejected."""
        token = jwt.encode({"sub": "someone"}, SECRET, algorithm=JWT_ALGORITHM)
        assert CredentialIssuer(SECRET).try_verify(token) is None


class TestRequireValid:
    """Test the credential-only gate."""

    def test_none_raises(self):
        with pytest.raises(UnauthenticatedError) as exc:
            CredentialIssuer.require_valid(None)
        assert exc.value.status_code == 401
        assert exc.value.message == "Valid access token required"

    def test_claims_pass_through(self):
        claims = CredentialClaims(resource="https://example.com", paid=True, timestamp="t", price="1")
        assert CredentialIssuer.require_valid(claims) is claims


class TestExtractToken:
    """Test credential transport."""

    def test_cookie(self):
        request = make_request({"Cookie": "access_token=abc"})
        assert extract_token(request, "access_token") == "abc"

    def test_bearer_header(self):
        request = make_request({"Authorization": "Bearer xyz"})
        assert extract_token(request, "access_token") == "xyz"

    def test_cookie_wins_over_header(self):
        request = make_request({"Cookie": "access_token=abc", "Authorization": "Bearer xyz"})
        assert extract_token(request, "access_token") == "abc"

    def test_other_scheme_ignored(self):
        request = make_request({"Authorization": "Basic dXNlcjpwYXNz"})
        assert extract_token(request, "access_token") is None

    def test_nothing(self):
        assert extract_token(make_request({}), "access_token") is None
