# paygate/auth/__init__.py
from paygate.auth.credentials import CredentialClaims, CredentialIssuer, extract_token

__all__ = ["CredentialClaims", "CredentialIssuer", "extract_token"]
