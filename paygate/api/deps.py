# paygate/api/deps.py
"""Request-scoped dependencies shared by the routers."""
from typing import Optional

from fastapi import HTTPException, Request, status

from paygate.auth.credentials import CredentialClaims, CredentialIssuer
from paygate.core.config import Settings
from paygate.core.exceptions import UnauthenticatedError
from paygate.registry.base import ResourceRegistry


def get_registry(request: Request) -> ResourceRegistry:
    return request.app.state.registry


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def current_credential(request: Request) -> Optional[CredentialClaims]:
    """Claims verified by the middleware, or None. Never fails."""
    return getattr(request.state, "credential", None)


def require_credential(request: Request) -> CredentialClaims:
    """Blocking gate for credential-only routes."""
    try:
        return CredentialIssuer.require_valid(current_credential(request))
    except UnauthenticatedError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)
