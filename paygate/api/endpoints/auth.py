# paygate/api/endpoints/auth.py
from fastapi import APIRouter, Depends, Response
from typing import Optional
import logging

from paygate.api.deps import current_credential, get_app_settings
from paygate.api.models.premium import AuthStatusResponse, LogoutResponse
from paygate.auth.credentials import CredentialClaims
from paygate.core.config import Settings

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/auth/status", response_model=AuthStatusResponse)
async def auth_status(user: Optional[CredentialClaims] = Depends(current_credential)) -> AuthStatusResponse:
    return AuthStatusResponse(authenticated=user is not None, user=user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response, settings: Settings = Depends(get_app_settings)) -> LogoutResponse:
    """
    Tell the client to drop its credential.

    There is no server-side revocation: a copied token stays valid until it expires.
    """
    response.delete_cookie(settings.CREDENTIAL_COOKIE_NAME)
    return LogoutResponse(message="Logged out successfully")
