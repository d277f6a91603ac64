# paygate/api/endpoints/premium.py
"""
Premium content.

GET/POST /premium pass through the access gateway (credential or payment);
GET /premium/credential-only accepts a valid credential and nothing else.
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request

from paygate.api.deps import current_credential, require_credential
from paygate.api.models.premium import PremiumData, PremiumResponse
from paygate.auth.credentials import CredentialClaims

router = APIRouter()

PREMIUM_METRICS = [87.3, 92.1, 78.5, 95.2]


def _premium_data() -> PremiumData:
    return PremiumData(
        insights="Advanced analytics data",
        metrics=PREMIUM_METRICS,
        generated_at=datetime.now(timezone.utc),
    )


@router.get("", response_model=PremiumResponse)
async def get_premium(
    request: Request,
    user: Optional[CredentialClaims] = Depends(current_credential)
) -> PremiumResponse:
    return PremiumResponse(
        message="Premium content accessed!",
        access_method=request.state.access_method,
        premium_data=_premium_data(),
        user=user,
    )


@router.post("", response_model=PremiumResponse)
async def post_premium(
    request: Request,
    user: Optional[CredentialClaims] = Depends(current_credential)
) -> PremiumResponse:
    return PremiumResponse(
        message="Premium content accessed via payment!",
        access_method=request.state.access_method,
        premium_data=_premium_data(),
        user=user,
    )


@router.get("/credential-only", response_model=PremiumResponse)
async def get_premium_credential_only(
    user: CredentialClaims = Depends(require_credential)
) -> PremiumResponse:
    return PremiumResponse(
        message="Premium content accessed via credential only!",
        access_method="credential",
        premium_data=_premium_data(),
        user=user,
    )
