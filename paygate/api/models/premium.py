# paygate/api/models/premium.py
from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional

from paygate.auth.credentials import CredentialClaims


class PremiumData(BaseModel):
    insights: str
    metrics: List[float]
    generated_at: datetime


class PremiumResponse(BaseModel):
    message: str
    access_method: Optional[str] = None
    premium_data: PremiumData
    user: Optional[CredentialClaims] = None


class AuthStatusResponse(BaseModel):
    authenticated: bool
    user: Optional[CredentialClaims] = None


class LogoutResponse(BaseModel):
    message: str
