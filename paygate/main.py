# paygate/main.py
from datetime import datetime, timezone
from typing import Optional
import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from paygate.api.deps import current_credential
from paygate.api.endpoints import auth, premium, resources
from paygate.auth.credentials import CredentialClaims, CredentialIssuer
from paygate.core.config import Settings, settings as default_settings
from paygate.registry import ResourceRegistry, create_registry
from paygate.x402.gateway import AuthorizationGateway
from paygate.x402.middleware import AccessGatewayMiddleware
from paygate.x402.settlement import SettlementClient

# Configure basic logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[ResourceRegistry] = None,
    settlement_client: Optional[SettlementClient] = None,
) -> FastAPI:
    """
    Build the gateway application.

    Collaborators default to the ones described by settings; tests pass their own.
    """
    settings = settings or default_settings
    registry = registry or create_registry(settings)
    settlement_client = settlement_client or SettlementClient.from_settings(settings)
    issuer = CredentialIssuer(settings.JWT_SECRET, ttl_seconds=settings.CREDENTIAL_TTL_SECONDS)
    gateway = AuthorizationGateway(registry, issuer, settlement_client, settings)

    if settings.uses_insecure_jwt_secret:
        logger.warning("JWT_SECRET is not set; credentials are signed with the insecure default secret")

    app = FastAPI(title=settings.PROJECT_NAME)
    app.state.settings = settings
    app.state.registry = registry
    app.state.issuer = issuer
    app.state.gateway = gateway

    # Starlette runs the last-added middleware first, so CORS wraps the gateway
    app.add_middleware(AccessGatewayMiddleware, gateway=gateway, issuer=issuer, settings=settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(resources.router, prefix="/resources", tags=["resources"])
    app.include_router(premium.router, prefix="/premium", tags=["premium"])
    app.include_router(auth.router, tags=["auth"])

    @app.get("/health", summary="Health Check", tags=["default"])
    def health(user: Optional[CredentialClaims] = Depends(current_credential)):
        """ Basic health check endpoint. """
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "authenticated": user is not None,
        }

    return app


app = create_app()
