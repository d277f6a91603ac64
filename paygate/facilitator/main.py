# paygate/facilitator/main.py
"""
Facilitator HTTP surface.

GET  /verify, /settle  -> describe the expected POST body
POST /verify           -> check a payment without moving funds
POST /settle           -> execute a payment
GET  /supported        -> payment kinds backed by loaded key material
"""
from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse

from paygate.core.config import Settings, settings as default_settings
from paygate.core.exceptions import ValidationError
from paygate.facilitator.service import FacilitatorService
from paygate.x402.models import PaymentRequirements

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class FacilitatorRequest(BaseModel):
    paymentPayload: Dict[str, Any]
    paymentRequirements: PaymentRequirements


def _describe(endpoint: str, action: str) -> Dict[str, Any]:
    return {
        "endpoint": endpoint,
        "description": f"POST to {action} x402 payments",
        "body": {
            "paymentPayload": "PaymentPayload",
            "paymentRequirements": "PaymentRequirements",
        },
    }


def _invoke(operation, body: FacilitatorRequest) -> Dict[str, Any]:
    try:
        return operation(body.paymentPayload, body.paymentRequirements)
    except ValidationError as e:
        raise ValidationError(f"Invalid request: {e.message}")
    except ValueError as e:
        # malformed addresses or transactions inside the payload
        raise ValidationError(f"Invalid request: {e}")


async def _parse(request: Request) -> FacilitatorRequest:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Invalid request: body must be JSON")
    try:
        return FacilitatorRequest.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid request: {e.error_count()} invalid field(s)")


def create_app(settings: Optional[Settings] = None, service: Optional[FacilitatorService] = None) -> FastAPI:
    settings = settings or default_settings
    service = service or FacilitatorService.from_settings(settings)
    if not service.signers:
        logger.warning("No EVM_PRIVATE_KEY or SVM_PRIVATE_KEY configured; every settlement will be rejected")

    app = FastAPI(title=f"{settings.PROJECT_NAME} Facilitator")
    app.state.service = service

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.get("/verify")
    def describe_verify():
        return _describe("/verify", "verify")

    @app.post("/verify")
    async def verify(request: Request):
        return await run_in_threadpool(_invoke, service.verify, await _parse(request))

    @app.get("/settle")
    def describe_settle():
        return _describe("/settle", "settle")

    @app.post("/settle")
    async def settle(request: Request):
        return await run_in_threadpool(_invoke, service.settle, await _parse(request))

    @app.get("/supported")
    def supported():
        return service.supported()

    @app.get("/health")
    def health():
        return {"status": "healthy", "families": sorted(family.value for family in service.signers)}

    return app


app = create_app()
