# paygate/core/config.py
from pydantic_settings import BaseSettings
from typing import Dict, List, Optional
from functools import lru_cache
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

INSECURE_DEFAULT_JWT_SECRET = "your-secret-jwt-key-change-in-production"


def parse_csv(value: Optional[str]) -> List[str]:
    """Split a comma-separated setting into trimmed, non-empty items."""
    if not value or not value.strip():
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_mapping(value: Optional[str]) -> Dict[str, str]:
    """Parse "key=value,key=value" pairs, skipping malformed entries."""
    result = {}
    for item in parse_csv(value):
        key, sep, mapped = item.partition("=")
        if sep and key.strip() and mapped.strip():
            result[key.strip()] = mapped.strip()
    return result


class Settings(BaseSettings):
    PROJECT_NAME: str = "Paygate Access Gateway"
    ENVIRONMENT: str = "development"

    # Credentials
    JWT_SECRET: str = INSECURE_DEFAULT_JWT_SECRET
    CREDENTIAL_COOKIE_NAME: str = "access_token"
    CREDENTIAL_TTL_SECONDS: int = 24 * 60 * 60
    CREDENTIAL_BIND_TO_RESOURCE: bool = False

    # Resource registry: "file" (one JSON map) or "document" (one JSON document per resource)
    REGISTRY_BACKEND: str = "file"
    REGISTRY_FILE_PATH: str = "data/protected-resources.json"
    REGISTRY_DOCUMENT_DIR: str = "data/protected-resources"

    # Settlement
    FACILITATOR_URL: str = "https://polygon-facilitator.vercel.app"
    FACILITATOR_EVM_URL: Optional[str] = None
    FACILITATOR_SVM_URL: Optional[str] = None
    FACILITATOR_TIMEOUT_SECONDS: float = 30.0

    # 402 payment requirements policy
    PAYMENT_MAX_AMOUNT_REQUIRED: str = "100"  # 0.0001 USDC (6 decimals)
    PAYMENT_MAX_TIMEOUT_SECONDS: int = 3600
    PAYMENT_MIME_TYPE: str = "application/json"

    # Settlement audit trail (JSON lines); disabled when unset
    AUDIT_LOG_PATH: Optional[str] = None

    # Facilitator process key material and networks
    EVM_PRIVATE_KEY: Optional[str] = None
    SVM_PRIVATE_KEY: Optional[str] = None
    FACILITATOR_EVM_NETWORKS: str = "polygon-amoy"
    FACILITATOR_SVM_NETWORKS: str = "solana-devnet"
    EVM_RPC_URLS: Optional[str] = None
    SVM_RPC_URLS: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def uses_insecure_jwt_secret(self) -> bool:
        return self.JWT_SECRET == INSECURE_DEFAULT_JWT_SECRET


@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
