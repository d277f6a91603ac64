# paygate/registry/base.py
"""
Resource registry interface.

The registry owns ProtectedResource records keyed by their canonical origin.
Validation and merge rules live here; subclasses only provide storage
primitives. Every read goes to storage, there is no in-process cache, and
concurrent writers are not serialized: the last completed write wins.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from paygate.core.exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}

REQUIRED_FIELDS = ("payoutAddress", "price", "network", "description")
UPDATABLE_FIELDS = REQUIRED_FIELDS + ("enabled",)


class ProtectedResource(BaseModel):
    """Configuration of one protected origin."""
    id: str = Field(..., description="Canonical origin, scheme://host[:port]")
    payoutAddress: str = Field(..., description="Address that receives payments for this resource")
    price: str = Field(..., description="Price in the asset's minor units")
    network: str = Field(..., description="Network identifier, e.g. polygon-amoy")
    description: str
    enabled: bool = True
    createdAt: str
    updatedAt: str


def canonical_origin(value: Optional[str]) -> Optional[str]:
    """
    Reduce a URL-like string to its origin.

    Scheme and host are lowercased and default ports dropped, so equivalent
    spellings of the same site map to one key.

    Returns:
        "scheme://host[:port]", or None when the value has no scheme or host
    """
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value == "null":
        return None

    try:
        parts = urlsplit(value)
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    host = parts.hostname
    if not scheme or not host:
        return None
    if ":" in host:
        host = f"[{host}]"

    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def parse_resource_id(resource_id: Any) -> str:
    """
    Validate a registration id and return its canonical origin.

    Raises:
        ValidationError: if the id is not an absolute URL origin
    """
    if not isinstance(resource_id, str) or not resource_id.strip():
        raise ValidationError("Missing required field: id")

    origin = canonical_origin(resource_id)
    if origin is None:
        raise ValidationError("Invalid website URL format")

    parts = urlsplit(resource_id.strip())
    if parts.path not in ("", "/") or parts.query or parts.fragment:
        raise ValidationError("Resource id must be an origin (scheme://host[:port]) without path or query")

    return origin


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clean_field(name: str, value: Any) -> Any:
    if name == "enabled":
        if not isinstance(value, bool):
            raise ValidationError("Field 'enabled' must be a boolean")
        return value

    # Prices are often sent as JSON numbers
    if name == "price" and isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)

    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Field '{name}' must be a non-empty string")
    return value.strip()


class ResourceRegistry(ABC):
    """CRUD over ProtectedResource records, backed by a pluggable store."""

    # --- storage primitives ---

    @abstractmethod
    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored record for key, or None."""

    @abstractmethod
    def _read_all(self) -> Dict[str, Dict[str, Any]]:
        """Return every stored record keyed by id."""

    @abstractmethod
    def _write(self, key: str, record: Dict[str, Any]) -> None:
        """Insert or replace the record for key."""

    @abstractmethod
    def _remove(self, key: str) -> None:
        """Remove the record for key."""

    # --- registry operations ---

    @staticmethod
    def _key(resource_id: str) -> str:
        return canonical_origin(resource_id) or resource_id

    def get(self, resource_id: str) -> ProtectedResource:
        """
        Fetch a resource by id.

        Raises:
            NotFoundError: if no resource is registered under the id
        """
        key = self._key(resource_id)
        record = self._read(key)
        if record is None:
            raise NotFoundError()
        return ProtectedResource(**{**record, "id": key})

    def find(self, resource_id: str) -> Optional[ProtectedResource]:
        """Like get(), but returns None instead of raising."""
        try:
            return self.get(resource_id)
        except NotFoundError:
            return None

    def list(self) -> List[ProtectedResource]:
        records = self._read_all()
        return [ProtectedResource(**{**record, "id": key}) for key, record in sorted(records.items())]

    def create(self, resource_id: Any, fields: Dict[str, Any]) -> ProtectedResource:
        """
        Register a new protected resource.

        Raises:
            ValidationError: malformed id or missing required field
            ConflictError: id already registered
        """
        missing = [name for name in REQUIRED_FIELDS if fields.get(name) in (None, "")]
        if not isinstance(resource_id, str) or not resource_id.strip():
            missing.insert(0, "id")
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        key = parse_resource_id(resource_id)
        values = {name: _clean_field(name, fields[name]) for name in REQUIRED_FIELDS}

        if self._read(key) is not None:
            raise ConflictError("Website already exists")

        now = _now()
        resource = ProtectedResource(id=key, enabled=True, createdAt=now, updatedAt=now, **values)
        self._write(key, resource.model_dump())
        logger.info(f"Registered protected resource {key} on {resource.network}")
        return resource

    def update(self, resource_id: str, fields: Dict[str, Any]) -> ProtectedResource:
        """
        Merge the provided fields into an existing resource.

        Only fields present (and not None) change; updatedAt is always refreshed.

        Raises:
            NotFoundError: id not registered
            ValidationError: a provided field has the wrong type
        """
        current = self.get(resource_id)
        changes = {
            name: _clean_field(name, fields[name])
            for name in UPDATABLE_FIELDS
            if fields.get(name) is not None
        }

        updated = current.model_copy(update={**changes, "updatedAt": _now()})
        self._write(updated.id, updated.model_dump())
        logger.info(f"Updated protected resource {updated.id}: {sorted(changes)}")
        return updated

    def delete(self, resource_id: str) -> None:
        """
        Remove a resource.

        Raises:
            NotFoundError: id not registered
        """
        key = self._key(resource_id)
        if self._read(key) is None:
            raise NotFoundError()
        self._remove(key)
        logger.info(f"Deleted protected resource {key}")
