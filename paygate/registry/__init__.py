# paygate/registry/__init__.py
from paygate.core.config import Settings
from paygate.core.exceptions import ValidationError
from paygate.registry.base import ProtectedResource, ResourceRegistry, canonical_origin
from paygate.registry.document_store import DocumentResourceRegistry
from paygate.registry.file_store import FileResourceRegistry


def create_registry(settings: Settings) -> ResourceRegistry:
    """Build the registry backend selected by REGISTRY_BACKEND."""
    backend = settings.REGISTRY_BACKEND.lower()
    if backend == "file":
        return FileResourceRegistry(settings.REGISTRY_FILE_PATH)
    if backend == "document":
        return DocumentResourceRegistry(settings.REGISTRY_DOCUMENT_DIR)
    raise ValidationError(f"Unknown REGISTRY_BACKEND: {settings.REGISTRY_BACKEND}")


__all__ = [
    "ProtectedResource",
    "ResourceRegistry",
    "FileResourceRegistry",
    "DocumentResourceRegistry",
    "canonical_origin",
    "create_registry",
]
