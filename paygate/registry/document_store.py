# paygate/registry/document_store.py
"""Registry backend storing one JSON document per resource in a directory."""
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from paygate.registry.base import ResourceRegistry

logger = logging.getLogger(__name__)


class DocumentResourceRegistry(ResourceRegistry):
    """
    Per-key document registry.

    Document names are derived from a hash of the id, and the id itself is
    kept inside the document so list() can rebuild the keyed view.
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def _document_path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._document_path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _read_all(self) -> Dict[str, Dict[str, Any]]:
        if not self.directory.exists():
            return {}
        records = {}
        for path in self.directory.glob("*.json"):
            try:
                record = json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping unreadable registry document {path.name}: {e}")
                continue
            if isinstance(record, dict) and "id" in record:
                records[record["id"]] = record
        return records

    def _write(self, key: str, record: Dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._document_path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps({**record, "id": key}, indent=2), encoding="utf-8")
        os.replace(tmp_path, path)

    def _remove(self, key: str) -> None:
        path = self._document_path(key)
        if path.exists():
            path.unlink()
