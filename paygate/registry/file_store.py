# paygate/registry/file_store.py
"""Registry backend storing every resource in a single JSON map, rewritten wholesale."""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from paygate.registry.base import ResourceRegistry

logger = logging.getLogger(__name__)


class FileResourceRegistry(ResourceRegistry):
    """
    JSON-file registry.

    The file holds {id: record}. Each read loads the file; each write loads,
    modifies and replaces it, so edits made by other processes are visible on
    the next call.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            logger.error(f"Registry file {self.path} is not valid JSON: {e}")
            raise
        if not isinstance(data, dict):
            raise ValueError(f"Registry file {self.path} must contain a JSON object")
        return data

    def _dump(self, data: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".registry-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        return self._load().get(key)

    def _read_all(self) -> Dict[str, Dict[str, Any]]:
        return self._load()

    def _write(self, key: str, record: Dict[str, Any]) -> None:
        data = self._load()
        data[key] = record
        self._dump(data)

    def _remove(self, key: str) -> None:
        data = self._load()
        data.pop(key, None)
        self._dump(data)
