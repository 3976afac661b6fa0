from __future__ import annotations

import json
import threading
from pathlib import Path

import structlog
from cd_pipeline.core import (
    TagNotFoundError,
    TagRegistryError,
    atomic_write_text,
)

log = structlog.get_logger(__name__)


class FileTagRegistry:
    """
    JSON-file backed registry: {"key": "value", ...}.

    The lock and atomic replace only prevent torn files inside one process;
    concurrent pipeline runs still race (last writer wins).
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            obj = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise TagRegistryError(f"Tag store unreadable: {self.path}: {e}") from e
        if not isinstance(obj, dict):
            raise TagRegistryError(f"Tag store is not a JSON object: {self.path}")
        return {str(k): str(v) for k, v in obj.items()}

    def put(self, key: str, value: str, *, overwrite: bool = True) -> None:
        with self._lock:
            data = self._load()
            if not overwrite and key in data:
                raise TagRegistryError(f"Key exists and overwrite is disabled: {key}")
            previous = data.get(key)
            data[key] = value
            try:
                atomic_write_text(self.path, json.dumps(data, sort_keys=True, indent=2) + "\n")
            except OSError as e:
                raise TagRegistryError(f"Tag store not writable: {self.path}: {e}") from e
        log.debug("tags.file.put", key=key, replaced=previous is not None)

    def get(self, key: str) -> str:
        with self._lock:
            data = self._load()
        if key not in data:
            raise TagNotFoundError(key)
        return data[key]
