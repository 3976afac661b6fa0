from __future__ import annotations

import threading

from cd_pipeline.core import TagNotFoundError, TagRegistryError


class MemoryTagRegistry:
    """In-process registry, mostly for tests and dry runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def put(self, key: str, value: str, *, overwrite: bool = True) -> None:
        with self._lock:
            if not overwrite and key in self._data:
                raise TagRegistryError(f"Key exists and overwrite is disabled: {key}")
            self._data[key] = value

    def get(self, key: str) -> str:
        with self._lock:
            try:
                return self._data[key]
            except KeyError:
                raise TagNotFoundError(key) from None

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._data)
