from __future__ import annotations

from pathlib import Path

from cd_pipeline.core import Settings

from .base import TagRegistry, normalize_tag_value
from .channel import ImageTagChannel, TagBinding, new_image_tag
from .file import FileTagRegistry
from .http import HttpTagRegistry
from .memory import MemoryTagRegistry


def registry_from_settings(s: Settings) -> TagRegistry:
    if s.tag_backend == "memory":
        return MemoryTagRegistry()
    if s.tag_backend == "http":
        if not s.tag_store_url:
            raise ValueError("tag_backend=http requires CD_PIPELINE_TAG_STORE_URL")
        return HttpTagRegistry.from_url(s.tag_store_url, token=s.tag_store_token)
    return FileTagRegistry(Path(s.tag_store_path))


__all__ = [
    "TagRegistry",
    "normalize_tag_value",
    "ImageTagChannel",
    "TagBinding",
    "new_image_tag",
    "FileTagRegistry",
    "HttpTagRegistry",
    "MemoryTagRegistry",
    "registry_from_settings",
]
