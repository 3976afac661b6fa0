from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

import structlog
from cd_pipeline.core import utc_now
from cd_pipeline_contracts import TAG_FORMAT, ImageHandoff, latest_tag_key, run_tag_key

from .base import TagRegistry, normalize_tag_value

TagBinding = Literal["latest", "run"]

log = structlog.get_logger(__name__)


def new_image_tag(now: datetime | None = None) -> str:
    """
    Second-granularity UTC timestamp, YYYYMMDDHHMMSS.

    UTC keeps tags strictly increasing for builds at least a second apart
    (no DST fold).
    """
    dt = now or utc_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(TAG_FORMAT)


class ImageTagChannel:
    """
    Explicit Build -> Deploy handoff over a TagRegistry.

    binding="latest": writer and reader use '{repo}-image-latest-tag'.
    binding="run":    the latest key is still written, but the reader uses the
                      run-scoped key so concurrent runs cannot clobber each other.
    """

    def __init__(self, registry: TagRegistry, *, binding: TagBinding = "latest") -> None:
        if binding not in ("latest", "run"):
            raise ValueError(f"Unknown tag binding: {binding!r}")
        self.registry = registry
        self.binding: TagBinding = binding

    def publish(self, handoff: ImageHandoff) -> list[str]:
        keys = [latest_tag_key(handoff.source_repo)]
        if self.binding == "run":
            keys.append(run_tag_key(handoff.source_repo, handoff.run_id))

        for key in keys:
            self.registry.put(key, handoff.tag, overwrite=True)

        log.info(
            "tags.publish",
            keys=keys,
            tag=handoff.tag,
            image_uri=handoff.image_uri,
        )
        return keys

    def read_key(self, source_repo: str, run_id: str) -> str:
        if self.binding == "run":
            return run_tag_key(source_repo, run_id)
        return latest_tag_key(source_repo)

    def resolve(self, source_repo: str, run_id: str) -> str:
        key = self.read_key(source_repo, run_id)
        tag = normalize_tag_value(self.registry.get(key))
        log.info("tags.resolve", key=key, tag=tag)
        return tag
