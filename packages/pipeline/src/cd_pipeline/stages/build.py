from __future__ import annotations

import json
from datetime import datetime
from typing import Callable

from cd_pipeline.core import atomic_write_text, to_iso, utc_now
from cd_pipeline.credentials import Capability
from cd_pipeline.pipeline.events import EventType
from cd_pipeline.tags import new_image_tag
from cd_pipeline_contracts import ImageHandoff, validate_image_detail_dict

from .base import StageRun

IMAGE_DETAIL_FILE = "imageDetail.json"


class BuildBehavior:
    """
    Before commands: mint IMAGE_TAG and export IMAGE_URI.
    After commands: write imageDetail.json and publish the tag.

    A failure in the commands leaves whatever they already pushed in place.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    def prepare(self, run: StageRun) -> None:
        run.require(Capability.IMAGE_PUSH)
        t = run.ctx.target
        now = self._clock()
        handoff = ImageHandoff(
            source_repo=t.source_repo,
            registry_host=t.registry_host,
            repository=t.repository,
            tag=new_image_tag(now),
            built_at_utc=to_iso(now),
            run_id=run.ctx.run_id,
        )
        run.scratch["handoff"] = handoff
        run.outputs["image_tag"] = handoff.tag
        run.outputs["image_uri"] = handoff.image_uri
        run.env["IMAGE_TAG"] = handoff.tag
        run.env["IMAGE_URI"] = handoff.image_uri
        run.log.info("Image tag minted", tag=handoff.tag, image_uri=handoff.image_uri)

    def finalize(self, run: StageRun) -> None:
        handoff: ImageHandoff = run.scratch["handoff"]
        detail = handoff.image_detail()
        validate_image_detail_dict(detail)
        atomic_write_text(
            run.workspace / IMAGE_DETAIL_FILE, json.dumps(detail, indent=2) + "\n"
        )

        keys = run.channel.publish(handoff)
        run.ctx.meta["published_tag"] = handoff.tag
        run.outputs["tag_keys"] = keys
        run.ctx.emit(
            EventType.TAGS_PUBLISHED,
            stage=run.spec.name,
            keys=keys,
            tag=handoff.tag,
            image_uri=handoff.image_uri,
        )
