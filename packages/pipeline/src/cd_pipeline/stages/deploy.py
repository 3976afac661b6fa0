from __future__ import annotations

from cd_pipeline.core import sha256_file
from cd_pipeline.credentials import Capability
from cd_pipeline.pipeline.events import EventType
from cd_pipeline_contracts import image_reference

from .base import StageRun
from .manifest import render_manifest


class DeployBehavior:
    """
    Resolve the image tag from the tag registry (never from the artifact) and
    render the deployment manifest with it. A missing or unreadable tag fails
    the stage.
    """

    def prepare(self, run: StageRun) -> None:
        run.require(Capability.CLUSTER_DEPLOY)
        t = run.ctx.target

        tag = run.channel.resolve(t.source_repo, run.ctx.run_id)
        published = run.ctx.meta.get("published_tag")
        if published is not None and published != tag:
            # latest-key binding: another run overwrote the tag after our build
            run.warn(
                f"Resolved tag {tag} differs from tag {published} built in this run"
            )

        image_uri = image_reference(t.registry_host, t.repository, tag)
        run.env["IMAGE_TAG"] = tag
        run.env["IMAGE_URI"] = image_uri
        run.outputs["image_tag"] = tag
        run.outputs["image_uri"] = image_uri
        run.ctx.emit(
            EventType.TAGS_RESOLVED,
            stage=run.spec.name,
            key=run.channel.read_key(t.source_repo, run.ctx.run_id),
            tag=tag,
        )

        if run.spec.manifest:
            out = render_manifest(run.workspace, run.spec.manifest, run.env)
            run.outputs["manifest"] = out.name
            run.outputs["manifest_sha256"] = sha256_file(out).sha256
            run.log.info("Manifest rendered", manifest=run.spec.manifest, image_uri=image_uri)

    def finalize(self, run: StageRun) -> None:
        return
