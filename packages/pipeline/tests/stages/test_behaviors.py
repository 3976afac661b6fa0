from __future__ import annotations

import json
from pathlib import Path

from cd_pipeline.definition import StageKind, StageSpec
from cd_pipeline.stages import IMAGE_DETAIL_FILE, RENDERED_MANIFEST
from cd_pipeline_contracts import validate_image_detail_dict

IMAGE_REPO = "123456789012.dkr.ecr.us-east-1.amazonaws.com/myrepo"


def _source(make_ctx, source_dir: Path):
    ctx = make_ctx()
    art = ctx.artifacts.snapshot_dir(source_dir, name="source", produced_by="source")
    return ctx, art


def test_build_exports_tag_writes_image_detail_and_publishes(
    make_ctx, source_dir: Path, executor, registry
) -> None:
    ctx, art = _source(make_ctx, source_dir)
    stage = StageSpec(
        name="docker-build",
        kind=StageKind.build,
        commands=['test "$IMAGE_URI" = "$IMAGE_REPO_URI:$IMAGE_TAG"', 'echo "$IMAGE_URI" > pushed.txt'],
        outputs=[IMAGE_DETAIL_FILE, "pushed.txt"],
    )
    out = executor.execute(stage, art, ctx=ctx, ordinal=2)

    assert out.status == "succeeded", out.result.error
    assert out.result.outputs["image_tag"] == "20240101120000"
    assert out.result.outputs["image_uri"] == f"{IMAGE_REPO}:20240101120000"
    assert registry.snapshot() == {"myrepo-image-latest-tag": "20240101120000"}
    assert ctx.meta["published_tag"] == "20240101120000"

    assert out.output is not None
    detail = json.loads((out.output.root / IMAGE_DETAIL_FILE).read_text())
    validate_image_detail_dict(detail)
    assert detail["ImageURI"] == f"{IMAGE_REPO}:20240101120000"
    assert (out.output.root / "pushed.txt").read_text().strip() == detail["ImageURI"]


def test_build_does_not_publish_when_commands_fail(
    make_ctx, source_dir: Path, executor, registry
) -> None:
    ctx, art = _source(make_ctx, source_dir)
    stage = StageSpec(name="docker-build", kind=StageKind.build, commands=["exit 1"])
    out = executor.execute(stage, art, ctx=ctx, ordinal=1)
    assert out.status == "failed"
    assert registry.snapshot() == {}


def test_deploy_reads_tag_from_registry_not_artifact(
    make_ctx, source_dir: Path, executor, registry
) -> None:
    registry.put("myrepo-image-latest-tag", '"20230505050505"')
    (source_dir / IMAGE_DETAIL_FILE).write_text(json.dumps({"ImageURI": f"{IMAGE_REPO}:20991231000000"}))
    ctx, art = _source(make_ctx, source_dir)

    stage = StageSpec(
        name="eks-deploy",
        kind=StageKind.deploy,
        manifest="deployment.yml",
        commands=[f'grep -q "image: {IMAGE_REPO}:20230505050505" {RENDERED_MANIFEST}'],
    )
    out = executor.execute(stage, art, ctx=ctx, ordinal=3)
    assert out.status == "succeeded", out.result.error
    assert out.result.outputs["image_tag"] == "20230505050505"
    assert out.result.outputs["manifest"] == RENDERED_MANIFEST
    assert out.output is None


def test_deploy_warns_on_stale_latest_tag(make_ctx, source_dir: Path, executor, registry) -> None:
    registry.put("myrepo-image-latest-tag", "20230505050505")
    ctx, art = _source(make_ctx, source_dir)
    ctx.meta["published_tag"] = "20240101120000"

    stage = StageSpec(name="eks-deploy", kind=StageKind.deploy, commands=["true"])
    out = executor.execute(stage, art, ctx=ctx, ordinal=3)
    assert out.status == "succeeded"
    assert out.result.outputs["image_tag"] == "20230505050505"
    assert len(out.result.warnings) == 1
    assert "20240101120000" in out.result.warnings[0]


def test_deploy_render_is_idempotent_for_same_tag(
    make_ctx, source_dir: Path, executor, registry
) -> None:
    registry.put("myrepo-image-latest-tag", "20240101120000")
    stage = StageSpec(name="eks-deploy", kind=StageKind.deploy, manifest="deployment.yml", commands=["true"])

    shas = []
    for run_id in ("run-a", "run-b"):
        ctx = make_ctx(run_id)
        art = ctx.artifacts.snapshot_dir(source_dir, name="source", produced_by="source")
        out = executor.execute(stage, art, ctx=ctx, ordinal=3)
        assert out.status == "succeeded", out.result.error
        shas.append(out.result.outputs["manifest_sha256"])
    assert shas[0] == shas[1]
