from __future__ import annotations

from typing import Mapping

from cd_pipeline.definition import StageKind

from .base import CommandBehavior, StageBehavior, StageRun
from .build import IMAGE_DETAIL_FILE, BuildBehavior
from .deploy import DeployBehavior
from .manifest import RENDERED_MANIFEST, render_manifest, render_text


def default_behaviors() -> dict[str, StageBehavior]:
    return {
        StageKind.test.value: CommandBehavior(),
        StageKind.command.value: CommandBehavior(),
        StageKind.build.value: BuildBehavior(),
        StageKind.deploy.value: DeployBehavior(),
    }


def behavior_for(kind: str, behaviors: Mapping[str, StageBehavior]) -> StageBehavior:
    try:
        return behaviors[kind]
    except KeyError:
        raise ValueError(f"No behavior registered for stage kind {kind!r}") from None


__all__ = [
    "StageBehavior",
    "StageRun",
    "CommandBehavior",
    "BuildBehavior",
    "DeployBehavior",
    "IMAGE_DETAIL_FILE",
    "RENDERED_MANIFEST",
    "render_manifest",
    "render_text",
    "default_behaviors",
    "behavior_for",
]
