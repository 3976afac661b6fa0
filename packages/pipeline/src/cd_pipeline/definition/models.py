from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator

from cd_pipeline.credentials import Capability

IdPattern = r"^[a-z0-9][a-z0-9_\-]*[a-z0-9]$"

StageName = Annotated[
    str,
    StringConstraints(min_length=2, max_length=60, pattern=IdPattern),
]
RepoName = Annotated[
    str,
    StringConstraints(
        min_length=1, max_length=100, pattern=r"^[A-Za-z0-9][A-Za-z0-9._\-]*$"
    ),
]

_ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StageKind(StrEnum):
    test = "test"
    build = "build"
    deploy = "deploy"
    command = "command"


class RecipientKind(StrEnum):
    sms = "sms"
    email = "email"
    webhook = "webhook"
    log = "log"


class StageSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: StageName
    kind: StageKind = StageKind.command
    commands: list[str] = Field(..., min_length=1)
    privileged: bool = False

    outputs: list[str] = Field(default_factory=list)
    reports: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)

    manifest: Optional[str] = None
    notify: bool = True
    capabilities: Optional[list[Capability]] = None

    @model_validator(mode="after")
    def _validate(self) -> "StageSpec":
        if any(not c.strip() for c in self.commands):
            raise ValueError(f"Stage {self.name} has an empty command")
        if self.manifest is not None and self.kind != StageKind.deploy:
            raise ValueError(f"Stage {self.name}: manifest is only valid on deploy stages")
        bad = [k for k in self.env if not _ENV_NAME.match(k)]
        if bad:
            raise ValueError(f"Stage {self.name}: invalid env var names {bad}")
        return self


class SourceSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    repo_name: RepoName
    location: str = Field(..., min_length=1)
    branch: str = Field(default="main", min_length=1)


class ImageTarget(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    registry_host: str = Field(..., min_length=1)
    repository: str = Field(..., min_length=1)


class ClusterTarget(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)


class RecipientSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: RecipientKind
    address: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def _validate_address(self) -> "RecipientSpec":
        a = self.address
        if self.kind == RecipientKind.sms and not re.match(r"^\+[0-9]{6,15}$", a):
            raise ValueError(f"SMS recipient must be an E.164 number, got {a!r}")
        if self.kind == RecipientKind.email and "@" not in a:
            raise ValueError(f"Email recipient looks invalid: {a!r}")
        if self.kind == RecipientKind.webhook and not a.startswith(
            ("http://", "https://")
        ):
            raise ValueError(f"Webhook recipient must be an http(s) URL: {a!r}")
        return self


@dataclass(frozen=True, slots=True)
class DeliveryTarget:
    """Flattened per-run view of where things are built and deployed."""

    source_repo: str
    registry_host: str
    repository: str
    cluster_name: str
    region: str
    base_image_version: str = "latest"

    def to_env(self) -> dict[str, str]:
        return {
            "SOURCE_REPO": self.source_repo,
            "REGISTRY_HOST": self.registry_host,
            "IMAGE_REPOSITORY": self.repository,
            "IMAGE_REPO_URI": f"{self.registry_host.rstrip('/')}/{self.repository}",
            "CLUSTER_NAME": self.cluster_name,
            "AWS_REGION": self.region,
            "BASE_IMAGE_VERSION": self.base_image_version,
        }


class PipelineDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    spec_version: int = Field(default=1, ge=1)
    name: StageName
    source: SourceSpec
    image: ImageTarget
    cluster: ClusterTarget
    base_image_version: str = "latest"
    recipients: list[RecipientSpec] = Field(default_factory=list)
    stages: list[StageSpec] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _validate(self) -> "PipelineDefinition":
        names = [s.name for s in self.stages]
        if len(names) != len(set(names)):
            dupes = sorted({x for x in names if names.count(x) > 1})
            raise ValueError(f"Duplicate stage names: {dupes}")
        if "source" in names:
            raise ValueError("'source' is reserved for the checkout step")
        return self

    def target(self) -> DeliveryTarget:
        return DeliveryTarget(
            source_repo=self.source.repo_name,
            registry_host=self.image.registry_host,
            repository=self.image.repository,
            cluster_name=self.cluster.name,
            region=self.cluster.region,
            base_image_version=self.base_image_version,
        )
