from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from cd_pipeline.core import ILogger
from cd_pipeline.credentials import Capability, CredentialIssuer, StageCredentials
from cd_pipeline.definition import StageSpec
from cd_pipeline.pipeline.context import RunContext
from cd_pipeline.tags import ImageTagChannel


@dataclass(slots=True)
class StageRun:
    """
    Everything a single stage execution may touch. Created fresh per
    execution and discarded afterwards.
    """

    ctx: RunContext
    spec: StageSpec
    ordinal: int
    workspace: Path
    env: dict[str, str]
    credentials: StageCredentials
    issuer: CredentialIssuer
    channel: ImageTagChannel
    log: ILogger

    outputs: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    # behaviour-private state between prepare() and finalize()
    scratch: dict[str, Any] = field(default_factory=dict)

    def require(self, cap: Capability) -> None:
        self.issuer.check(self.credentials, cap)

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        self.log.warning(message)


class StageBehavior(Protocol):
    """Hooks around a stage's command sequence."""

    def prepare(self, run: StageRun) -> None: ...

    def finalize(self, run: StageRun) -> None: ...


class CommandBehavior:
    """Plain command stage (test, command): nothing before or after."""

    def prepare(self, run: StageRun) -> None:
        return

    def finalize(self, run: StageRun) -> None:
        return
