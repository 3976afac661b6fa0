from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from cd_pipeline.artifacts import Artifact
from cd_pipeline.core import StageError

from .types import SUCCEEDED, Outcome


def format_duration_ms(ms: int) -> str:
    """Return a short human-readable duration string."""
    if ms < 1000:
        return f"{ms} ms"
    return f"{ms / 1000:.2f} s"


@dataclass(slots=True)
class StageResult:
    stage: str
    ordinal: int
    kind: str
    status: Outcome
    started_at_utc: str
    finished_at_utc: str
    duration_ms: int

    commands_run: int = 0
    input_artifact: Optional[str] = None
    output_artifact: Optional[Artifact] = None
    outputs: dict[str, Any] = field(default_factory=dict)
    reports: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: Optional[StageError] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED
