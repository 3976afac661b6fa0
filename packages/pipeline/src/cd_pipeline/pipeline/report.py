from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from cd_pipeline.core import atomic_write_text

from .stage import StageResult
from .types import FAILED, SUCCEEDED, Outcome


@dataclass(slots=True)
class RunReport:
    run_id: str
    started_at_utc: str
    finished_at_utc: str
    status: Outcome
    duration_ms: int
    failed_stage: Optional[str] = None

    source_artifact: Optional[dict[str, Any]] = None
    stages: list[StageResult] = field(default_factory=list)
    notifications: list[dict[str, Any]] = field(default_factory=list)
    events_jsonl: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def write_json(self, path: Path) -> None:
        body = json.dumps(self.to_dict(), ensure_ascii=False, indent=2)
        atomic_write_text(Path(path), body + "\n")


def build_run_report(
    *,
    run_id: str,
    started_at_utc: str,
    finished_at_utc: str,
    duration_ms: int,
    stage_results: list[StageResult],
    failed_stage: str | None,
    source_artifact: dict[str, Any] | None,
    notifications: list[dict[str, Any]],
    events_jsonl: str | None,
    meta: dict[str, Any] | None = None,
) -> RunReport:
    status: Outcome = FAILED if failed_stage is not None else SUCCEEDED
    return RunReport(
        run_id=run_id,
        started_at_utc=started_at_utc,
        finished_at_utc=finished_at_utc,
        status=status,
        duration_ms=duration_ms,
        failed_stage=failed_stage,
        source_artifact=source_artifact,
        stages=stage_results,
        notifications=notifications,
        events_jsonl=events_jsonl,
        meta=meta or {},
    )
