from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cd_pipeline.artifacts import ArtifactStore
from cd_pipeline.core import ILogger
from cd_pipeline.definition import DeliveryTarget

from .events import EventSink, EventType, make_event


@dataclass(slots=True)
class RunContext:
    """
    Context for a single pipeline run. Owned by the orchestrator; stages see
    it through the executor.

      {run_root}/events.jsonl
      {run_root}/run_report.json
      {run_root}/artifacts/...
      {run_root}/workspaces/{ordinal}-{stage}-{id}/
      {run_root}/reports/{stage}/...
      {run_root}/logs/{ordinal}-{stage}.log
    """

    run_id: str
    run_root: Path
    target: DeliveryTarget
    logger: ILogger
    events: EventSink
    artifacts: ArtifactStore

    # run bookkeeping (e.g. the tag this run's build published)
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def workspaces_root(self) -> Path:
        return self.run_root / "workspaces"

    @property
    def reports_root(self) -> Path:
        return self.run_root / "reports"

    @property
    def logs_root(self) -> Path:
        return self.run_root / "logs"

    def stage_logger(self, stage: str) -> ILogger:
        return self.logger.bind(stage=stage)

    def emit(self, event: EventType | str, *, stage: str | None = None, **kw: Any) -> None:
        # Keep event chatter at debug level to leave console logs readable.
        event_value = event.value if isinstance(event, EventType) else str(event)
        self.events.emit(
            make_event(event_type=event_value, run_id=self.run_id, stage=stage, **kw)
        )
        self.logger.debug(event_value, event_type=event_value, stage=stage, **kw)
