from __future__ import annotations

import json
import os
import socket
import threading
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from cd_pipeline.core import utc_now_iso

from .types import Event


class EventType(str, Enum):
    RUN_ENV = "run.env"
    RUN_START = "run.start"
    RUN_FINISH = "run.finish"

    SOURCE_CHECKOUT = "source.checkout"
    SOURCE_FAILED = "source.failed"

    STAGE_START = "stage.start"
    STAGE_WARN = "stage.warn"
    STAGE_COMMAND_START = "stage.command.start"
    STAGE_COMMAND_FINISH = "stage.command.finish"
    STAGE_SUCCEEDED = "stage.succeeded"
    STAGE_FAILED = "stage.failed"

    ARTIFACT_CAPTURED = "artifact.captured"
    REPORTS_COLLECTED = "reports.collected"

    TAGS_PUBLISHED = "tags.published"
    TAGS_RESOLVED = "tags.resolved"

    NOTIFY_DISPATCH = "notify.dispatch"
    NOTIFY_DELIVERY_FAILED = "notify.delivery_failed"


class EventSink:
    """Append-only events.jsonl writer."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        self.emit(
            Event(
                type=EventType.RUN_ENV.value,
                ts_utc=utc_now_iso(),
                run_id="__init__",
                data={
                    "hostname": socket.gethostname(),
                    "pid": os.getpid(),
                    "cwd": str(Path.cwd()),
                },
            )
        )

    def emit(self, event: Event) -> None:
        line = json.dumps(asdict(event), ensure_ascii=False, default=str)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")

    def read(self) -> list[dict[str, Any]]:
        with self._lock:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        return [json.loads(x) for x in lines if x.strip()]

    def close(self) -> None:
        return


def make_event(
    *,
    event_type: EventType | str,
    run_id: str,
    stage: Optional[str] = None,
    **data: Any,
) -> Event:
    type_value = (
        event_type.value if isinstance(event_type, EventType) else str(event_type)
    )
    return Event(
        type=type_value,
        ts_utc=utc_now_iso(),
        run_id=run_id,
        stage=stage,
        data=dict(data),
    )
