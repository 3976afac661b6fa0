from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

Outcome = Literal["succeeded", "failed"]

SUCCEEDED: Outcome = "succeeded"
FAILED: Outcome = "failed"


@dataclass(frozen=True, slots=True)
class Event:
    """
    Structured event emitted by the pipeline.
    """

    type: str
    ts_utc: str
    run_id: str
    stage: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
