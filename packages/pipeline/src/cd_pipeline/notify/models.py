from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional

from cd_pipeline.core import utc_now_iso
from cd_pipeline.pipeline.types import Outcome


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """Terminal outcome of one monitored stage."""

    stage: str
    outcome: Outcome
    ts_utc: str
    run_id: str
    detail: Optional[str] = None

    @classmethod
    def now(
        cls, *, stage: str, outcome: Outcome, run_id: str, detail: str | None = None
    ) -> "NotificationEvent":
        return cls(
            stage=stage, outcome=outcome, ts_utc=utc_now_iso(), run_id=run_id, detail=detail
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def subject(self) -> str:
        return f"[{self.outcome.upper()}] stage {self.stage} (run {self.run_id})"


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    recipient: str
    delivered: bool
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
