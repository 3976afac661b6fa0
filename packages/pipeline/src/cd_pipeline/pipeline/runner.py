from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

from cd_pipeline.artifacts import Artifact, ArtifactStore
from cd_pipeline.core import (
    ILogger,
    RunProvenance,
    configure_logging,
    get_logger,
    monotonic_ms,
    new_run_id,
    run_log_file,
    utc_now_iso,
)
from cd_pipeline.definition import DeliveryTarget, SourceSpec, StageSpec
from cd_pipeline.executor import StageExecutor
from cd_pipeline.notify import DeliveryResult, NotificationEvent, NotificationRouter
from cd_pipeline.source import SOURCE_STAGE, checkout_source
from cd_pipeline_contracts import check_run_id, schema_version_text

from .context import RunContext
from .events import EventSink, EventType, make_event
from .report import build_run_report
from .stage import StageResult, format_duration_ms
from .types import SUCCEEDED, Outcome


@dataclass(slots=True)
class PipelineResult:
    run_id: str
    status: Outcome
    failed_stage: Optional[str]
    stages: list[StageResult] = field(default_factory=list)
    final_artifact: Optional[Artifact] = None
    notifications: list[NotificationEvent] = field(default_factory=list)
    report_path: Optional[Path] = None
    events_path: Optional[Path] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.status == SUCCEEDED else 1


def default_logger() -> ILogger:
    configure_logging()
    return get_logger("pipeline")


def _detail(res: StageResult) -> str | None:
    if res.error is None:
        return None
    return f"{res.error.exc_type}: {res.error.message}"


class PipelineRunner:
    """
    Linear stage orchestration: stage i+1 runs only after stage i succeeded,
    and receives the latest artifact produced so far.
    """

    def __init__(
        self,
        *,
        stages: Sequence[StageSpec],
        target: DeliveryTarget,
        executor: StageExecutor,
        router: NotificationRouter | None = None,
        logger: ILogger | None = None,
    ) -> None:
        self.stages = list(stages)
        self.target = target
        self.executor = executor
        self.router = router or NotificationRouter()
        self.logger: ILogger = logger or default_logger()

        names = [s.name for s in self.stages]
        if len(names) != len(set(names)):
            dupes = sorted({x for x in names if names.count(x) > 1})
            raise ValueError(f"Duplicate stage name(s): {dupes}")
        if SOURCE_STAGE in names:
            raise ValueError(f"Stage name {SOURCE_STAGE!r} is reserved")

    def _notify(
        self, ctx: RunContext, stage: StageSpec, res: StageResult
    ) -> tuple[NotificationEvent, list[DeliveryResult]]:
        event = NotificationEvent.now(
            stage=stage.name, outcome=res.status, run_id=ctx.run_id, detail=_detail(res)
        )
        deliveries = self.router.notify(event)
        ctx.emit(
            EventType.NOTIFY_DISPATCH,
            stage=stage.name,
            outcome=event.outcome,
            recipients=len(deliveries),
            delivered=sum(1 for d in deliveries if d.delivered),
        )
        for d in deliveries:
            if not d.delivered:
                ctx.emit(
                    EventType.NOTIFY_DELIVERY_FAILED,
                    stage=stage.name,
                    recipient=d.recipient,
                    error=d.error,
                )
        return event, deliveries

    def run(
        self,
        *,
        source: SourceSpec | Artifact,
        run_root: Path,
        run_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> PipelineResult:
        """
        Execute the pipeline and write:
          - events.jsonl
          - run_report.json
          - pipeline.log

        Never raises for stage failures; inspect PipelineResult.status.
        An invalid run_id raises ValueError before anything is written.
        """
        rid = check_run_id(run_id) if run_id is not None else new_run_id()
        root = Path(run_root) / rid
        root.mkdir(parents=True, exist_ok=True)
        with run_log_file(root / "pipeline.log"):
            return self._run(source=source, root=root, rid=rid, meta=dict(meta or {}))

    def _run(
        self,
        *,
        source: SourceSpec | Artifact,
        root: Path,
        rid: str,
        meta: dict[str, Any],
    ) -> PipelineResult:
        events_path = root / "events.jsonl"
        sink = EventSink(events_path)
        ctx = RunContext(
            run_id=rid,
            run_root=root,
            target=self.target,
            logger=self.logger.bind(run_id=rid),
            events=sink,
            artifacts=ArtifactStore(root / "artifacts"),
            meta=meta,
        )

        started_at = utc_now_iso()
        t0 = monotonic_ms()
        run_meta = {
            "provenance": RunProvenance(run_id=rid, started_at_utc=started_at).to_dict(),
            "contracts_schema_version": schema_version_text(),
        }

        ctx.logger.info(
            "Pipeline starting",
            stages=[s.name for s in self.stages],
            source_repo=self.target.source_repo,
            run_root=str(root),
        )
        sink.emit(
            make_event(
                event_type=EventType.RUN_START,
                run_id=rid,
                stages=[s.name for s in self.stages],
                **meta,
            )
        )

        results: list[StageResult] = []
        events: list[NotificationEvent] = []
        deliveries: list[dict[str, Any]] = []
        failed_stage: str | None = None
        current: Artifact | None = None

        if isinstance(source, Artifact):
            current = source
        else:
            try:
                checkout = checkout_source(source, store=ctx.artifacts, workdir=root)
            except Exception as e:
                failed_stage = SOURCE_STAGE
                ctx.emit(
                    EventType.SOURCE_FAILED,
                    location=source.location,
                    exc_type=type(e).__name__,
                    message=str(e),
                )
                ctx.logger.error("Source checkout failed", location=source.location, error=str(e))
            else:
                current = checkout.artifact
                meta["source_revision"] = checkout.revision
                ctx.emit(
                    EventType.SOURCE_CHECKOUT,
                    location=source.location,
                    branch=source.branch,
                    revision=checkout.revision,
                    **current.to_dict(),
                )

        source_artifact = current

        if current is not None:
            total = len(self.stages)
            for ordinal, st in enumerate(self.stages, start=1):
                ctx.logger.info(f"[{ordinal}/{total}] {st.name}")
                outcome = self.executor.execute(st, current, ctx=ctx, ordinal=ordinal)
                results.append(outcome.result)

                if st.notify:
                    ev, dels = self._notify(ctx, st, outcome.result)
                    events.append(ev)
                    deliveries.extend({"stage": st.name, **d.to_dict()} for d in dels)

                if outcome.status != SUCCEEDED:
                    failed_stage = st.name
                    ctx.logger.error("Stopping on first failure", stage=st.name)
                    break

                if outcome.output is not None:
                    current = outcome.output

        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        report = build_run_report(
            run_id=rid,
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            stage_results=results,
            failed_stage=failed_stage,
            source_artifact=source_artifact.to_dict() if source_artifact else None,
            notifications=[
                {**e.to_dict(), "deliveries": [d for d in deliveries if d["stage"] == e.stage]}
                for e in events
            ],
            events_jsonl=str(events_path),
            meta={**run_meta, **meta},
        )
        report_path = root / "run_report.json"
        report.write_json(report_path)

        sink.emit(
            make_event(
                event_type=EventType.RUN_FINISH,
                run_id=rid,
                status=report.status,
                failed_stage=failed_stage,
                duration_ms=duration,
                report_json=str(report_path),
            )
        )
        sink.close()

        log_fn = ctx.logger.info if report.status == SUCCEEDED else ctx.logger.error
        log_fn(
            "Run complete",
            status=report.status,
            failed_stage=failed_stage,
            duration_ms=duration,
            duration=format_duration_ms(duration),
            report=str(report_path),
            events=str(events_path),
        )

        return PipelineResult(
            run_id=rid,
            status=report.status,
            failed_stage=failed_stage,
            stages=results,
            final_artifact=current if failed_stage is None else None,
            notifications=events,
            report_path=report_path,
            events_path=events_path,
        )


def run_pipeline(
    stages: Sequence[StageSpec],
    *,
    source: SourceSpec | Artifact,
    target: DeliveryTarget,
    executor: StageExecutor,
    run_root: Path,
    router: NotificationRouter | None = None,
    run_id: str | None = None,
    logger: ILogger | None = None,
) -> PipelineResult:
    runner = PipelineRunner(
        stages=stages, target=target, executor=executor, router=router, logger=logger
    )
    return runner.run(source=source, run_root=run_root, run_id=run_id)
