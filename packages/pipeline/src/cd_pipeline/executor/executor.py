from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from cd_pipeline.artifacts import Artifact, match_patterns
from cd_pipeline.core import (
    PermissionDeniedError,
    PipelineError,
    StageCommandError,
    copy_files,
    monotonic_ms,
    remove_tree,
    stage_error_from_exc,
    utc_now_iso,
)
from cd_pipeline.credentials import (
    CredentialIssuer,
    ScopedTagRegistry,
    StageCredentials,
    grants_for,
)
from cd_pipeline.definition import StageSpec
from cd_pipeline.pipeline.context import RunContext
from cd_pipeline.pipeline.events import EventType
from cd_pipeline.pipeline.stage import StageResult, format_duration_ms
from cd_pipeline.pipeline.types import FAILED, SUCCEEDED, Outcome
from cd_pipeline.stages import StageBehavior, StageRun, behavior_for, default_behaviors
from cd_pipeline.tags import ImageTagChannel

from .commands import run_command


@dataclass(slots=True)
class ExecutorConfig:
    allow_privileged: bool = True
    keep_workspaces: bool = False
    shell: str = "/bin/sh"
    output_tail_lines: int = 40
    # False: commands only see PATH plus the pipeline-provided variables
    inherit_env: bool = True


@dataclass(slots=True)
class StageOutcome:
    status: Outcome
    output: Artifact | None
    result: StageResult


class StageExecutor:
    """
    Runs one stage in a freshly provisioned workspace and reports a single
    terminal status. Never raises for stage-level failures.
    """

    def __init__(
        self,
        *,
        channel: ImageTagChannel,
        issuer: CredentialIssuer | None = None,
        cfg: ExecutorConfig | None = None,
        behaviors: Mapping[str, StageBehavior] | None = None,
    ) -> None:
        self.channel = channel
        self.issuer = issuer or CredentialIssuer()
        self.cfg = cfg or ExecutorConfig()
        self.behaviors = dict(behaviors or default_behaviors())

    def _base_env(self) -> dict[str, str]:
        if self.cfg.inherit_env:
            return dict(os.environ)
        return {"PATH": os.environ.get("PATH", os.defpath)}

    def _stage_env(
        self,
        ctx: RunContext,
        stage: StageSpec,
        ordinal: int,
        creds: StageCredentials,
    ) -> dict[str, str]:
        env = self._base_env()
        env.update(ctx.target.to_env())
        env.update(
            {
                "CD_PIPELINE_RUN_ID": ctx.run_id,
                "CD_PIPELINE_STAGE": stage.name,
                "CD_PIPELINE_STAGE_ORDINAL": str(ordinal),
                "CD_PIPELINE_PRIVILEGED": "1" if stage.privileged else "0",
            }
        )
        env.update(stage.env)
        env.update(creds.to_env())
        return env

    def _provision(
        self, ctx: RunContext, stage: StageSpec, ordinal: int, input: Artifact
    ) -> Path:
        workspace = ctx.workspaces_root / f"{ordinal:02d}-{stage.name}-{uuid.uuid4().hex[:8]}"
        workspace.mkdir(parents=True, exist_ok=False)
        ctx.artifacts.materialize(input, workspace)
        return workspace

    def _collect_reports(
        self, ctx: RunContext, stage: StageSpec, workspace: Path
    ) -> list[str]:
        if not stage.reports:
            return []
        matched = match_patterns(workspace, stage.reports)
        rels = sorted({r for hits in matched.values() for r in hits})
        if rels:
            dest = ctx.reports_root / stage.name
            copy_files(workspace, dest, rels)
            ctx.emit(
                EventType.REPORTS_COLLECTED,
                stage=stage.name,
                files=len(rels),
                dir=str(dest),
            )
        return rels

    def execute(
        self,
        stage: StageSpec,
        input: Artifact,
        *,
        ctx: RunContext,
        ordinal: int,
    ) -> StageOutcome:
        log = ctx.stage_logger(stage.name)
        t0 = monotonic_ms()
        started_at = utc_now_iso()

        ctx.emit(
            EventType.STAGE_START,
            stage=stage.name,
            ordinal=ordinal,
            kind=stage.kind.value,
            privileged=stage.privileged,
            input_artifact=input.name,
        )
        log.info(
            "Stage starting",
            ordinal=ordinal,
            kind=stage.kind.value,
            commands=len(stage.commands),
            input_artifact=input.name,
        )

        creds: StageCredentials | None = None
        workspace: Path | None = None
        run: StageRun | None = None
        commands_run = 0
        reports: list[str] = []

        try:
            if stage.privileged and not self.cfg.allow_privileged:
                raise PermissionDeniedError(
                    f"Stage {stage.name} requires a privileged environment"
                )
            behavior = behavior_for(stage.kind.value, self.behaviors)
            creds = self.issuer.issue(
                stage=stage.name,
                run_id=ctx.run_id,
                capabilities=grants_for(stage.kind.value, stage.capabilities),
            )
            workspace = self._provision(ctx, stage, ordinal, input)
            scoped = ImageTagChannel(
                ScopedTagRegistry(self.channel.registry, creds, self.issuer),
                binding=self.channel.binding,
            )
            run = StageRun(
                ctx=ctx,
                spec=stage,
                ordinal=ordinal,
                workspace=workspace,
                env=self._stage_env(ctx, stage, ordinal, creds),
                credentials=creds,
                issuer=self.issuer,
                channel=scoped,
                log=log,
            )

            behavior.prepare(run)

            log_path = ctx.logs_root / f"{ordinal:02d}-{stage.name}.log"
            for idx, cmd in enumerate(stage.commands, start=1):
                ctx.emit(EventType.STAGE_COMMAND_START, stage=stage.name, index=idx, command=cmd)
                log.debug("stage.command.start", index=idx, command=cmd)
                res = run_command(
                    cmd,
                    cwd=workspace,
                    env=run.env,
                    log_path=log_path,
                    shell=self.cfg.shell,
                    tail_lines=self.cfg.output_tail_lines,
                )
                commands_run += 1
                ctx.emit(
                    EventType.STAGE_COMMAND_FINISH,
                    stage=stage.name,
                    index=idx,
                    exit_code=res.exit_code,
                    duration_ms=res.duration_ms,
                )
                if not res.ok:
                    raise StageCommandError(
                        command=cmd, exit_code=res.exit_code, output_tail=res.output_tail
                    )

            behavior.finalize(run)
            reports = self._collect_reports(ctx, stage, workspace)

            output: Artifact | None = None
            if stage.outputs:
                output = ctx.artifacts.capture(
                    workspace,
                    stage.outputs,
                    name=f"{stage.name}-output",
                    produced_by=stage.name,
                )
                ctx.emit(EventType.ARTIFACT_CAPTURED, stage=stage.name, **output.to_dict())

            for w in run.warnings:
                ctx.emit(EventType.STAGE_WARN, stage=stage.name, message=w)

            finished_at = utc_now_iso()
            duration = monotonic_ms() - t0
            ctx.emit(EventType.STAGE_SUCCEEDED, stage=stage.name, duration_ms=duration)
            log.info(
                "Stage succeeded",
                status=SUCCEEDED,
                ordinal=ordinal,
                duration_ms=duration,
                duration=format_duration_ms(duration),
                commands=commands_run,
                warnings=len(run.warnings),
                output_artifact=output.name if output else None,
            )

            result = StageResult(
                stage=stage.name,
                ordinal=ordinal,
                kind=stage.kind.value,
                status=SUCCEEDED,
                started_at_utc=started_at,
                finished_at_utc=finished_at,
                duration_ms=duration,
                commands_run=commands_run,
                input_artifact=input.name,
                output_artifact=output,
                outputs=dict(run.outputs),
                reports=reports,
                warnings=list(run.warnings),
            )
            return StageOutcome(status=SUCCEEDED, output=output, result=result)

        except Exception as e:
            err = stage_error_from_exc(e)
            if workspace is not None and not reports:
                try:
                    reports = self._collect_reports(ctx, stage, workspace)
                except OSError as rep_err:
                    log.warning("Report collection failed", error=str(rep_err))

            finished_at = utc_now_iso()
            duration = monotonic_ms() - t0
            ctx.emit(
                EventType.STAGE_FAILED,
                stage=stage.name,
                duration_ms=duration,
                exc_type=type(e).__name__,
                message=str(e),
            )
            log.error(
                "Stage failed",
                status=FAILED,
                ordinal=ordinal,
                duration_ms=duration,
                duration=format_duration_ms(duration),
                commands=commands_run,
                error=str(e),
            )
            if isinstance(e, StageCommandError):
                if e.output_tail:
                    log.error("Command output (tail)", output=e.output_tail)
            elif not isinstance(e, PipelineError):
                log.exception("Stage exception")

            result = StageResult(
                stage=stage.name,
                ordinal=ordinal,
                kind=stage.kind.value,
                status=FAILED,
                started_at_utc=started_at,
                finished_at_utc=finished_at,
                duration_ms=duration,
                commands_run=commands_run,
                input_artifact=input.name,
                output_artifact=None,
                outputs=dict(run.outputs) if run is not None else {},
                reports=reports,
                warnings=list(run.warnings) if run is not None else [],
                error=err,
            )
            return StageOutcome(status=FAILED, output=None, result=result)

        finally:
            if creds is not None:
                self.issuer.revoke(creds)
            if workspace is not None and not self.cfg.keep_workspaces:
                remove_tree(workspace)
