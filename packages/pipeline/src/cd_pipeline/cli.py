from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from cd_pipeline.core import (
    PipelineError,
    bind,
    clear_bindings,
    configure_logging,
    get_logger,
    load_settings,
    new_run_id,
)
from cd_pipeline.credentials import CredentialIssuer, grants_for
from cd_pipeline.definition import (
    PipelineDefinition,
    SourceSpec,
    default_definition,
    load_definition,
    schema_for_definition,
    write_definition,
)
from cd_pipeline.executor import ExecutorConfig, StageExecutor
from cd_pipeline.notify import NotificationRouter, recipients_from_specs
from cd_pipeline.pipeline.runner import PipelineRunner
from cd_pipeline.tags import ImageTagChannel, TagRegistry, normalize_tag_value, registry_from_settings
from cd_pipeline_contracts import is_valid_tag, latest_tag_key, run_tag_key
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()


@dataclass(frozen=True, slots=True)
class _CommonArgs:
    cmd: str
    definition: str | None


def _add_definition_arg(p: argparse.ArgumentParser, *, required: bool = False) -> None:
    p.add_argument(
        "--definition",
        default=None,
        required=required,
        help="Pipeline definition JSON. If omitted: the built-in test/build/deploy pipeline.",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="cd-pipeline")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("run", help="Check out the source and run every stage in order")
    _add_definition_arg(sp)
    sp.add_argument("--source", default=None, help="Local source directory (overrides source.location)")
    sp.add_argument("--branch", default=None, help="Branch to clone (overrides source.branch)")
    sp.add_argument("--run-id", default=None, help="Run id (default: random)")
    sp.add_argument(
        "--binding",
        choices=("latest", "run"),
        default=None,
        help="Tag key the deploy stage reads (default: CD_PIPELINE_TAG_BINDING or 'latest')",
    )
    sp.add_argument("--keep-workspaces", action="store_true", help="Do not delete stage workspaces")

    sp = sub.add_parser("validate", help="Validate a pipeline definition")
    _add_definition_arg(sp)
    sp.add_argument("--schema", action="store_true", help="Print the definition JSON schema instead")

    sp = sub.add_parser("init", help="Write the built-in pipeline definition to a file")
    sp.add_argument("--out", required=True, help="Output path")
    sp.add_argument("--account-id", default="123456789012")
    sp.add_argument("--region", default="us-east-1")
    sp.add_argument("--repo", default=None, help="Source repository name")
    sp.add_argument("--cluster", default=None, help="Cluster name")
    sp.add_argument("--force", action="store_true", help="Overwrite an existing file")

    sp = sub.add_parser("tags", help="Read or write the image tag registry")
    tsub = sp.add_subparsers(dest="tags_cmd", required=True)
    tg = tsub.add_parser("get", help="Print the tag stored for a repository")
    tg.add_argument("--repo", required=True)
    tg.add_argument("--run-id", default=None, help="Read the run-scoped key instead of latest")
    tp = tsub.add_parser("put", help="Store a tag for a repository")
    tp.add_argument("--repo", required=True)
    tp.add_argument("--value", required=True)

    sp = sub.add_parser(
        "cluster-access",
        help="Print the operator command granting the deploy role access to the cluster",
    )
    _add_definition_arg(sp)
    sp.add_argument("--role-arn", required=True, help="IAM role assumed by the deploy stage")

    return p


def _common(args: argparse.Namespace) -> _CommonArgs:
    definition = getattr(args, "definition", None)
    return _CommonArgs(cmd=str(args.cmd), definition=str(definition) if definition else None)


def _load(common: _CommonArgs) -> PipelineDefinition:
    if common.definition:
        return load_definition(Path(common.definition))
    return default_definition()


def _close_registry(registry: TagRegistry) -> None:
    close = getattr(registry, "close", None)
    if close is not None:
        close()


def _stages_table(d: PipelineDefinition) -> Table:
    tbl = Table(title=f"Pipeline {d.name}", show_header=True)
    tbl.add_column("#")
    tbl.add_column("stage")
    tbl.add_column("kind")
    tbl.add_column("privileged")
    tbl.add_column("capabilities")
    tbl.add_column("commands")
    for i, s in enumerate(d.stages, start=1):
        caps = grants_for(s.kind.value, s.capabilities)
        tbl.add_row(
            str(i),
            s.name,
            s.kind.value,
            "yes" if s.privileged else "no",
            ", ".join(sorted(c.value for c in caps)) or "-",
            str(len(s.commands)),
        )
    return tbl


def _cmd_run(args: argparse.Namespace, common: _CommonArgs) -> int:
    s = load_settings()
    d = _load(common)

    source = d.source
    if args.source or args.branch:
        source = SourceSpec(
            repo_name=d.source.repo_name,
            location=args.source or d.source.location,
            branch=args.branch or d.source.branch,
        )

    run_id = args.run_id or new_run_id()
    bind(run_id=run_id, command=common.cmd, pipeline=d.name)

    registry = registry_from_settings(s)
    router = NotificationRouter(recipients_from_specs(d.recipients, outbox_dir=Path(s.outbox_dir)))
    try:
        return _run_with(args, common, d, source, run_id, registry, router)
    finally:
        router.close()
        _close_registry(registry)


def _run_with(
    args: argparse.Namespace,
    common: _CommonArgs,
    d: PipelineDefinition,
    source: SourceSpec,
    run_id: str,
    registry: TagRegistry,
    router: NotificationRouter,
) -> int:
    s = load_settings()
    log = get_logger("cd_pipeline")
    channel = ImageTagChannel(registry, binding=args.binding or s.tag_binding)
    executor = StageExecutor(
        channel=channel,
        issuer=CredentialIssuer(ttl_s=s.credential_ttl_s),
        cfg=ExecutorConfig(
            allow_privileged=s.allow_privileged,
            keep_workspaces=args.keep_workspaces or s.keep_workspaces,
        ),
    )
    runner = PipelineRunner(
        stages=d.stages, target=d.target(), executor=executor, router=router, logger=log
    )

    console.print(
        Panel.fit(
            Text(
                f"cd-pipeline - {d.name}\nrun_id={run_id}\nsource={source.location}@{source.branch}",
                style="bold",
            ),
            title="Run",
        )
    )

    result = runner.run(
        source=source,
        run_root=Path(s.run_root),
        run_id=run_id,
        meta={"definition": common.definition, "binding": channel.binding},
    )

    tbl = Table(title="Result", show_header=True, box=None)
    tbl.add_column("stage")
    tbl.add_column("status")
    tbl.add_column("duration")
    for r in result.stages:
        colour = "green" if r.succeeded else "red"
        tbl.add_row(r.stage, f"[{colour}]{r.status}[/{colour}]", f"{r.duration_ms} ms")
    if result.failed_stage and result.failed_stage not in {r.stage for r in result.stages}:
        tbl.add_row(result.failed_stage, "[red]failed[/red]", "-")
    tbl.add_row("report", str(result.report_path), "")
    console.print(tbl)

    return result.exit_code


def _cmd_validate(args: argparse.Namespace, common: _CommonArgs) -> int:
    if args.schema:
        console.print_json(data=schema_for_definition())
        return 0
    d = _load(common)
    console.print(_stages_table(d))
    console.print(f"[green]ok[/green] {len(d.stages)} stage(s), {len(d.recipients)} recipient(s)")
    return 0


def _cmd_init(args: argparse.Namespace, common: _CommonArgs) -> int:
    out = Path(args.out)
    if out.exists() and not args.force:
        console.print(f"[red]refusing to overwrite[/red] {out} (use --force)")
        return 1
    kw: dict[str, str] = {"account_id": args.account_id, "region": args.region}
    if args.repo:
        kw["repo_name"] = args.repo
        kw["registry_repository"] = args.repo
        kw["source_location"] = args.repo
    if args.cluster:
        kw["cluster_name"] = args.cluster
    write_definition(out, default_definition(**kw))
    console.print(f"wrote {out}")
    return 0


def _cmd_tags(args: argparse.Namespace, common: _CommonArgs) -> int:
    if args.tags_cmd == "put" and not is_valid_tag(args.value):
        raise ValueError(f"Not an image tag (YYYYMMDDHHMMSS): {args.value!r}")
    registry = registry_from_settings(load_settings())
    try:
        if args.tags_cmd == "get":
            key = run_tag_key(args.repo, args.run_id) if args.run_id else latest_tag_key(args.repo)
            console.print(normalize_tag_value(registry.get(key)), markup=False)
            return 0
        key = latest_tag_key(args.repo)
        registry.put(key, args.value, overwrite=True)
        console.print(f"{key} = {args.value}", markup=False)
        return 0
    finally:
        _close_registry(registry)


def _cmd_cluster_access(args: argparse.Namespace, common: _CommonArgs) -> int:
    d = _load(common)
    console.print(
        "Run once, as a cluster administrator, before the first deploy:", style="bold"
    )
    console.print(cluster_access_command(d, args.role_arn), soft_wrap=True, markup=False)
    return 0


def cluster_access_command(d: PipelineDefinition, role_arn: str) -> str:
    return (
        f"eksctl create iamidentitymapping --cluster {d.cluster.name} "
        f"--region {d.cluster.region} --arn {role_arn} "
        f"--group system:masters"
    )


_COMMANDS: dict[str, Callable[[argparse.Namespace, _CommonArgs], int]] = {
    "run": _cmd_run,
    "validate": _cmd_validate,
    "init": _cmd_init,
    "tags": _cmd_tags,
    "cluster-access": _cmd_cluster_access,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    common = _common(args)

    s = load_settings()
    configure_logging(level=s.log_level, fmt=s.log_format)
    log = get_logger("cd_pipeline")

    try:
        return _COMMANDS[common.cmd](args, common)
    except PipelineError as e:
        log.error("Command failed", command=common.cmd, error=str(e))
        console.print(f"[red]error[/red] {escape(str(e))}")
        return 2
    except ValueError as e:
        console.print(f"[red]invalid argument[/red] {escape(str(e))}")
        return 2
    finally:
        clear_bindings()


if __name__ == "__main__":
    raise SystemExit(main())
