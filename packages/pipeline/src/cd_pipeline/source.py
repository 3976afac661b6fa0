from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

from cd_pipeline.artifacts import Artifact, ArtifactStore
from cd_pipeline.core import SourceError, make_tmp_dir_for, remove_tree
from cd_pipeline.definition import SourceSpec

log = structlog.get_logger(__name__)

SOURCE_STAGE = "source"


@dataclass(frozen=True, slots=True)
class SourceCheckout:
    artifact: Artifact
    revision: Optional[str] = None


def _is_remote(location: str) -> bool:
    return "://" in location or location.startswith("git@") or location.endswith(".git")


def _git(args: list[str], *, cwd: Path | None = None) -> str:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd else None,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise SourceError(f"Unable to run git: {e}") from e
    if proc.returncode != 0:
        tail = "\n".join((proc.stderr or proc.stdout or "").strip().splitlines()[-5:])
        raise SourceError(f"git {args[0]} failed with status {proc.returncode}: {tail}")
    return proc.stdout.strip()


def checkout_source(spec: SourceSpec, *, store: ArtifactStore, workdir: Path) -> SourceCheckout:
    """
    Produce the initial artifact for a run.

    A local directory is snapshotted as-is (without .git). Anything else is
    treated as a git remote and shallow-cloned at `spec.branch`.
    """
    loc = spec.location
    local = Path(loc).expanduser()

    if local.is_dir():
        revision: str | None = None
        if (local / ".git").exists():
            try:
                revision = _git(["rev-parse", "HEAD"], cwd=local)
            except SourceError as e:
                log.warning("source.revision_unavailable", location=loc, error=str(e))
        art = store.snapshot_dir(local, name=SOURCE_STAGE, produced_by=SOURCE_STAGE)
        log.info("source.snapshot", location=str(local), files=len(art.files), revision=revision)
        return SourceCheckout(artifact=art, revision=revision)

    if not _is_remote(loc):
        raise SourceError(
            f"Source {spec.repo_name!r}: {loc!r} is neither a directory nor a git remote"
        )

    clone_dir = make_tmp_dir_for(Path(workdir) / "checkout")
    try:
        _git(["clone", "--depth", "1", "--branch", spec.branch, loc, str(clone_dir)])
        revision = _git(["rev-parse", "HEAD"], cwd=clone_dir)
        art = store.snapshot_dir(clone_dir, name=SOURCE_STAGE, produced_by=SOURCE_STAGE)
    finally:
        remove_tree(clone_dir)

    log.info("source.clone", location=loc, branch=spec.branch, revision=revision, files=len(art.files))
    return SourceCheckout(artifact=art, revision=revision)
