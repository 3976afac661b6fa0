from __future__ import annotations

import uuid
from pathlib import Path
from typing import Iterable, Sequence

import structlog
from cd_pipeline.core import (
    ArtifactCaptureError,
    ArtifactIntegrityError,
    atomic_dir_commit,
    copy_files,
    list_files,
    make_tmp_dir_for,
    relpath_posix,
    remove_tree,
    sha256_tree,
    utc_now_iso,
)

from .models import Artifact

log = structlog.get_logger(__name__)

DEFAULT_EXCLUDES: tuple[str, ...] = (".git",)


def _excluded(rel: str, excludes: Sequence[str]) -> bool:
    parts = rel.split("/")
    return any(x in parts for x in excludes)


def match_patterns(root: Path, patterns: Sequence[str]) -> dict[str, list[str]]:
    """
    Resolve glob patterns (relative to root, `**` allowed) to posix paths of
    regular files. Returns {pattern: [relpath, ...]}.
    """
    out: dict[str, list[str]] = {}
    for pat in patterns:
        hits = sorted(
            relpath_posix(p, root) for p in root.glob(pat) if p.is_file()
        )
        out[pat] = hits
    return out


class ArtifactStore:
    """
    Run-scoped store of immutable artifact snapshots.

      {root}/{name}-{short_id}/...
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _commit(
        self,
        *,
        src_root: Path,
        rel_paths: Iterable[str],
        name: str,
        produced_by: str,
    ) -> Artifact:
        rels = sorted(set(rel_paths))
        final_dir = self.root / f"{name}-{uuid.uuid4().hex[:8]}"
        tmp_dir = make_tmp_dir_for(final_dir)
        try:
            copy_files(src_root, tmp_dir, rels)
            atomic_dir_commit(tmp_dir=tmp_dir, final_dir=final_dir)
        except Exception:
            remove_tree(tmp_dir)
            raise

        digest = sha256_tree(final_dir, rels)
        art = Artifact(
            name=name,
            produced_by=produced_by,
            path=str(final_dir),
            files=tuple(rels),
            bytes=digest.bytes,
            sha256=digest.sha256,
            created_at_utc=utc_now_iso(),
        )
        log.debug(
            "artifact.captured",
            name=name,
            produced_by=produced_by,
            files=len(rels),
            sha256=art.sha256,
        )
        return art

    def snapshot_dir(
        self,
        src_root: Path,
        *,
        name: str,
        produced_by: str,
        excludes: Sequence[str] = DEFAULT_EXCLUDES,
    ) -> Artifact:
        """Snapshot every file under src_root (used for the source artifact)."""
        src_root = Path(src_root)
        rels = [r for r in list_files(src_root) if not _excluded(r, excludes)]
        return self._commit(
            src_root=src_root, rel_paths=rels, name=name, produced_by=produced_by
        )

    def capture(
        self,
        workspace: Path,
        patterns: Sequence[str],
        *,
        name: str,
        produced_by: str,
    ) -> Artifact:
        """
        Snapshot the files a stage declared as outputs. Every pattern must
        match at least one file.
        """
        workspace = Path(workspace)
        matched = match_patterns(workspace, patterns)
        missing = [p for p, hits in matched.items() if not hits]
        if missing:
            raise ArtifactCaptureError(
                f"Stage {produced_by} declared outputs that matched nothing: {missing}"
            )
        rels = [r for hits in matched.values() for r in hits]
        return self._commit(
            src_root=workspace, rel_paths=rels, name=name, produced_by=produced_by
        )

    def verify(self, artifact: Artifact) -> None:
        root = artifact.root
        if not root.is_dir():
            raise ArtifactIntegrityError(f"Artifact snapshot missing: {root}")
        present = tuple(list_files(root))
        if present != artifact.files:
            raise ArtifactIntegrityError(
                f"Artifact {artifact.name} file set changed "
                f"(expected {len(artifact.files)}, found {len(present)})"
            )
        digest = sha256_tree(root, present)
        if digest.sha256 != artifact.sha256:
            raise ArtifactIntegrityError(
                f"Artifact {artifact.name} digest mismatch: "
                f"expected {artifact.sha256}, got {digest.sha256}"
            )

    def materialize(self, artifact: Artifact, dest: Path) -> None:
        """Copy a verified snapshot into dest (pass by value)."""
        self.verify(artifact)
        dest = Path(dest)
        dest.mkdir(parents=True, exist_ok=True)
        copy_files(artifact.root, dest, artifact.files)
