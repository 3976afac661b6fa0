from __future__ import annotations

from pathlib import Path

import pytest

from cd_pipeline.artifacts import ArtifactStore, match_patterns
from cd_pipeline.core import ArtifactCaptureError, ArtifactIntegrityError


def test_snapshot_excludes_git_and_is_immutable_copy(tmp_path: Path, source_dir: Path) -> None:
    store = ArtifactStore(tmp_path / "store")
    art = store.snapshot_dir(source_dir, name="source", produced_by="source")

    assert art.files == ("app.txt", "deployment.yml", "lib/util.txt")
    assert art.root.parent == store.root
    assert art.root.name.startswith("source-")
    assert len(art.sha256) == 64

    # later edits to the working directory do not reach the snapshot
    (source_dir / "app.txt").write_text("changed\n")
    assert (art.root / "app.txt").read_text() == "hello\n"
    store.verify(art)


def test_materialize_copies_into_workspace(tmp_path: Path, source_dir: Path) -> None:
    store = ArtifactStore(tmp_path / "store")
    art = store.snapshot_dir(source_dir, name="source", produced_by="source")

    ws = tmp_path / "ws"
    store.materialize(art, ws)
    assert (ws / "lib" / "util.txt").read_text() == "util\n"

    (ws / "app.txt").write_text("scribbled")
    store.verify(art)


def test_verify_detects_tampering(tmp_path: Path, source_dir: Path) -> None:
    store = ArtifactStore(tmp_path / "store")
    art = store.snapshot_dir(source_dir, name="source", produced_by="source")

    (art.root / "app.txt").write_text("tampered\n")
    with pytest.raises(ArtifactIntegrityError):
        store.materialize(art, tmp_path / "ws")


def test_verify_detects_added_file(tmp_path: Path, source_dir: Path) -> None:
    store = ArtifactStore(tmp_path / "store")
    art = store.snapshot_dir(source_dir, name="source", produced_by="source")

    (art.root / "extra.txt").write_text("x")
    with pytest.raises(ArtifactIntegrityError, match="file set changed"):
        store.verify(art)


def test_capture_uses_declared_patterns(tmp_path: Path) -> None:
    ws = tmp_path / "ws"
    (ws / "out").mkdir(parents=True)
    (ws / "imageDetail.json").write_text('{"ImageURI": "x:1"}')
    (ws / "out" / "a.txt").write_text("a")
    (ws / "ignored.txt").write_text("no")

    store = ArtifactStore(tmp_path / "store")
    art = store.capture(ws, ["imageDetail.json", "out/**/*"], name="build-output", produced_by="build")
    assert art.files == ("imageDetail.json", "out/a.txt")
    assert art.produced_by == "build"


def test_capture_pattern_without_match_fails(tmp_path: Path) -> None:
    ws = tmp_path / "ws"
    ws.mkdir()
    (ws / "a.txt").write_text("a")
    store = ArtifactStore(tmp_path / "store")
    with pytest.raises(ArtifactCaptureError, match="imageDetail.json"):
        store.capture(ws, ["a.txt", "imageDetail.json"], name="o", produced_by="s")


def test_match_patterns_reports_per_pattern(tmp_path: Path) -> None:
    (tmp_path / "r").mkdir()
    (tmp_path / "r" / "1.xml").write_text("")
    (tmp_path / "r" / "2.xml").write_text("")
    out = match_patterns(tmp_path, ["r/*.xml", "*.json"])
    assert out == {"r/*.xml": ["r/1.xml", "r/2.xml"], "*.json": []}
