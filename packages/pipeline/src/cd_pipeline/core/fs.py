import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable


def ensure_parent(path: Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def safe_unlink(path: os.PathLike[str] | str) -> None:
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        return


def relpath_posix(path: Path, base_dir: Path) -> str:
    return path.relative_to(base_dir).as_posix()


def fsync_dir(parent: Path) -> None:
    """
    Ensure directory entry durability after atomic rename.
    """
    fd: int | None = None
    try:
        fd = os.open(parent, os.O_RDONLY)
        os.fsync(fd)
    finally:
        if fd is not None:
            os.close(fd)


def atomic_write_text(
    path: Path,
    text: str,
    *,
    encoding: str = "utf-8",
    newline: str = "\n",
    mode: int = 0o644,
) -> None:
    """
    Atomically write text to `path`.

    Guarantees:
      - readers either see the old complete file or the new complete file
      - no partial/truncated file on crash
      - temp file written in the same directory (atomic replace works)
      - file contents are fsync()'d before replace
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd: int | None = None
    tmp_path: Path | None = None

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.",
            suffix=".tmp",
            dir=str(path.parent),
            text=True,
        )
        tmp_path = Path(tmp_name)

        with os.fdopen(fd, "w", encoding=encoding, newline=newline) as f:
            fd = None
            f.write(text)
            f.flush()
            os.fsync(f.fileno())

        try:
            os.chmod(tmp_path, mode)
        except OSError:
            pass

        os.replace(tmp_path, path)

        fsync_dir(path.parent)

    finally:
        if fd is not None:
            try:
                os.close(fd)
            except OSError:
                pass
        if tmp_path is not None and tmp_path.exists():
            safe_unlink(tmp_path)


def make_tmp_dir_for(final_dir: Path) -> Path:
    """
    Create a temp dir next to final_dir (same filesystem) so rename is atomic.
    """
    final_dir = Path(final_dir)
    final_dir.parent.mkdir(parents=True, exist_ok=True)
    tmp = tempfile.mkdtemp(prefix=f".{final_dir.name}.tmp.", dir=str(final_dir.parent))
    return Path(tmp)


def atomic_dir_commit(*, tmp_dir: Path, final_dir: Path) -> None:
    """
    Rename a fully written tmp_dir into place. Refuses to replace an existing dir.
    """
    final_dir = Path(final_dir)
    if final_dir.exists():
        raise FileExistsError(f"Target exists: {final_dir}")
    Path(tmp_dir).rename(final_dir)
    fsync_dir(final_dir.parent)


def list_files(root: Path) -> list[str]:
    """Posix-relative paths of all regular files under root, sorted."""
    root = Path(root)
    return sorted(
        relpath_posix(p, root) for p in root.rglob("*") if p.is_file()
    )


def copy_files(src_root: Path, dst_root: Path, rel_paths: Iterable[str]) -> None:
    """
    Copy (never link) files so the destination can be modified freely.
    """
    for rel in rel_paths:
        dst = Path(dst_root) / rel
        ensure_parent(dst)
        shutil.copy2(Path(src_root) / rel, dst)


def remove_tree(path: Path) -> None:
    shutil.rmtree(path, ignore_errors=True)
