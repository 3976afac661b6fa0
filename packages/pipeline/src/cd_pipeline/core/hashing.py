import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


@dataclass(frozen=True)
class FileDigest:
    sha256: str
    bytes: int


def sha256_file(path: Path, *, chunk_bytes: int = 1024 * 1024) -> FileDigest:
    h = hashlib.sha256()
    total = 0
    with path.open("rb") as f:
        while True:
            b = f.read(chunk_bytes)
            if not b:
                break
            h.update(b)
            total += len(b)

    return FileDigest(sha256=h.hexdigest(), bytes=total)


def sha256_tree(root: Path, rel_paths: Iterable[str]) -> FileDigest:
    """
    Digest of a directory snapshot: sorted '{relpath}\\0{file sha256}\\n' lines.
    Paths are posix-relative to `root`.
    """
    h = hashlib.sha256()
    total = 0
    for rel in sorted(rel_paths):
        d = sha256_file(root / rel)
        h.update(rel.encode("utf-8"))
        h.update(b"\0")
        h.update(d.sha256.encode("ascii"))
        h.update(b"\n")
        total += d.bytes
    return FileDigest(sha256=h.hexdigest(), bytes=total)
