from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class Artifact:
    """
    Immutable filesystem snapshot handed from one stage to the next.

    `path` is the snapshot directory inside the artifact store; consumers never
    work in it directly but receive a copy (see ArtifactStore.materialize).
    """

    name: str
    produced_by: str
    path: str
    files: tuple[str, ...]
    bytes: int
    sha256: str
    created_at_utc: str

    @property
    def root(self) -> Path:
        return Path(self.path)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "produced_by": self.produced_by,
            "path": self.path,
            "files": len(self.files),
            "bytes": self.bytes,
            "sha256": self.sha256,
            "created_at_utc": self.created_at_utc,
        }
