from .config import Settings, load_settings
from .errors import (
    ArtifactCaptureError,
    ArtifactError,
    ArtifactIntegrityError,
    DefinitionError,
    ManifestRenderError,
    PermissionDeniedError,
    PipelineError,
    SourceError,
    StageCommandError,
    StageError,
    TagNotFoundError,
    TagRegistryError,
    stage_error_from_exc,
)
from .fs import (
    atomic_dir_commit,
    atomic_write_text,
    copy_files,
    ensure_parent,
    list_files,
    make_tmp_dir_for,
    relpath_posix,
    remove_tree,
    safe_unlink,
)
from .hashing import FileDigest, sha256_file, sha256_tree
from .logging import (
    ILogger,
    bind,
    clear_bindings,
    configure_logging,
    get_logger,
    redact_secrets,
    run_log_file,
)
from .provenance import RunProvenance, new_run_id
from .time import monotonic_ms, to_iso, utc_now, utc_now_iso

__all__ = [
    "Settings",
    "load_settings",
    "PipelineError",
    "StageError",
    "stage_error_from_exc",
    "StageCommandError",
    "TagRegistryError",
    "TagNotFoundError",
    "PermissionDeniedError",
    "ArtifactError",
    "ArtifactIntegrityError",
    "ArtifactCaptureError",
    "SourceError",
    "ManifestRenderError",
    "DefinitionError",
    "atomic_dir_commit",
    "atomic_write_text",
    "copy_files",
    "ensure_parent",
    "list_files",
    "make_tmp_dir_for",
    "relpath_posix",
    "remove_tree",
    "safe_unlink",
    "FileDigest",
    "sha256_file",
    "sha256_tree",
    "ILogger",
    "bind",
    "clear_bindings",
    "configure_logging",
    "get_logger",
    "redact_secrets",
    "run_log_file",
    "RunProvenance",
    "new_run_id",
    "monotonic_ms",
    "to_iso",
    "utc_now",
    "utc_now_iso",
]
