from __future__ import annotations

import traceback
from dataclasses import dataclass


class PipelineError(RuntimeError):
    """Base error"""


@dataclass(frozen=True, slots=True)
class StageError:
    """
    A normalized error record for stage failures.
    """

    exc_type: str
    message: str
    traceback: str


def stage_error_from_exc(exc: BaseException) -> StageError:
    return StageError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback=traceback.format_exc(),
    )


class StageCommandError(PipelineError):
    """A stage command exited non-zero"""

    def __init__(self, *, command: str, exit_code: int, output_tail: str = "") -> None:
        msg = f"Command exited with status {exit_code}: {command}"
        super().__init__(msg)
        self.command = command
        self.exit_code = exit_code
        self.output_tail = output_tail


class TagRegistryError(PipelineError):
    """
    Tag registry unreachable, or a stored value is not a usable image tag
    """


class TagNotFoundError(TagRegistryError):
    """Read of a key that was never written"""

    def __init__(self, key: str) -> None:
        super().__init__(f"No image tag stored under {key!r}")
        self.key = key


class PermissionDeniedError(PipelineError):
    """
    Operation rejected for lack of a capability; never retried with wider rights
    """


class ArtifactError(PipelineError):
    """Artifact channel error"""


class ArtifactIntegrityError(ArtifactError):
    """Snapshot content no longer matches its recorded digest"""


class ArtifactCaptureError(ArtifactError):
    """Declared output pattern matched nothing"""


class SourceError(PipelineError):
    """Source checkout failed"""


class ManifestRenderError(PipelineError):
    """Deployment manifest missing or references unset variables"""


class DefinitionError(PipelineError):
    """Pipeline definition file is missing or invalid"""
