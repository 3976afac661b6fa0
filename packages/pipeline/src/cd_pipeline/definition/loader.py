from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from cd_pipeline.core import DefinitionError, atomic_write_text

from .models import PipelineDefinition


def load_definition(path: Path) -> PipelineDefinition:
    path = Path(path)
    if not path.is_file():
        raise DefinitionError(f"Pipeline definition not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DefinitionError(f"Pipeline definition is not valid JSON: {path}: {e}") from e
    try:
        return PipelineDefinition.model_validate(raw)
    except ValidationError as e:
        raise DefinitionError(f"Invalid pipeline definition {path}:\n{e}") from e


def write_definition(path: Path, definition: PipelineDefinition) -> None:
    atomic_write_text(
        Path(path), definition.model_dump_json(indent=2, exclude_none=True) + "\n"
    )


def schema_for_definition() -> dict:
    return TypeAdapter(PipelineDefinition).json_schema()
