from .defaults import default_definition, default_stages
from .loader import load_definition, schema_for_definition, write_definition
from .models import (
    ClusterTarget,
    DeliveryTarget,
    ImageTarget,
    PipelineDefinition,
    RecipientKind,
    RecipientSpec,
    SourceSpec,
    StageKind,
    StageSpec,
)

__all__ = [
    "ClusterTarget",
    "DeliveryTarget",
    "ImageTarget",
    "PipelineDefinition",
    "RecipientKind",
    "RecipientSpec",
    "SourceSpec",
    "StageKind",
    "StageSpec",
    "default_definition",
    "default_stages",
    "load_definition",
    "schema_for_definition",
    "write_definition",
]
