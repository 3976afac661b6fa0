from __future__ import annotations

from .errors import ContractsError, ContractsResourceError, HandoffValidationError
from .handoff import (
    TAG_FORMAT,
    TAG_PATTERN,
    ImageHandoff,
    image_reference,
    is_valid_tag,
    validate_image_detail_dict,
    validate_image_detail_json,
    validate_notification_event_dict,
)
from .keys import LATEST_TAG_SUFFIX, check_run_id, is_valid_run_id, latest_tag_key, run_tag_key
from .resources import (
    IMAGE_DETAIL_SCHEMA_REL,
    NOTIFICATION_EVENT_SCHEMA_REL,
    SCHEMA_VERSION_REL,
    image_detail_schema,
    notification_event_schema,
    read_json,
    read_text,
    schema_version_int,
    schema_version_text,
)

__all__ = [
    "ContractsError",
    "ContractsResourceError",
    "HandoffValidationError",
    "TAG_FORMAT",
    "TAG_PATTERN",
    "ImageHandoff",
    "image_reference",
    "is_valid_tag",
    "validate_image_detail_dict",
    "validate_image_detail_json",
    "validate_notification_event_dict",
    "LATEST_TAG_SUFFIX",
    "latest_tag_key",
    "run_tag_key",
    "check_run_id",
    "is_valid_run_id",
    "read_text",
    "read_json",
    "image_detail_schema",
    "notification_event_schema",
    "schema_version_text",
    "schema_version_int",
    "IMAGE_DETAIL_SCHEMA_REL",
    "NOTIFICATION_EVENT_SCHEMA_REL",
    "SCHEMA_VERSION_REL",
]
