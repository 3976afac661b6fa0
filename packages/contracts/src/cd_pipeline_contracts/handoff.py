from __future__ import annotations

import json
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Final, Iterable

from jsonschema import Draft202012Validator

from .errors import HandoffValidationError
from .resources import image_detail_schema, notification_event_schema

TAG_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9]{14}$")
TAG_FORMAT: Final[str] = "%Y%m%d%H%M%S"


def is_valid_tag(tag: str) -> bool:
    return bool(TAG_PATTERN.match(tag))


def image_reference(registry_host: str, repository: str, tag: str) -> str:
    """'{registry-host}/{repository}:{tag}'"""
    return f"{registry_host.rstrip('/')}/{repository}:{tag}"


@dataclass(frozen=True, slots=True)
class ImageHandoff:
    """
    Typed Build -> Deploy payload.

    Only `tag` is written to the tag registry (raw string); the remaining fields
    travel in imageDetail.json and the run report.
    """

    source_repo: str
    registry_host: str
    repository: str
    tag: str
    built_at_utc: str
    run_id: str

    def __post_init__(self) -> None:
        if not is_valid_tag(self.tag):
            raise HandoffValidationError(
                f"Image tag must be a YYYYMMDDHHMMSS timestamp, got {self.tag!r}"
            )

    @property
    def image_uri(self) -> str:
        return image_reference(self.registry_host, self.repository, self.tag)

    def image_detail(self) -> dict[str, Any]:
        return {"ImageURI": self.image_uri, "ImageTag": self.tag, "RunId": self.run_id}


@lru_cache(maxsize=1)
def image_detail_validator() -> Draft202012Validator:
    return Draft202012Validator(image_detail_schema())


@lru_cache(maxsize=1)
def notification_event_validator() -> Draft202012Validator:
    return Draft202012Validator(notification_event_schema())


def format_errors(errors: Iterable[Any]) -> str:
    lines: list[str] = []
    for e in errors:
        path = (
            ".".join(str(p) for p in e.path) if getattr(e, "path", None) else "<root>"
        )
        lines.append(f"- {path}: {e.message}")
    return "\n".join(lines)


def _validate(v: Draft202012Validator, obj: dict[str, Any], label: str) -> None:
    errs = sorted(v.iter_errors(obj), key=lambda e: list(getattr(e, "path", [])))
    if errs:
        raise HandoffValidationError(
            f"{label} validation failed:\n" + format_errors(errs)
        )


def validate_image_detail_dict(obj: dict[str, Any]) -> None:
    _validate(image_detail_validator(), obj, "imageDetail.json")


def validate_image_detail_json(raw: str | bytes) -> dict[str, Any]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")

    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HandoffValidationError(f"imageDetail.json is not valid JSON: {e}") from e

    if not isinstance(obj, dict):
        raise HandoffValidationError(
            f"imageDetail.json must be a JSON object, got {type(obj).__name__}"
        )

    validate_image_detail_dict(obj)
    return obj


def validate_notification_event_dict(obj: dict[str, Any]) -> None:
    _validate(notification_event_validator(), obj, "Notification event")
