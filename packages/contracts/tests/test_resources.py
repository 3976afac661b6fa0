from __future__ import annotations

from cd_pipeline_contracts import (
    image_detail_schema,
    notification_event_schema,
    schema_version_int,
)


def test_schema_version_is_int_ge_1():
    assert schema_version_int() >= 1


def test_image_detail_schema_loads():
    s = image_detail_schema()
    assert s["type"] == "object"
    assert s["required"] == ["ImageURI"]


def test_notification_event_schema_loads():
    s = notification_event_schema()
    assert s["properties"]["outcome"]["enum"] == ["succeeded", "failed"]
