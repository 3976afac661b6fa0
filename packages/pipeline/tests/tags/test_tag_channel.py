from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cd_pipeline.core import TagNotFoundError, TagRegistryError
from cd_pipeline.tags import ImageTagChannel, MemoryTagRegistry, new_image_tag
from cd_pipeline_contracts import ImageHandoff


def _handoff(tag: str, run_id: str = "r1") -> ImageHandoff:
    return ImageHandoff(
        source_repo="myrepo",
        registry_host="123456789012.dkr.ecr.us-east-1.amazonaws.com",
        repository="myrepo",
        tag=tag,
        built_at_utc="2024-01-01T12:00:00Z",
        run_id=run_id,
    )


def test_new_image_tag_format_and_utc() -> None:
    local = datetime(2024, 1, 1, 20, 0, 0, tzinfo=timezone(timedelta(hours=8)))
    assert new_image_tag(local) == "20240101120000"
    assert new_image_tag(datetime(2024, 1, 1, 12, 0, 0)) == "20240101120000"


def test_new_image_tag_strictly_increasing_per_second() -> None:
    t0 = datetime(2024, 12, 31, 23, 59, 58, tzinfo=timezone.utc)
    tags = [new_image_tag(t0 + timedelta(seconds=i)) for i in range(4)]
    assert tags == sorted(tags)
    assert len(set(tags)) == 4


def test_publish_then_resolve_latest() -> None:
    reg = MemoryTagRegistry()
    ch = ImageTagChannel(reg)
    assert ch.publish(_handoff("20240101120000")) == ["myrepo-image-latest-tag"]
    assert reg.snapshot() == {"myrepo-image-latest-tag": "20240101120000"}
    assert ch.resolve("myrepo", "any-run") == "20240101120000"


def test_latest_binding_last_writer_wins() -> None:
    reg = MemoryTagRegistry()
    ch = ImageTagChannel(reg)
    ch.publish(_handoff("20240101120000", run_id="a"))
    ch.publish(_handoff("20240101120005", run_id="b"))
    assert ch.resolve("myrepo", "a") == "20240101120005"


def test_run_binding_isolates_concurrent_runs() -> None:
    reg = MemoryTagRegistry()
    ch = ImageTagChannel(reg, binding="run")
    ch.publish(_handoff("20240101120000", run_id="a"))
    ch.publish(_handoff("20240101120005", run_id="b"))

    assert ch.resolve("myrepo", "a") == "20240101120000"
    assert ch.resolve("myrepo", "b") == "20240101120005"
    # external contract key is still maintained
    assert reg.get("myrepo-image-latest-tag") == "20240101120005"


def test_resolve_never_defaults() -> None:
    ch = ImageTagChannel(MemoryTagRegistry())
    with pytest.raises(TagNotFoundError):
        ch.resolve("myrepo", "r1")

    ch = ImageTagChannel(MemoryTagRegistry({"myrepo-image-latest-tag": ""}))
    with pytest.raises(TagRegistryError):
        ch.resolve("myrepo", "r1")


def test_unknown_binding_rejected() -> None:
    with pytest.raises(ValueError):
        ImageTagChannel(MemoryTagRegistry(), binding="newest")  # type: ignore[arg-type]
