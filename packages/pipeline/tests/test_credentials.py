from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cd_pipeline.core import PermissionDeniedError
from cd_pipeline.credentials import (
    Capability,
    CredentialIssuer,
    ScopedTagRegistry,
    grants_for,
)
from cd_pipeline.tags import MemoryTagRegistry


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def test_default_grants_are_minimal_per_kind() -> None:
    assert grants_for("build") == {Capability.IMAGE_PUSH, Capability.TAGS_WRITE}
    assert grants_for("deploy") == {
        Capability.TAGS_READ,
        Capability.CLUSTER_READ,
        Capability.CLUSTER_DEPLOY,
    }
    assert grants_for("test") == frozenset()
    assert grants_for("command") == frozenset()
    assert Capability.IMAGE_PUSH not in grants_for("deploy")
    assert Capability.TAGS_WRITE not in grants_for("deploy")


def test_override_replaces_defaults() -> None:
    assert grants_for("deploy", [Capability.TAGS_READ]) == {Capability.TAGS_READ}
    assert grants_for("build", []) == frozenset()


def test_tokens_are_unique_per_stage() -> None:
    issuer = CredentialIssuer()
    a = issuer.issue(stage="build", run_id="r", capabilities=grants_for("build"))
    b = issuer.issue(stage="deploy", run_id="r", capabilities=grants_for("deploy"))
    assert a.token != b.token
    assert a.to_env()["CD_PIPELINE_STAGE_TOKEN"] == a.token
    assert a.to_env()["CD_PIPELINE_STAGE_CAPABILITIES"] == "image:push,tags:write"
    assert a.token not in str(a.describe())


def test_check_rejects_missing_capability_expired_and_revoked() -> None:
    clock = FakeClock()
    issuer = CredentialIssuer(ttl_s=60, clock=clock)
    creds = issuer.issue(stage="deploy", run_id="r", capabilities=grants_for("deploy"))

    issuer.check(creds, Capability.TAGS_READ)
    with pytest.raises(PermissionDeniedError, match="lacks capability image:push"):
        issuer.check(creds, Capability.IMAGE_PUSH)

    clock.now += timedelta(seconds=61)
    with pytest.raises(PermissionDeniedError, match="expired"):
        issuer.check(creds, Capability.TAGS_READ)

    fresh = issuer.issue(stage="deploy", run_id="r", capabilities=grants_for("deploy"))
    issuer.revoke(fresh)
    with pytest.raises(PermissionDeniedError, match="revoked"):
        issuer.check(fresh, Capability.TAGS_READ)


def test_scoped_registry_enforces_read_write_split() -> None:
    issuer = CredentialIssuer()
    reg = MemoryTagRegistry()

    build = ScopedTagRegistry(
        reg, issuer.issue(stage="b", run_id="r", capabilities=grants_for("build")), issuer
    )
    deploy = ScopedTagRegistry(
        reg, issuer.issue(stage="d", run_id="r", capabilities=grants_for("deploy")), issuer
    )

    build.put("k", "20240101120000")
    assert deploy.get("k") == "20240101120000"

    with pytest.raises(PermissionDeniedError):
        build.get("k")
    with pytest.raises(PermissionDeniedError):
        deploy.put("k", "20240101120001")
    assert reg.get("k") == "20240101120000"


def test_ttl_must_be_positive() -> None:
    with pytest.raises(ValueError):
        CredentialIssuer(ttl_s=0)
