"""
Per-stage scoped, short-lived credentials.

Each stage gets its own token carrying only the capabilities its kind needs
(build: push + tag write; deploy: tag read + cluster access). Tokens are
revoked when the stage reaches a terminal status.
"""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Callable, Iterable, Mapping

import structlog

from cd_pipeline.core import PermissionDeniedError, to_iso, utc_now

log = structlog.get_logger(__name__)


class Capability(StrEnum):
    IMAGE_PUSH = "image:push"
    TAGS_READ = "tags:read"
    TAGS_WRITE = "tags:write"
    CLUSTER_READ = "cluster:read"
    CLUSTER_DEPLOY = "cluster:deploy"


DEFAULT_GRANTS: Mapping[str, frozenset[Capability]] = {
    "test": frozenset(),
    "command": frozenset(),
    "build": frozenset({Capability.IMAGE_PUSH, Capability.TAGS_WRITE}),
    "deploy": frozenset(
        {Capability.TAGS_READ, Capability.CLUSTER_READ, Capability.CLUSTER_DEPLOY}
    ),
}


def grants_for(kind: str, override: Iterable[Capability] | None = None) -> frozenset[Capability]:
    if override is not None:
        return frozenset(override)
    return DEFAULT_GRANTS.get(kind, frozenset())


@dataclass(frozen=True, slots=True)
class StageCredentials:
    stage: str
    run_id: str
    token: str
    capabilities: frozenset[Capability]
    issued_at: datetime
    expires_at: datetime

    def allows(self, cap: Capability) -> bool:
        return cap in self.capabilities

    def to_env(self) -> dict[str, str]:
        return {
            "CD_PIPELINE_STAGE_TOKEN": self.token,
            "CD_PIPELINE_STAGE_CAPABILITIES": ",".join(
                sorted(c.value for c in self.capabilities)
            ),
            "CD_PIPELINE_STAGE_TOKEN_EXPIRES": to_iso(self.expires_at),
        }

    def describe(self) -> dict[str, object]:
        # never includes the token itself
        return {
            "stage": self.stage,
            "capabilities": sorted(c.value for c in self.capabilities),
            "expires_at": to_iso(self.expires_at),
        }


class CredentialIssuer:
    def __init__(
        self,
        *,
        ttl_s: int = 3600,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if ttl_s <= 0:
            raise ValueError("ttl_s must be positive")
        self.ttl = timedelta(seconds=ttl_s)
        self._clock = clock
        self._revoked: set[str] = set()
        self._lock = threading.Lock()

    def issue(
        self,
        *,
        stage: str,
        run_id: str,
        capabilities: Iterable[Capability],
    ) -> StageCredentials:
        now = self._clock()
        creds = StageCredentials(
            stage=stage,
            run_id=run_id,
            token=secrets.token_urlsafe(32),
            capabilities=frozenset(capabilities),
            issued_at=now,
            expires_at=now + self.ttl,
        )
        log.debug("credentials.issued", **creds.describe())
        return creds

    def revoke(self, creds: StageCredentials) -> None:
        with self._lock:
            self._revoked.add(creds.token)
        log.debug("credentials.revoked", stage=creds.stage)

    def check(self, creds: StageCredentials, cap: Capability) -> None:
        with self._lock:
            revoked = creds.token in self._revoked
        if revoked:
            raise PermissionDeniedError(
                f"Credentials for stage {creds.stage} were revoked"
            )
        if self._clock() >= creds.expires_at:
            raise PermissionDeniedError(
                f"Credentials for stage {creds.stage} expired at {to_iso(creds.expires_at)}"
            )
        if not creds.allows(cap):
            raise PermissionDeniedError(
                f"Stage {creds.stage} lacks capability {cap.value}"
            )


class ScopedTagRegistry:
    """TagRegistry wrapper enforcing tags:read / tags:write."""

    def __init__(self, registry, creds: StageCredentials, issuer: CredentialIssuer) -> None:
        self.registry = registry
        self.creds = creds
        self.issuer = issuer

    def put(self, key: str, value: str, *, overwrite: bool = True) -> None:
        self.issuer.check(self.creds, Capability.TAGS_WRITE)
        self.registry.put(key, value, overwrite=overwrite)

    def get(self, key: str) -> str:
        self.issuer.check(self.creds, Capability.TAGS_READ)
        return self.registry.get(key)
