"""
Tag registry key derivation.

Writer (build stage) and reader (deploy stage) must agree on these keys, so
both import them from here rather than formatting strings locally.
"""

from __future__ import annotations

import re
from typing import Final

LATEST_TAG_SUFFIX: Final[str] = "-image-latest-tag"

_REPO_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\-]{0,99}$")
_RUN_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]{0,63}$")


def _check_repo(source_repo: str) -> str:
    if not _REPO_NAME.match(source_repo):
        raise ValueError(f"Invalid source repository name: {source_repo!r}")
    return source_repo


def latest_tag_key(source_repo: str) -> str:
    """'{repo}-image-latest-tag'"""
    return f"{_check_repo(source_repo)}{LATEST_TAG_SUFFIX}"


def is_valid_run_id(run_id: str) -> bool:
    return bool(_RUN_ID.match(run_id))


def check_run_id(run_id: str) -> str:
    """Run ids end up in tag keys and run directory names."""
    if not is_valid_run_id(run_id):
        raise ValueError(f"Invalid run id: {run_id!r} (expected [A-Za-z0-9_-], max 64 chars)")
    return run_id


def run_tag_key(source_repo: str, run_id: str) -> str:
    """'{repo}-image-{run_id}-tag', used when tag lookups are bound to a run."""
    return f"{_check_repo(source_repo)}-image-{check_run_id(run_id)}-tag"
