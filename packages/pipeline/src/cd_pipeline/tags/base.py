from __future__ import annotations

import json
from typing import Protocol, runtime_checkable

from cd_pipeline.core import TagRegistryError
from cd_pipeline_contracts import is_valid_tag


@runtime_checkable
class TagRegistry(Protocol):
    """
    Durable key/value store used for the Build -> Deploy image tag handoff.

    Writes are unconditional last-writer-wins; `get` of an absent key raises
    TagNotFoundError and never returns a default.
    """

    def put(self, key: str, value: str, *, overwrite: bool = True) -> None: ...

    def get(self, key: str) -> str: ...


def _unwrap_quotes(s: str) -> str:
    while len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    return s


def normalize_tag_value(raw: str) -> str:
    """
    Reduce a stored value to a bare image tag.

    Accepts the raw tag, a quoted tag ('"20240101120000"'), or a
    parameter-store style body ('{"Parameter": {"Value": "..."}}').
    """
    s = raw.strip()
    if s.startswith("{"):
        try:
            obj = json.loads(s)
        except json.JSONDecodeError as e:
            raise TagRegistryError(f"Unparseable tag value: {raw!r}") from e
        param = obj.get("Parameter") if isinstance(obj, dict) else None
        value = param.get("Value") if isinstance(param, dict) else None
        if value is None:
            raise TagRegistryError(f"Tag value has no Parameter.Value: {raw!r}")
        s = str(value).strip()

    s = _unwrap_quotes(s)
    if not is_valid_tag(s):
        raise TagRegistryError(f"Stored value is not an image tag: {raw!r}")
    return s
