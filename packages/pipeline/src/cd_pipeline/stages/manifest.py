from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping

from cd_pipeline.core import ManifestRenderError, atomic_write_text

RENDERED_MANIFEST = "rendered-manifest.yml"

# $VAR or ${VAR}; anything else containing '$' is left untouched
_VAR = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def render_text(template: str, env: Mapping[str, str]) -> str:
    """
    envsubst-style substitution, except that an unset variable is an error
    instead of an empty string.
    """
    missing: set[str] = set()

    def _sub(m: re.Match[str]) -> str:
        name = m.group(1) or m.group(2)
        if name not in env:
            missing.add(name)
            return m.group(0)
        return env[name]

    out = _VAR.sub(_sub, template)
    if missing:
        raise ManifestRenderError(
            f"Manifest references unset variables: {sorted(missing)}"
        )
    return out


def render_manifest(
    workspace: Path,
    template_rel: str,
    env: Mapping[str, str],
    *,
    out_name: str = RENDERED_MANIFEST,
) -> Path:
    src = Path(workspace) / template_rel
    if not src.is_file():
        raise ManifestRenderError(f"Deployment manifest not found: {template_rel}")
    out = Path(workspace) / out_name
    atomic_write_text(out, render_text(src.read_text(encoding="utf-8"), env))
    return out
