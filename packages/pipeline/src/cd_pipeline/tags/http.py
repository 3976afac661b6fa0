from __future__ import annotations

from urllib.parse import quote

import httpx
import structlog
from cd_pipeline.core import PermissionDeniedError, TagNotFoundError, TagRegistryError

log = structlog.get_logger(__name__)


def make_http_client(
    *,
    base_url: str,
    token: str | None = None,
    timeout: httpx.Timeout | None = None,
    user_agent: str = "cd-pipeline/0.1",
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    t = timeout or httpx.Timeout(connect=5.0, read=15.0, write=15.0, pool=5.0)
    headers = {"User-Agent": user_agent}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.Client(
        base_url=base_url,
        timeout=t,
        headers=headers,
        transport=transport,
    )


def _body_snippet(resp: httpx.Response, *, limit: int = 200) -> str | None:
    s = (resp.text or "")[:limit].strip()
    return s or None


class HttpTagRegistry:
    """
    Parameter-store style HTTP backend.

      GET {base}/parameters/{key}  -> {"Parameter": {"Name": key, "Value": tag}}
      PUT {base}/parameters/{key}  <- {"Value": tag, "Type": "String", "Overwrite": bool}

    Single attempt per call: no retries.
    """

    def __init__(self, client: httpx.Client, *, owns_client: bool = False) -> None:
        self.client = client
        self.owns_client = owns_client

    @classmethod
    def from_url(
        cls,
        base_url: str,
        *,
        token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> "HttpTagRegistry":
        return cls(
            make_http_client(base_url=base_url, token=token, transport=transport),
            owns_client=True,
        )

    def close(self) -> None:
        if self.owns_client:
            self.client.close()

    def _url(self, key: str) -> str:
        return f"/parameters/{quote(key, safe='')}"

    def _request(self, method: str, key: str, **kw: object) -> httpx.Response:
        try:
            resp = self.client.request(method, self._url(key), **kw)  # type: ignore[arg-type]
        except httpx.HTTPError as e:
            raise TagRegistryError(f"Tag store unreachable ({method} {key}): {e}") from e

        if resp.status_code == 404 and method == "GET":
            raise TagNotFoundError(key)
        if resp.status_code in (401, 403):
            raise PermissionDeniedError(
                f"Tag store denied {method} {key}: HTTP {resp.status_code}"
            )
        if resp.status_code >= 400:
            msg = f"Tag store returned HTTP {resp.status_code} for {method} {key}"
            snippet = _body_snippet(resp)
            if snippet:
                msg += f" (body: {snippet})"
            raise TagRegistryError(msg)
        return resp

    def put(self, key: str, value: str, *, overwrite: bool = True) -> None:
        self._request(
            "PUT",
            key,
            json={"Value": value, "Type": "String", "Overwrite": overwrite},
        )
        log.debug("tags.http.put", key=key)

    def get(self, key: str) -> str:
        resp = self._request("GET", key)
        text = resp.text or ""
        if not text.lstrip().startswith("{"):
            # raw tag body; quoting is stripped by normalize_tag_value
            return text
        try:
            body = resp.json()
        except ValueError as e:
            raise TagRegistryError(f"Malformed tag store response for {key}") from e
        param = body.get("Parameter") if isinstance(body, dict) else None
        if not isinstance(param, dict) or "Value" not in param:
            raise TagRegistryError(f"Malformed tag store response for {key}")
        return str(param["Value"])
