from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Iterable, Protocol

import httpx
import structlog

from cd_pipeline.core import utc_now_iso
from cd_pipeline.definition import RecipientKind, RecipientSpec

from .models import NotificationEvent

log = structlog.get_logger(__name__)


class Recipient(Protocol):
    name: str

    def deliver(self, event: NotificationEvent) -> None: ...


class OutboxRecipient:
    """
    SMS / email endpoint. The message is appended to {outbox_dir}/{kind}.jsonl;
    an external relay owns the actual transport.
    """

    def __init__(self, *, kind: str, address: str, outbox_dir: Path) -> None:
        self.kind = kind
        self.address = address
        self.path = Path(outbox_dir) / f"{kind}.jsonl"
        self.name = f"{kind}:{address}"
        self._lock = threading.Lock()

    def deliver(self, event: NotificationEvent) -> None:
        record = {
            "to": self.address,
            "channel": self.kind,
            "subject": event.subject(),
            "queued_at_utc": utc_now_iso(),
            "event": event.to_dict(),
        }
        line = json.dumps(record, ensure_ascii=False)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")


class WebhookRecipient:
    """POSTs the event JSON. Single attempt; non-2xx counts as a failed delivery."""

    def __init__(self, url: str, *, client: httpx.Client | None = None) -> None:
        self.url = url
        self.name = f"webhook:{url}"
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(connect=5.0, read=10.0, write=10.0, pool=5.0),
            headers={"User-Agent": "cd-pipeline/0.1"},
        )

    def deliver(self, event: NotificationEvent) -> None:
        resp = self.client.post(self.url, json=event.to_dict())
        resp.raise_for_status()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()


class LogRecipient:
    def __init__(self, name: str = "log") -> None:
        self.name = f"log:{name}"

    def deliver(self, event: NotificationEvent) -> None:
        log.info("notify.event", **event.to_dict())


def recipient_from_spec(spec: RecipientSpec, *, outbox_dir: Path) -> Recipient:
    if spec.kind in (RecipientKind.sms, RecipientKind.email):
        return OutboxRecipient(kind=spec.kind.value, address=spec.address, outbox_dir=outbox_dir)
    if spec.kind == RecipientKind.webhook:
        return WebhookRecipient(spec.address)
    return LogRecipient(spec.address)


def recipients_from_specs(
    specs: Iterable[RecipientSpec], *, outbox_dir: Path
) -> list[Recipient]:
    return [recipient_from_spec(s, outbox_dir=outbox_dir) for s in specs]
