from __future__ import annotations

from typing import Iterable, Sequence

import structlog

from cd_pipeline_contracts import validate_notification_event_dict

from .models import DeliveryResult, NotificationEvent
from .recipients import Recipient

log = structlog.get_logger(__name__)


class NotificationRouter:
    """
    Fixed fan-out of stage outcomes to every registered recipient.

    One dispatch attempt per recipient per event. Delivery failures are
    logged and reported back, never raised.
    """

    def __init__(
        self,
        recipients: Sequence[Recipient] = (),
        *,
        monitored: Iterable[str] | None = None,
    ) -> None:
        self.recipients = list(recipients)
        # None: every stage handed to the router is monitored
        self.monitored = frozenset(monitored) if monitored is not None else None

    def close(self) -> None:
        for r in self.recipients:
            close = getattr(r, "close", None)
            if close is not None:
                close()

    def is_monitored(self, stage: str) -> bool:
        return self.monitored is None or stage in self.monitored

    def notify(self, event: NotificationEvent) -> list[DeliveryResult]:
        if not self.is_monitored(event.stage):
            log.debug("notify.skipped", stage=event.stage)
            return []

        validate_notification_event_dict(event.to_dict())

        results: list[DeliveryResult] = []
        for r in self.recipients:
            try:
                r.deliver(event)
            except Exception as e:
                log.warning(
                    "notify.delivery_failed",
                    recipient=r.name,
                    stage=event.stage,
                    outcome=event.outcome,
                    error=str(e),
                    exc_type=type(e).__name__,
                )
                results.append(DeliveryResult(recipient=r.name, delivered=False, error=str(e)))
                continue
            results.append(DeliveryResult(recipient=r.name, delivered=True))

        log.info(
            "notify.dispatch",
            stage=event.stage,
            outcome=event.outcome,
            recipients=len(self.recipients),
            delivered=sum(1 for x in results if x.delivered),
        )
        return results
