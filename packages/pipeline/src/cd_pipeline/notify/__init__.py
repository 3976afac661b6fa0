from .models import DeliveryResult, NotificationEvent
from .recipients import (
    LogRecipient,
    OutboxRecipient,
    Recipient,
    WebhookRecipient,
    recipient_from_spec,
    recipients_from_specs,
)
from .router import NotificationRouter

__all__ = [
    "DeliveryResult",
    "NotificationEvent",
    "Recipient",
    "OutboxRecipient",
    "WebhookRecipient",
    "LogRecipient",
    "recipient_from_spec",
    "recipients_from_specs",
    "NotificationRouter",
]
