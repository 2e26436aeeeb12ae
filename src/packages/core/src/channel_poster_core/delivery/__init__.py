"""Outbound message rendering and delivery."""
from channel_poster_core.delivery.template import (
    REQUIRED_FIELDS,
    IMAGE_FIELD,
    render_caption,
    missing_fields,
)
from channel_poster_core.delivery.transport import (
    Delivered,
    RateLimited,
    DeliveryFailed,
    DeliveryOutcome,
    Sender,
    TelegramSender,
)

__all__ = [
    "REQUIRED_FIELDS",
    "IMAGE_FIELD",
    "render_caption",
    "missing_fields",
    "Delivered",
    "RateLimited",
    "DeliveryFailed",
    "DeliveryOutcome",
    "Sender",
    "TelegramSender",
]
