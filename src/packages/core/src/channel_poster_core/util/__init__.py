"""Utility modules."""
from channel_poster_core.util.ids import generate_id
from channel_poster_core.util.time import utc_now, utc_now_iso
from channel_poster_core.util.errors import (
    ChannelPosterError,
    InvalidInput,
    ConfigurationMissing,
    NotFound,
    RowDeliveryFailure,
)

__all__ = [
    "generate_id",
    "utc_now",
    "utc_now_iso",
    "ChannelPosterError",
    "InvalidInput",
    "ConfigurationMissing",
    "NotFound",
    "RowDeliveryFailure",
]
