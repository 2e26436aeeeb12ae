"""Client configuration endpoint."""
from fastapi import APIRouter

from channel_poster_core.delivery import REQUIRED_FIELDS
from channel_poster_core.settings import get_settings

router = APIRouter(tags=["config"])


@router.get("/config")
def get_config():
    """Report which default credentials are configured, never their values."""
    settings = get_settings()
    return {
        "bot_token_configured": bool(settings.bot_token),
        "channel_id_configured": bool(settings.channel_id),
        "required_fields": list(REQUIRED_FIELDS),
        "message_delay_seconds": settings.message_delay_seconds,
    }
