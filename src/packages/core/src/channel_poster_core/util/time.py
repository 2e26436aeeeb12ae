"""Time utilities."""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Get current UTC time in ISO format."""
    return utc_now().isoformat().replace("+00:00", "Z")
