"""Telegram Bot API transport."""
from dataclasses import dataclass
from typing import Protocol, Union

import httpx
import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class Delivered:
    """The endpoint accepted the message."""

    message_id: int | None = None


@dataclass(frozen=True)
class RateLimited:
    """The endpoint asked us to wait ``retry_after`` seconds and try again."""

    retry_after: float


@dataclass(frozen=True)
class DeliveryFailed:
    """Any other failure, with a human readable description."""

    description: str


DeliveryOutcome = Union[Delivered, RateLimited, DeliveryFailed]


class Sender(Protocol):
    """Anything that can post one photo with a caption."""

    async def send_photo(self, destination: str, media_ref: str, caption: str) -> DeliveryOutcome:
        ...


class TelegramSender:
    """Posts photos through ``sendPhoto`` on the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://api.telegram.org",
        timeout: float = 30.0,
        default_retry_after: float = 30,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = f"{api_url.rstrip('/')}/bot{bot_token}/sendPhoto"
        self._timeout = timeout
        self._default_retry_after = default_retry_after
        self._client = client

    async def send_photo(self, destination: str, media_ref: str, caption: str) -> DeliveryOutcome:
        payload = {
            "chat_id": destination,
            "photo": media_ref,
            "caption": caption,
            "parse_mode": "HTML",
        }
        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=payload, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload)
        except httpx.TimeoutException:
            return DeliveryFailed(f"Request timed out after {self._timeout:g}s")
        except httpx.HTTPError as e:
            return DeliveryFailed(f"Request failed: {e}")

        return self._parse(response)

    def _parse(self, response: httpx.Response) -> DeliveryOutcome:
        try:
            data = response.json()
        except ValueError:
            logger.warning("telegram_non_json_response", status=response.status_code)
            return DeliveryFailed(f"Telegram API error: HTTP {response.status_code}")

        if data.get("ok"):
            return Delivered(message_id=(data.get("result") or {}).get("message_id"))
        if data.get("error_code") == 429 or response.status_code == 429:
            retry_after = (data.get("parameters") or {}).get("retry_after")
            if retry_after is None:
                retry_after = self._default_retry_after
            return RateLimited(retry_after=retry_after)
        return DeliveryFailed(data.get("description") or "Telegram Error")
