"""
Telegram Bot API client.

Thin async wrapper over the HTTP Bot API used to post challenge polls and
reports and to long-poll for poll answers. Every failure (transport error,
HTTP error status, or a response with ok=false) raises TelegramAPIError.

https://core.telegram.org/bots/api
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx
import structlog

from core.config import settings
from core.exceptions import TelegramAPIError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PostedPoll:
    """Identifiers of a poll message sent to a chat."""

    poll_id: str
    message_id: int


class TelegramClient:
    """
    Async Telegram Bot API client.

    Usage:
        async with TelegramClient(token) as client:
            posted = await client.send_poll(chat_id, "Done today?", ["Yes", "No"])
    """

    def __init__(
        self,
        token: str,
        api_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not token:
            raise ValueError("Telegram bot token is required")
        self.base_url = f"{(api_url or settings.TELEGRAM_API_URL).rstrip('/')}/bot{token}"
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.TELEGRAM_REQUEST_TIMEOUT_SECONDS
        )

    async def __aenter__(self) -> "TelegramClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def send_poll(
        self,
        chat_id: int,
        question: str,
        options: Sequence[str],
        is_anonymous: bool = False,
        allows_multiple_answers: bool = False,
        thread_id: Optional[int] = None,
    ) -> PostedPoll:
        """Send a regular poll and return its poll id and message id."""
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "question": question,
            "options": [{"text": text} for text in options],
            "is_anonymous": is_anonymous,
            "allows_multiple_answers": allows_multiple_answers,
        }
        if thread_id is not None:
            payload["message_thread_id"] = thread_id

        message = await self._call("sendPoll", payload)
        try:
            return PostedPoll(poll_id=str(message["poll"]["id"]), message_id=int(message["message_id"]))
        except (KeyError, TypeError, ValueError) as e:
            raise TelegramAPIError("sendPoll", f"Unexpected response: {message!r}") from e

    async def send_message(
        self,
        chat_id: int,
        text: str,
        thread_id: Optional[int] = None,
    ) -> int:
        """Send a plain text message and return its message id."""
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if thread_id is not None:
            payload["message_thread_id"] = thread_id

        message = await self._call("sendMessage", payload)
        return int(message.get("message_id", 0))

    async def get_updates(
        self,
        offset: Optional[int] = None,
        timeout: Optional[int] = None,
        allowed_updates: Optional[Sequence[str]] = None,
    ) -> list[dict[str, Any]]:
        """Long-poll for updates (server-side wait of `timeout` seconds)."""
        payload: dict[str, Any] = {
            "timeout": settings.TELEGRAM_POLL_TIMEOUT_SECONDS if timeout is None else timeout,
        }
        if offset is not None:
            payload["offset"] = offset
        if allowed_updates is not None:
            payload["allowed_updates"] = list(allowed_updates)

        updates = await self._call("getUpdates", payload)
        return list(updates or [])

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self.http_client.post(f"{self.base_url}/{method}", json=payload)
        except httpx.HTTPError as e:
            raise TelegramAPIError(method, f"{type(e).__name__}: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400 or not isinstance(data, dict) or not data.get("ok"):
            description = (
                data.get("description", "Unknown error")
                if isinstance(data, dict)
                else f"HTTP {response.status_code}"
            )
            logger.warning(
                "Telegram API call failed",
                method=method,
                status_code=response.status_code,
                description=description,
            )
            raise TelegramAPIError(method, description, status_code=response.status_code)

        return data.get("result")
