"""
Update Listener

Long-polls Telegram for poll_answer updates and hands each one to the
answer handler. A failing event is logged and skipped; a failing poll
request is logged and retried after a backoff. Stops on task cancellation.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog
from pydantic import ValidationError

from core.config import settings
from core.exceptions import TelegramAPIError
from schemas.poll_answer import PollAnswerEvent
from services.telegram_client import TelegramClient

logger = structlog.get_logger(__name__)

AnswerHandler = Callable[[PollAnswerEvent], Awaitable[object]]

ALLOWED_UPDATES = ("poll_answer",)


class UpdateListener:
    """Dispatches inbound poll answers to a handler."""

    def __init__(
        self,
        client: TelegramClient,
        handler: AnswerHandler,
        poll_timeout: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.client = client
        self.handler = handler
        self.poll_timeout = settings.TELEGRAM_POLL_TIMEOUT_SECONDS if poll_timeout is None else poll_timeout
        self.retry_delay = settings.SCHEDULER_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.offset: Optional[int] = None

    def start(self) -> asyncio.Task:
        """Run the listener as a background task."""
        task = asyncio.create_task(self.run(), name="update-listener")
        task.add_done_callback(self._on_listener_done)
        return task

    async def run(self) -> None:
        """Poll until cancelled."""
        logger.info("Update listener started")
        try:
            while True:
                await self.poll_once()
        except asyncio.CancelledError:
            logger.info("Update listener stopped")
            raise

    async def poll_once(self) -> int:
        """Fetch one batch of updates and dispatch it. Returns the number of events handled."""
        try:
            updates = await self.client.get_updates(
                offset=self.offset,
                timeout=self.poll_timeout,
                allowed_updates=ALLOWED_UPDATES,
            )
        except TelegramAPIError as e:
            logger.error("Failed to fetch updates", error=str(e), retry_delay_seconds=self.retry_delay)
            await asyncio.sleep(self.retry_delay)
            return 0

        handled = 0
        for update in updates:
            update_id = _update_id(update)
            if isinstance(update_id, int):
                # Acknowledge even if handling fails, so one bad update cannot block the queue
                self.offset = update_id + 1
            if await self.dispatch(update):
                handled += 1
        return handled

    async def dispatch(self, update: dict) -> bool:
        """Handle a single update. Never raises except on cancellation."""
        try:
            event = PollAnswerEvent.from_update(update)
        except ValidationError as e:
            logger.warning("Malformed poll answer update", update_id=_update_id(update), error=str(e))
            return False
        except Exception:
            logger.exception("Unreadable update", update_id=_update_id(update))
            return False
        if event is None:
            return False

        try:
            await self.handler(event)
        except Exception:
            logger.exception(
                "Failed to handle poll answer",
                poll_id=event.poll_id,
                user_id=event.user.id,
            )
            return False
        return True

    @staticmethod
    def _on_listener_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.critical("Update listener terminated; poll answers are no longer recorded", exc_info=exc)


def _update_id(update: object) -> object:
    return update.get("update_id") if isinstance(update, dict) else None
