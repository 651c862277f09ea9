"""
Telegram transport.

Wraps python-telegram-bot's Bot for the two things the bot needs:
a long-poll feed of inbound updates and best-effort outbound sends.
Send failures are logged and reported as False, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, AsyncIterator, Optional

from telegram import Bot
from telegram.error import (
    BadRequest,
    Forbidden,
    NetworkError,
    RetryAfter,
    TelegramError,
    TimedOut,
)
from telegram.request import HTTPXRequest

from .command_parser import parse_command
from .models import Update

logger = logging.getLogger(__name__)

# Telegram API timeouts (seconds)
CONNECT_TIMEOUT = 30.0
READ_TIMEOUT = 30.0
WRITE_TIMEOUT = 30.0
POOL_TIMEOUT = 10.0

# Send retries
MAX_RETRIES = 3
RETRY_DELAY = 2.0

# Polling backoff after transport errors
POLL_BACKOFF_INITIAL = 1.0
POLL_BACKOFF_MAX = 30.0


def to_update(tg_update: Any) -> Update:
    """
    Convert a telegram.Update into the bot's Update.

    Updates without a message (edits, callbacks, ...) come through with
    has_message=False so the router drops them. Messages without text
    (stickers, photos) keep has_message=True and text=None.
    """
    message = getattr(tg_update, "message", None)
    chat = getattr(tg_update, "effective_chat", None)
    chat_id = chat.id if chat is not None else None

    if message is None:
        return Update(chat_id=chat_id, text=None, has_message=False)

    text = message.text
    parsed = parse_command(text)
    return Update(
        chat_id=message.chat.id,
        text=text,
        is_command=parsed.is_command,
        command=parsed.command,
        params=parsed.params,
    )


def _retry_after_seconds(error: RetryAfter) -> float:
    delay = error.retry_after
    if isinstance(delay, timedelta):
        return delay.total_seconds()
    return float(delay)


class TelegramTransport:
    """
    Long-polling Telegram client.

    Args:
        token: Bot token
        poll_timeout: Long-poll timeout passed to getUpdates
        bot: Pre-built Bot, mainly for tests
    """

    def __init__(self, token: str, poll_timeout: int = 60, bot: Optional[Bot] = None):
        self.poll_timeout = poll_timeout
        self.bot = bot or Bot(
            token=token,
            request=HTTPXRequest(
                connect_timeout=CONNECT_TIMEOUT,
                read_timeout=READ_TIMEOUT,
                write_timeout=WRITE_TIMEOUT,
                pool_timeout=POOL_TIMEOUT,
            ),
            get_updates_request=HTTPXRequest(
                connect_timeout=CONNECT_TIMEOUT,
                read_timeout=READ_TIMEOUT + poll_timeout,
            ),
        )
        self._offset: Optional[int] = None
        self._receiving = False

    async def start(self) -> None:
        """
        Authenticate and prepare for polling.

        Raises:
            TelegramError: If the token is rejected or Telegram is unreachable
        """
        await self.bot.initialize()
        logger.info(f"Authorized on account @{self.bot.username}")
        # A webhook blocks getUpdates with 409 Conflict
        await self.bot.delete_webhook(drop_pending_updates=False)
        self._receiving = True

    def stop_receiving(self) -> None:
        self._receiving = False

    async def close(self) -> None:
        self._receiving = False
        await self.bot.shutdown()
        logger.info("Telegram transport closed")

    async def updates(self) -> AsyncIterator[Update]:
        """
        Yield inbound updates until stop_receiving() is called.

        Transport errors are logged and retried with exponential backoff.
        """
        backoff = POLL_BACKOFF_INITIAL

        while self._receiving:
            try:
                batch = await self.bot.get_updates(
                    offset=self._offset,
                    timeout=self.poll_timeout,
                    allowed_updates=["message"],
                )
            except RetryAfter as e:
                delay = _retry_after_seconds(e)
                logger.warning(f"getUpdates rate limited, retrying in {delay:.0f}s")
                await asyncio.sleep(delay)
                continue
            except TelegramError as e:
                logger.warning(f"getUpdates failed: {e}; retrying in {backoff:.0f}s")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, POLL_BACKOFF_MAX)
                continue

            backoff = POLL_BACKOFF_INITIAL
            for tg_update in batch:
                self._offset = tg_update.update_id + 1
                yield to_update(tg_update)

    async def _send_with_retry(self, method: str, chat_id: int, **kwargs: Any) -> bool:
        """
        Call a Bot send method with retries on network errors.

        Returns:
            True if sent, False on failure (blocked bot, bad request, exhausted retries)
        """
        last_error: Optional[Exception] = None
        send = getattr(self.bot, method)

        for attempt in range(MAX_RETRIES):
            try:
                await send(chat_id=chat_id, **kwargs)
                return True
            except Forbidden:
                logger.info(f"Chat {chat_id} has blocked the bot")
                return False
            except RetryAfter as e:
                last_error = e
                if attempt < MAX_RETRIES - 1:
                    await asyncio.sleep(_retry_after_seconds(e))
            except BadRequest as e:
                # BadRequest subclasses NetworkError, so it must be caught first
                logger.error(f"{method} to {chat_id} rejected: {e}")
                return False
            except (TimedOut, NetworkError) as e:
                last_error = e
                if attempt < MAX_RETRIES - 1:
                    logger.warning(f"{method} to {chat_id} timed out, retry {attempt + 1}...")
                    await asyncio.sleep(RETRY_DELAY)
            except TelegramError as e:
                logger.error(f"{method} to {chat_id} failed: {e}")
                return False

        logger.error(f"{method} to {chat_id} failed after {MAX_RETRIES} attempts: {last_error}")
        return False

    async def send_message(self, chat_id: int, text: str) -> bool:
        """Send a plain text message."""
        return await self._send_with_retry("send_message", chat_id, text=text)

    async def send_photo(self, chat_id: int, photo_url: str, caption: Optional[str] = None) -> bool:
        """Send a photo by URL."""
        return await self._send_with_retry(
            "send_photo", chat_id, photo=photo_url, caption=caption
        )
