"""
Command handlers.

Each handler receives only the chat ID (and command parameters where it
uses them) and replies through the transport. Handlers never raise for
domain failures: storage errors become a generic failure notice and
content errors an "image unavailable" notice.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .content import ContentSource
from .errors import ContentNotFoundError, StorageError
from .message_builder import MessageBuilder
from .subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)

# Bounds for /sub <minutes>
MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 7 * 24 * 60


class Sender(Protocol):
    async def send_message(self, chat_id: int, text: str) -> bool: ...

    async def send_photo(
        self, chat_id: int, photo_url: str, caption: Optional[str] = None
    ) -> bool: ...


def parse_interval(params: str) -> Optional[int]:
    """
    Parse the optional /sub argument (minutes) into seconds.

    Returns:
        Seconds, or None when no argument was given

    Raises:
        ValueError: If the argument is not a whole number of minutes in range
    """
    params = params.strip()
    if not params:
        return None

    minutes = int(params)
    if not MIN_INTERVAL_MINUTES <= minutes <= MAX_INTERVAL_MINUTES:
        raise ValueError(f"interval out of range: {minutes}")
    return minutes * 60


class CommandHandlers:
    """
    Replies for every routed command.

    Args:
        transport: Outbound send capability
        subscriptions: Subscription lifecycle
        content: Image source for /peepo
    """

    def __init__(
        self,
        transport: Sender,
        subscriptions: SubscriptionManager,
        content: ContentSource,
    ):
        self.transport = transport
        self.subscriptions = subscriptions
        self.content = content

    async def message_response(self, chat_id: int, text: str) -> None:
        """Send a plain reply; failures are logged by the transport."""
        await self.transport.send_message(chat_id, text)

    async def start(self, chat_id: int, params: str = "") -> None:
        """Handle the /start command."""
        await self.message_response(chat_id, MessageBuilder.build_welcome())
        logger.info(f"New chat started bot: {chat_id}")

    async def help(self, chat_id: int, params: str = "") -> None:
        """Handle the /help command."""
        await self.message_response(chat_id, MessageBuilder.build_help())

    async def send_content(self, chat_id: int, params: str = "") -> None:
        """Handle the /peepo command - send one random picture."""
        try:
            item = await self.content.fetch()
        except ContentNotFoundError as e:
            logger.error(f"Error fetching picture for chat {chat_id}: {e}")
            await self.message_response(chat_id, MessageBuilder.build_content_error())
            return

        sent = await self.transport.send_photo(
            chat_id, item.image_url, MessageBuilder.build_caption(item)
        )
        if sent:
            logger.info(f"Sent picture to chat {chat_id}: {item.image_url}")

    async def subscribe(self, chat_id: int, params: str = "") -> None:
        """Handle the /sub command."""
        try:
            interval_seconds = parse_interval(params)
        except ValueError:
            await self.message_response(chat_id, MessageBuilder.build_subscribe_usage())
            return

        try:
            result = await self.subscriptions.subscribe(chat_id, interval_seconds)
        except StorageError as e:
            logger.error(f"Failed to subscribe chat {chat_id}: {e}")
            await self.message_response(chat_id, MessageBuilder.build_failure())
            return

        if result.created:
            text = MessageBuilder.build_subscribed(result.subscription)
        else:
            text = MessageBuilder.build_already_subscribed(result.subscription)
        await self.message_response(chat_id, text)

    async def unsubscribe(self, chat_id: int, params: str = "") -> None:
        """Handle the /unsub command."""
        try:
            removed = await self.subscriptions.unsubscribe(chat_id)
        except StorageError as e:
            logger.error(f"Failed to unsubscribe chat {chat_id}: {e}")
            await self.message_response(chat_id, MessageBuilder.build_failure())
            return

        if removed:
            await self.message_response(chat_id, MessageBuilder.build_unsubscribed())
        else:
            await self.message_response(chat_id, MessageBuilder.build_not_subscribed())

    async def subscription_info(self, chat_id: int, params: str = "") -> None:
        """Handle the /sub_info command."""
        try:
            subscription = await self.subscriptions.get(chat_id)
        except StorageError as e:
            logger.error(f"Failed to read subscription for chat {chat_id}: {e}")
            await self.message_response(chat_id, MessageBuilder.build_failure())
            return

        await self.message_response(
            chat_id, MessageBuilder.build_subscription_info(subscription)
        )
