"""
Message Builder for Telegram Bot Messages.

Builds the bot's replies with consistent styling.
Uses plain text to avoid Markdown parsing issues.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .models import ContentItem, Subscription


class MessageBuilder:
    """
    Build formatted messages for the Telegram bot.

    All messages use plain text (no Markdown) so image titles with
    special characters never break parsing.
    """

    WELCOME_MESSAGE = "Welcome to peepobot. Now you can use any available command."

    HELP_MESSAGE = (
        "Command list help:\n"
        "/peepo - Get random picture;\n"
        "/sub - Subscribe to receive pictures periodically;\n"
        "/sub <minutes> - Subscribe with your own delivery interval;\n"
        "/sub_info - Get info about current subscription;\n"
        "/unsub - Drop current subscription;\n"
        "/help - Get this list."
    )

    COMMANDS_ONLY_MESSAGE = "I can only handle listed commands in this chat!"

    UNKNOWN_COMMAND_MESSAGE = "Unknown command"

    CONTENT_ERROR_MESSAGE = "Sorry, I couldn't get a picture right now. Please try again later."

    FAILURE_MESSAGE = "Something went wrong. Please try again later."

    NOT_SUBSCRIBED_MESSAGE = "You are not subscribed."

    UNSUBSCRIBED_MESSAGE = "Subscription dropped. You will no longer receive pictures."

    SUBSCRIBE_USAGE_MESSAGE = "Usage: /sub or /sub <minutes>, e.g. /sub 30"

    TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M UTC"

    @classmethod
    def build_welcome(cls) -> str:
        """Build welcome message."""
        return cls.WELCOME_MESSAGE

    @classmethod
    def build_help(cls) -> str:
        """Build help message."""
        return cls.HELP_MESSAGE

    @classmethod
    def build_cooldown(cls, seconds_remaining: float) -> str:
        """Build cooldown notice with the remaining wait."""
        return f"Command on cooldown for {seconds_remaining:.1f} sec"

    @classmethod
    def build_commands_only(cls) -> str:
        return cls.COMMANDS_ONLY_MESSAGE

    @classmethod
    def build_unknown_command(cls) -> str:
        return cls.UNKNOWN_COMMAND_MESSAGE

    @classmethod
    def build_content_error(cls) -> str:
        return cls.CONTENT_ERROR_MESSAGE

    @classmethod
    def build_failure(cls) -> str:
        return cls.FAILURE_MESSAGE

    @classmethod
    def build_subscribe_usage(cls) -> str:
        return cls.SUBSCRIBE_USAGE_MESSAGE

    @classmethod
    def format_timestamp(cls, value: datetime) -> str:
        return value.strftime(cls.TIMESTAMP_FORMAT)

    @classmethod
    def format_interval(cls, interval_seconds: Optional[int]) -> str:
        if interval_seconds is None:
            return "default schedule"
        minutes = interval_seconds // 60
        return f"every {minutes} min"

    @classmethod
    def build_subscribed(cls, subscription: Subscription) -> str:
        """
        Build confirmation for a newly created subscription.

        Args:
            subscription: The record that was just stored

        Returns:
            Confirmation text
        """
        return (
            "Subscribed! You will receive pictures periodically "
            f"({cls.format_interval(subscription.interval_seconds)})."
        )

    @classmethod
    def build_already_subscribed(cls, subscription: Subscription) -> str:
        return (
            "You are already subscribed since "
            f"{cls.format_timestamp(subscription.created_at)}."
        )

    @classmethod
    def build_unsubscribed(cls) -> str:
        return cls.UNSUBSCRIBED_MESSAGE

    @classmethod
    def build_not_subscribed(cls) -> str:
        return cls.NOT_SUBSCRIBED_MESSAGE

    @classmethod
    def build_subscription_info(cls, subscription: Optional[Subscription]) -> str:
        """
        Build the reply to /sub_info.

        Args:
            subscription: Current record, or None when the chat has none

        Returns:
            Either the not-subscribed text or the active subscription details
        """
        if subscription is None or not subscription.active:
            return cls.NOT_SUBSCRIBED_MESSAGE
        return (
            "Subscription is active.\n"
            f"Created: {cls.format_timestamp(subscription.created_at)}\n"
            f"Delivery: {cls.format_interval(subscription.interval_seconds)}"
        )

    @classmethod
    def build_caption(cls, item: ContentItem) -> Optional[str]:
        """Caption for an image, None when the source gave no title."""
        return item.title or None
