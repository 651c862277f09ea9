"""
Peepo Bot - Telegram bot serving random peepo pictures.

This package contains:
- command_parser: Parse Telegram commands into the Command set
- cooldown: Per-chat command cooldown
- router: Cooldown-gated command routing
- subscriptions: Subscription lifecycle over a pluggable store
- scheduler: Periodic picture delivery to subscribed chats
- app: Dispatch loop and process lifecycle
"""

from .command_parser import Command, CommandResult, parse_command
from .cooldown import CooldownGate
from .message_builder import MessageBuilder
from .router import CommandRouter, RouteResult
from .scheduler import DeliveryScheduler
from .subscriptions import SubscriptionManager

__all__ = [
    "Command",
    "CommandResult",
    "parse_command",
    "CooldownGate",
    "MessageBuilder",
    "CommandRouter",
    "RouteResult",
    "DeliveryScheduler",
    "SubscriptionManager",
]
