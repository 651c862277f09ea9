"""
Command Router.

Decides what to do with one inbound update, in order:
1. no message      -> dropped, nothing sent
2. chat on cooldown -> cooldown notice
3. not a command    -> "commands only" notice
4. known command    -> handler spawned on the pool
5. unknown command  -> "unknown command" notice

route() never awaits; replies and handlers run on the HandlerPool.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable

from .command_parser import Command
from .cooldown import CooldownGate
from .handlers import CommandHandlers
from .message_builder import MessageBuilder
from .models import Update
from .worker_pool import HandlerPool

logger = logging.getLogger(__name__)


class RouteResult(Enum):
    """What route() did with an update."""

    DROPPED = "dropped"
    ON_COOLDOWN = "on_cooldown"
    NOT_A_COMMAND = "not_a_command"
    DISPATCHED = "dispatched"
    UNKNOWN_COMMAND = "unknown_command"


class CommandRouter:
    """
    Cooldown-gated command dispatch.

    Args:
        gate: Per-chat cooldown
        handlers: Command handlers
        pool: Pool the handlers run on
    """

    def __init__(self, gate: CooldownGate, handlers: CommandHandlers, pool: HandlerPool):
        self.gate = gate
        self.handlers = handlers
        self.pool = pool
        self._routes: dict[Command, Callable[[int, str], Awaitable[None]]] = {
            Command.START: handlers.start,
            Command.HELP: handlers.help,
            Command.CONTENT_REQUEST: handlers.send_content,
            Command.SUBSCRIBE: handlers.subscribe,
            Command.UNSUBSCRIBE: handlers.unsubscribe,
            Command.SUBSCRIPTION_INFO: handlers.subscription_info,
        }

    def _reply(self, chat_id: int, text: str) -> None:
        self.pool.spawn(self.handlers.message_response, chat_id, text, name=f"reply-{chat_id}")

    def route(self, update: Update) -> RouteResult:
        """Route one update. Returns what was done with it."""
        if not update.has_message or update.chat_id is None:
            return RouteResult.DROPPED

        chat_id = update.chat_id

        decision = self.gate.admit(chat_id)
        if not decision.admitted:
            logger.info(f"Chat {chat_id} on cooldown for {decision.remaining:.1f}s")
            self._reply(chat_id, MessageBuilder.build_cooldown(decision.remaining))
            return RouteResult.ON_COOLDOWN

        if not update.is_command:
            self._reply(chat_id, MessageBuilder.build_commands_only())
            return RouteResult.NOT_A_COMMAND

        command = Command.from_token(update.command)
        handler = self._routes.get(command)
        if handler is None:
            logger.debug(f"Unknown command /{update.command} from chat {chat_id}")
            self._reply(chat_id, MessageBuilder.build_unknown_command())
            return RouteResult.UNKNOWN_COMMAND

        logger.info(f"Processing command /{command.value} from chat {chat_id}")
        self.pool.spawn(handler, chat_id, update.params, name=f"{command.value}-{chat_id}")
        return RouteResult.DISPATCHED
