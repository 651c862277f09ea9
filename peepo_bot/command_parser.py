"""
Command Parser for Telegram Bot Commands.

Parses incoming message text into a command token with support for:
- Standard commands: /start, /help, /peepo, /sub, /unsub, /sub_info
- Bot mention suffix: /sub@PeepoBot
- Command parameters: /sub 30
- Case-sensitive matching (/Start is not /start)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Command(Enum):
    """Commands the router knows how to dispatch."""

    START = "start"
    HELP = "help"
    CONTENT_REQUEST = "peepo"
    SUBSCRIBE = "sub"
    UNSUBSCRIBE = "unsub"
    SUBSCRIPTION_INFO = "sub_info"
    UNKNOWN = "unknown"

    @classmethod
    def from_token(cls, token: Optional[str]) -> Command:
        """Map a command token to a Command, UNKNOWN when unrecognized."""
        if token and token != cls.UNKNOWN.value:
            for command in cls:
                if command.value == token:
                    return command
        return cls.UNKNOWN


@dataclass
class CommandResult:
    """Result of parsing a command."""

    command: Optional[str]
    params: str
    is_command: bool
    raw_text: str


def parse_command(text: Optional[str]) -> CommandResult:
    """
    Parse a Telegram message text to extract command and parameters.

    Handles various input formats:
    - /start -> CommandResult(command="start", params="")
    - /sub@PeepoBot -> CommandResult(command="sub", params="")
    - /sub 30 -> CommandResult(command="sub", params="30")
    - /Start -> CommandResult(command="Start")  # routed as unknown
    - Regular text -> CommandResult(command=None, is_command=False)

    Args:
        text: The message text to parse

    Returns:
        CommandResult with parsed command information
    """
    if text is None:
        return CommandResult(command=None, params="", is_command=False, raw_text="")

    raw_text = text
    text = text.strip()

    if not text.startswith("/"):
        return CommandResult(command=None, params="", is_command=False, raw_text=raw_text)

    parts = text.split(None, 1)
    command_part = parts[0][1:]
    params = parts[1].strip() if len(parts) > 1 else ""

    # Handle @botname suffix (e.g., /sub@PeepoBot)
    if "@" in command_part:
        command_part = command_part.split("@")[0]

    if not command_part:
        return CommandResult(command=None, params="", is_command=False, raw_text=raw_text)

    return CommandResult(
        command=command_part,
        params=params,
        is_command=True,
        raw_text=raw_text,
    )
