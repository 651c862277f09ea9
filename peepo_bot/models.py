"""
Data types shared across the bot.

Updates are ephemeral and consumed once; subscriptions are the only
records that outlive a single request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Update:
    """A single inbound message from the transport."""

    chat_id: Optional[int]
    text: Optional[str]
    is_command: bool = False
    command: Optional[str] = None
    params: str = ""
    # False for updates that carry no message at all (edits, callbacks)
    has_message: bool = True


@dataclass
class Subscription:
    """A chat's standing request for periodic images."""

    chat_id: int
    active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    interval_seconds: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "active": self.active,
            "created_at": self.created_at.isoformat(),
            "interval_seconds": self.interval_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Subscription:
        return cls(
            chat_id=int(data["chat_id"]),
            active=bool(data.get("active", True)),
            created_at=datetime.fromisoformat(data["created_at"]),
            interval_seconds=data.get("interval_seconds"),
        )


@dataclass
class CooldownEntry:
    """Last time a chat had a command admitted (monotonic seconds)."""

    last_served_at: float


@dataclass(frozen=True)
class AdmitResult:
    """Outcome of a cooldown check."""

    admitted: bool
    remaining: float = 0.0


@dataclass(frozen=True)
class ContentItem:
    """An image ready to be sent to a chat."""

    image_url: str
    title: Optional[str] = None
