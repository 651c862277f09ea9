"""
Cooldown Gate for Telegram Bot Commands.

Allows at most one admitted command per chat within the cooldown window.
Denied requests do not move the window. Entries idle for longer than the
retention period are purged by a background sweep.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .models import AdmitResult, CooldownEntry

logger = logging.getLogger(__name__)

# Entries unused for this many cooldown windows are evicted by sweep()
RETENTION_MULTIPLIER = 5


@dataclass
class CooldownGate:
    """
    Per-chat cooldown tracking.

    Args:
        cooldown_seconds: Minimum time between two admitted commands (default: 5)
        retention_multiplier: Idle windows kept before eviction (default: 5)
        clock: Monotonic time source, injectable for tests
    """

    cooldown_seconds: float = 5.0
    retention_multiplier: int = RETENTION_MULTIPLIER
    clock: Callable[[], float] = time.monotonic
    _entries: Dict[int, CooldownEntry] = field(default_factory=dict)

    @property
    def retention_seconds(self) -> float:
        return self.cooldown_seconds * self.retention_multiplier

    def admit(self, chat_id: Optional[int]) -> AdmitResult:
        """
        Check whether a command from chat_id may be served now.

        Runs without awaiting, so decisions for one chat are taken in
        arrival order on the event loop.

        Args:
            chat_id: Telegram chat ID (None is treated as a never-served chat)

        Returns:
            AdmitResult; remaining is rounded to one decimal second on denial
        """
        if chat_id is None:
            return AdmitResult(admitted=True)

        now = self.clock()
        entry = self._entries.get(chat_id)

        if entry is not None:
            elapsed = now - entry.last_served_at
            if elapsed < self.cooldown_seconds:
                remaining = round(self.cooldown_seconds - elapsed, 1)
                return AdmitResult(admitted=False, remaining=remaining)

        self._entries[chat_id] = CooldownEntry(last_served_at=now)
        return AdmitResult(admitted=True)

    def get_remaining(self, chat_id: int) -> float:
        """Seconds until chat_id is admitted again (0 if it would be now)."""
        entry = self._entries.get(chat_id)
        if entry is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self.clock() - entry.last_served_at))

    def sweep(self) -> int:
        """
        Remove entries idle for longer than the retention period.

        Returns:
            Number of evicted entries
        """
        cutoff = self.clock() - self.retention_seconds
        expired = [
            chat_id
            for chat_id, entry in self._entries.items()
            if entry.last_served_at <= cutoff
        ]
        for chat_id in expired:
            del self._entries[chat_id]

        if expired:
            logger.debug(f"Evicted {len(expired)} cooldown entries")
        return len(expired)

    def reset(self, chat_id: Optional[int] = None) -> None:
        """
        Reset cooldowns.

        Args:
            chat_id: Specific chat to reset, or None to reset all
        """
        if chat_id is not None:
            self._entries.pop(chat_id, None)
        else:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
