"""
Subscription lifecycle.

A chat is either NONE (no record) or ACTIVE. Every write for a chat runs
under that chat's lock so racing /sub and /unsub commands cannot lose
updates or create duplicates. Different chats never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from .models import Subscription, utcnow
from .storage import SubscriptionStore

logger = logging.getLogger(__name__)


class ChatLocks:
    """One asyncio.Lock per chat, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, chat_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        self._users[chat_id] = self._users.get(chat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[chat_id] -= 1
            if self._users[chat_id] == 0:
                del self._users[chat_id]
                del self._locks[chat_id]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass(frozen=True)
class SubscribeResult:
    """Outcome of a subscribe request."""

    subscription: Subscription
    created: bool


class SubscriptionManager:
    """
    State machine over a SubscriptionStore.

    Args:
        store: Backend holding the records
        locks: Per-chat locks, shared with the delivery scheduler
    """

    def __init__(self, store: SubscriptionStore, locks: Optional[ChatLocks] = None):
        self.store = store
        self.locks = locks or ChatLocks()

    async def subscribe(
        self, chat_id: int, interval_seconds: Optional[int] = None
    ) -> SubscribeResult:
        """
        NONE -> ACTIVE creates a fresh record; ACTIVE -> ACTIVE keeps the
        existing one untouched and reports created=False.

        Raises:
            StorageError: If the store fails; nothing is applied
        """
        async with self.locks.hold(chat_id):
            existing = await self.store.get(chat_id)
            if existing is not None and existing.active:
                logger.info(f"Chat {chat_id} already subscribed since {existing.created_at}")
                return SubscribeResult(subscription=existing, created=False)

            subscription = Subscription(
                chat_id=chat_id,
                active=True,
                created_at=utcnow(),
                interval_seconds=interval_seconds,
            )
            await self.store.put(subscription)
            logger.info(f"Chat {chat_id} subscribed")
            return SubscribeResult(subscription=subscription, created=True)

    async def unsubscribe(self, chat_id: int) -> bool:
        """
        ACTIVE -> NONE. Unsubscribing a chat without a record is a no-op.

        Returns:
            True if a subscription was removed
        """
        async with self.locks.hold(chat_id):
            removed = await self.store.delete(chat_id)
        if removed:
            logger.info(f"Chat {chat_id} unsubscribed")
        return removed

    async def get(self, chat_id: int) -> Optional[Subscription]:
        """Current ACTIVE record, or None. Reads take no lock."""
        subscription = await self.store.get(chat_id)
        if subscription is None or not subscription.active:
            return None
        return subscription

    async def list_active(self) -> list[Subscription]:
        return await self.store.list_active()

    def hold(self, chat_id: int):
        """Lock a chat's record, e.g. around a check-then-send."""
        return self.locks.hold(chat_id)
