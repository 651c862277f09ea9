"""
Delivery Scheduler.

An APScheduler interval job ticks run_cycle(). Each cycle looks at every
active subscription and starts one delivery task per chat that is due.
A chat never has more than one delivery in flight, and one chat's failure
never touches another chat's delivery.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .content import ContentSource
from .errors import ContentNotFoundError, StorageError
from .handlers import Sender
from .message_builder import MessageBuilder
from .models import Subscription
from .subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)

DELIVERY_JOB_ID = "delivery_cycle"
DEFAULT_TICK_SECONDS = 60


class DeliveryScheduler:
    """
    Recurring picture delivery to subscribed chats.

    A subscription is due once its own interval (or default_interval when
    it has none) has passed since the last delivery attempt. The first
    attempt for a chat comes one interval after the scheduler first sees it.

    Args:
        subscriptions: Subscription lifecycle, whose chat locks guard each send
        content: Image source
        transport: Outbound send capability
        default_interval: Seconds between deliveries for subscriptions without their own
        tick_seconds: How often run_cycle() is triggered
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        subscriptions: SubscriptionManager,
        content: ContentSource,
        transport: Sender,
        default_interval: float = 3600,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.subscriptions = subscriptions
        self.content = content
        self.transport = transport
        self.default_interval = default_interval
        self.tick_seconds = tick_seconds
        self._clock = clock
        self._in_flight: dict[int, asyncio.Task] = {}
        # Keyed by (chat_id, created_at) so a re-subscription starts a fresh schedule
        self._last_attempt: dict[tuple[int, datetime], float] = {}
        self._stopping = False
        self.delivered = 0
        self.failed = 0

    @property
    def in_flight(self) -> set[int]:
        return set(self._in_flight)

    def start(self, scheduler: AsyncIOScheduler) -> None:
        """Register the delivery tick on an APScheduler instance."""
        scheduler.add_job(
            self.run_cycle,
            IntervalTrigger(seconds=self.tick_seconds),
            id=DELIVERY_JOB_ID,
            name="Deliver pictures to subscribed chats",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info(
            f"Delivery scheduled: tick every {self.tick_seconds}s, "
            f"default interval {self.default_interval}s"
        )

    @staticmethod
    def _schedule_key(subscription: Subscription) -> tuple[int, datetime]:
        return subscription.chat_id, subscription.created_at

    def is_due(self, subscription: Subscription, now: float) -> bool:
        interval = subscription.interval_seconds or self.default_interval
        key = self._schedule_key(subscription)
        last = self._last_attempt.get(key)
        if last is None:
            self._last_attempt[key] = now
            return interval <= 0
        return now - last >= interval

    async def run_cycle(self) -> int:
        """
        Start deliveries for every due chat without one already in flight.

        Returns:
            Number of deliveries started
        """
        if self._stopping:
            return 0

        try:
            active = await self.subscriptions.list_active()
        except StorageError as e:
            logger.error(f"Skipping delivery cycle, cannot list subscriptions: {e}")
            return 0

        # stop() may have run while the store was being read
        if self._stopping:
            return 0

        now = self._clock()
        active_keys = {self._schedule_key(sub) for sub in active}
        for key in list(self._last_attempt):
            if key not in active_keys:
                del self._last_attempt[key]

        started = 0
        for subscription in active:
            chat_id = subscription.chat_id
            if chat_id in self._in_flight:
                logger.debug(f"Delivery to {chat_id} still in flight, skipping")
                continue
            if not self.is_due(subscription, now):
                continue

            self._last_attempt[self._schedule_key(subscription)] = now
            task = asyncio.create_task(self._deliver(chat_id), name=f"deliver-{chat_id}")
            self._in_flight[chat_id] = task
            task.add_done_callback(lambda t, cid=chat_id: self._on_done(cid, t))
            started += 1

        if started:
            logger.info(f"Delivery cycle started {started} of {len(active)} subscription(s)")
        return started

    def _on_done(self, chat_id: int, task: asyncio.Task) -> None:
        if self._in_flight.get(chat_id) is task:
            del self._in_flight[chat_id]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.failed += 1
            logger.error(f"Delivery to {chat_id} crashed: {error}", exc_info=error)

    async def _deliver(self, chat_id: int) -> bool:
        try:
            item = await self.content.fetch()
        except ContentNotFoundError as e:
            self.failed += 1
            logger.warning(f"Skipping delivery to {chat_id}, no picture: {e}")
            return False

        # Re-check under the chat lock so an /unsub racing this delivery wins
        async with self.subscriptions.hold(chat_id):
            try:
                current = await self.subscriptions.get(chat_id)
            except StorageError as e:
                self.failed += 1
                logger.error(f"Skipping delivery to {chat_id}, cannot read subscription: {e}")
                return False

            if current is None:
                logger.info(f"Chat {chat_id} unsubscribed before delivery, skipping")
                return False

            sent = await self.transport.send_photo(
                chat_id, item.image_url, MessageBuilder.build_caption(item)
            )

        if sent:
            self.delivered += 1
        else:
            self.failed += 1
        return sent

    async def join(self) -> None:
        """Wait for every in-flight delivery to finish."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def stop(self, grace: Optional[float] = None) -> int:
        """
        Stop starting deliveries and wait up to grace seconds for in-flight ones.

        Returns:
            Number of deliveries cancelled after the grace period
        """
        self._stopping = True
        pending = list(self._in_flight.values())
        if not pending:
            return 0

        _, still_running = await asyncio.wait(pending, timeout=grace)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(f"Cancelled {len(still_running)} delivery(ies) after {grace}s grace")
        return len(still_running)
