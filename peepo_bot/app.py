"""
Peepo Bot - dispatch loop and process lifecycle.

The loop waits on two things at once: the next inbound update and the
stop signal (SIGINT/SIGTERM). Updates are routed one at a time; handlers
run on the pool so routing never waits for them. Picture delivery runs
on its own APScheduler timer.

On stop: stop receiving, stop the delivery timer, drain handlers and
deliveries for the grace period, then release storage and the transport.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from telegram.error import TelegramError

from .config import BotConfig, load_config
from .content import ContentSource, GalleryImageSource
from .cooldown import CooldownGate
from .errors import StorageError
from .handlers import CommandHandlers
from .router import CommandRouter
from .scheduler import DeliveryScheduler
from .storage import JsonSubscriptionStore, SubscriptionStore
from .subscriptions import SubscriptionManager
from .transport import TelegramTransport
from .worker_pool import HandlerPool

logger = logging.getLogger(__name__)

COOLDOWN_SWEEP_JOB_ID = "cooldown_sweep"


def configure_logging(debug: bool = False) -> None:
    """Configure root logging for the process."""
    logging.basicConfig(
        format="%(asctime)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )
    # httpx logs request URLs, which contain the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


class PeepoBot:
    """
    The running bot. Transport and store must already be started/opened;
    run() releases them on every exit path.

    Args:
        config: Runtime settings
        transport: Started Telegram transport
        store: Opened subscription store
        content: Image source
        gate: Cooldown gate (built from config when omitted)
    """

    def __init__(
        self,
        config: BotConfig,
        transport: TelegramTransport,
        store: SubscriptionStore,
        content: ContentSource,
        gate: Optional[CooldownGate] = None,
    ):
        self.config = config
        self.transport = transport
        self.store = store
        self.content = content
        self.gate = gate or CooldownGate(cooldown_seconds=config.command_cooldown)
        self.subscriptions = SubscriptionManager(store)
        self.handlers = CommandHandlers(transport, self.subscriptions, content)
        self.pool = HandlerPool(config.max_handlers)
        self.router = CommandRouter(self.gate, self.handlers, self.pool)
        self.delivery = DeliveryScheduler(
            self.subscriptions,
            content,
            transport,
            default_interval=config.delivery_interval,
            tick_seconds=config.delivery_tick,
        )
        self._stop_event = asyncio.Event()
        self._signals: list[signal.Signals] = []

    def request_stop(self) -> None:
        """Ask the dispatch loop to stop; safe to call more than once."""
        if not self._stop_event.is_set():
            logger.info("Stopping bot...")
            self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
                self._signals.append(sig)
            except NotImplementedError:
                pass  # Windows

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals.clear()

    async def _sweep_cooldowns(self) -> None:
        # Coroutine job: runs on the event loop, not APScheduler's thread pool
        self.gate.sweep()

    def _build_scheduler(self) -> AsyncIOScheduler:
        scheduler = AsyncIOScheduler()
        self.delivery.start(scheduler)
        scheduler.add_job(
            self._sweep_cooldowns,
            IntervalTrigger(seconds=max(self.gate.retention_seconds, 1.0)),
            id=COOLDOWN_SWEEP_JOB_ID,
            name="Evict idle cooldown entries",
            replace_existing=True,
        )
        return scheduler

    async def run(self, install_signals: bool = True) -> None:
        """Serve updates until stopped or the update feed ends."""
        scheduler = self._build_scheduler()
        scheduler.start()
        if install_signals:
            self._install_signal_handlers()

        logger.info("Bot started, waiting for updates")
        try:
            await self._dispatch()
        finally:
            if install_signals:
                self._remove_signal_handlers()
            await self._shutdown(scheduler)

    async def _dispatch(self) -> None:
        updates = self.transport.updates()
        stop_waiter = asyncio.create_task(self._stop_event.wait())
        next_update: Optional[asyncio.Future] = None
        try:
            while not self._stop_event.is_set():
                next_update = asyncio.ensure_future(updates.__anext__())
                done, _ = await asyncio.wait(
                    {next_update, stop_waiter}, return_when=asyncio.FIRST_COMPLETED
                )

                if next_update not in done:
                    break

                try:
                    update = next_update.result()
                except StopAsyncIteration:
                    logger.info("Update feed ended")
                    break

                try:
                    self.router.route(update)
                except Exception:
                    logger.exception(f"Failed to route update from chat {update.chat_id}")
        finally:
            if next_update is not None and not next_update.done():
                next_update.cancel()
                with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                    await next_update
            stop_waiter.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stop_waiter
            await updates.aclose()

    async def _shutdown(self, scheduler: AsyncIOScheduler) -> None:
        grace = self.config.shutdown_grace
        self.transport.stop_receiving()

        if scheduler.running:
            scheduler.shutdown(wait=False)

        try:
            await self.delivery.stop(grace)
            await self.pool.drain(grace)
        finally:
            try:
                await self.store.close()
            finally:
                try:
                    await self.content.close()
                finally:
                    await self.transport.close()

        logger.info("Bot gracefully stopped!")


async def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    try:
        config = load_config()
    except ValueError as e:
        configure_logging()
        logger.error(f"Configuration error: {e}")
        return 1

    configure_logging(config.debug)

    transport = TelegramTransport(config.token, poll_timeout=config.poll_timeout)
    store = JsonSubscriptionStore(config.subscriptions_file)
    content = GalleryImageSource(config.gallery_url)

    try:
        await store.open()
        await transport.start()
    except (StorageError, TelegramError) as e:
        logger.error(f"Startup failed: {type(e).__name__}: {e}")
        await content.close()
        await store.close()
        await transport.close()
        return 1

    bot = PeepoBot(config, transport, store, content)
    try:
        await bot.run()
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))
