"""
Integration tests for the full update flow.

These tests drive the real router, handlers, subscription manager, store
and dispatch loop, with the Telegram transport and gallery replaced by
in-memory fakes.
"""

import asyncio
import signal
import sys

import pytest

from peepo_bot.app import PeepoBot
from peepo_bot.config import BotConfig
from peepo_bot.cooldown import CooldownGate
from peepo_bot.message_builder import MessageBuilder
from peepo_bot.storage import InMemorySubscriptionStore, JsonSubscriptionStore
from tests.fakes import FakeTransport, command, text_message


# =============================================================================
# HELPERS
# =============================================================================


def make_bot(transport, content, store=None, clock=None, **config):
    config.setdefault("shutdown_grace", 1.0)
    bot_config = BotConfig(token="test_token", **config)
    gate = None
    if clock is not None:
        gate = CooldownGate(cooldown_seconds=bot_config.command_cooldown, clock=clock)
    return PeepoBot(
        bot_config,
        transport,
        store or InMemorySubscriptionStore(),
        content,
        gate=gate,
    )


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


# =============================================================================
# SUBSCRIPTION LIFECYCLE THROUGH THE ROUTER
# =============================================================================


class TestSubscriptionScenario:
    """Test /sub_info, /sub, /unsub as a user would send them."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, transport, content, clock):
        bot = make_bot(transport, content, clock=clock)

        async def send(update):
            bot.router.route(update)
            await bot.pool.join()
            clock.advance(6)

        await send(command(42, "sub_info"))
        await send(command(42, "sub"))
        await send(command(42, "sub_info"))
        await send(command(42, "unsub"))
        await send(command(42, "sub_info"))

        texts = transport.texts_for(42)
        assert texts[0] == MessageBuilder.build_not_subscribed()
        assert texts[1].startswith("Subscribed!")
        assert texts[2].startswith("Subscription is active.")
        assert "Created: " in texts[2]
        assert texts[3] == MessageBuilder.build_unsubscribed()
        assert texts[4] == MessageBuilder.build_not_subscribed()
        assert await bot.store.list_active() == []

    @pytest.mark.asyncio
    async def test_subscribed_chat_receives_deliveries(self, transport, content, clock):
        bot = make_bot(transport, content, clock=clock, delivery_interval=0)

        bot.router.route(command(7, "sub"))
        await bot.pool.join()

        assert await bot.delivery.run_cycle() == 1
        await bot.delivery.join()

        assert len(transport.photos_for(7)) == 1

    @pytest.mark.asyncio
    async def test_cooldown_between_commands(self, transport, content, clock):
        bot = make_bot(transport, content, clock=clock)

        bot.router.route(command(1, "peepo"))
        clock.advance(2)
        bot.router.route(command(1, "peepo"))
        clock.advance(4)
        bot.router.route(command(1, "peepo"))
        await bot.pool.join()

        assert len(transport.photos_for(1)) == 2
        assert transport.texts_for(1) == ["Command on cooldown for 3.0 sec"]


# =============================================================================
# DISPATCH LOOP AND SHUTDOWN
# =============================================================================


class TestDispatchLoop:
    """Tests for PeepoBot.run."""

    @pytest.mark.asyncio
    async def test_processes_feed_and_stops_when_it_ends(self, content):
        transport = FakeTransport(
            feed=[command(1, "start"), text_message(2, "hello"), command(3, "foo")]
        )
        bot = make_bot(transport, content)

        await bot.run(install_signals=False)

        assert transport.texts_for(1) == [MessageBuilder.build_welcome()]
        assert transport.texts_for(2) == [MessageBuilder.build_commands_only()]
        assert transport.texts_for(3) == [MessageBuilder.build_unknown_command()]
        assert transport.receiving is False
        assert transport.closed is True
        assert content.closed is True

    @pytest.mark.asyncio
    async def test_request_stop_ends_idle_loop(self, content):
        transport = FakeTransport(feed=[command(1, "help")], block_after_feed=True)
        bot = make_bot(transport, content)

        task = asyncio.create_task(bot.run(install_signals=False))
        await wait_until(lambda: transport.texts_for(1))

        bot.request_stop()
        bot.request_stop()
        await asyncio.wait_for(task, timeout=2.0)

        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_in_flight_handler_finishes_before_shutdown(self, content):
        """Test that a running /peepo completes inside the grace period."""
        content.delay = 0.1
        transport = FakeTransport(feed=[command(1, "peepo")], block_after_feed=True)
        bot = make_bot(transport, content)

        task = asyncio.create_task(bot.run(install_signals=False))
        await wait_until(lambda: content.calls == 1)

        bot.request_stop()
        await asyncio.wait_for(task, timeout=2.0)

        assert len(transport.photos_for(1)) == 1

    @pytest.mark.asyncio
    async def test_subscriptions_survive_restart(self, tmp_path, content):
        path = tmp_path / "subscriptions.json"

        store = JsonSubscriptionStore(path)
        await store.open()
        transport = FakeTransport(feed=[command(5, "sub", "30")])
        await make_bot(transport, content, store=store).run(install_signals=False)

        reopened = JsonSubscriptionStore(path)
        await reopened.open()
        subscription = await reopened.get(5)

        assert subscription is not None
        assert subscription.interval_seconds == 1800

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="no loop signal handlers on Windows")
    async def test_sigterm_triggers_graceful_stop(self, content):
        transport = FakeTransport(feed=[command(1, "start")], block_after_feed=True)
        bot = make_bot(transport, content)

        task = asyncio.create_task(bot.run())
        await wait_until(lambda: transport.texts_for(1))

        signal.raise_signal(signal.SIGTERM)
        await asyncio.wait_for(task, timeout=2.0)

        assert transport.closed is True
        assert content.closed is True
