"""
Unit tests for router module.

Tests the routing order: drop, cooldown, commands-only, dispatch, unknown.
"""

from unittest.mock import MagicMock

import pytest

from peepo_bot.cooldown import CooldownGate
from peepo_bot.handlers import CommandHandlers
from peepo_bot.message_builder import MessageBuilder
from peepo_bot.models import Update
from peepo_bot.router import CommandRouter, RouteResult
from peepo_bot.storage import InMemorySubscriptionStore
from peepo_bot.subscriptions import SubscriptionManager
from peepo_bot.transport import to_update
from peepo_bot.worker_pool import HandlerPool
from tests.fakes import command, text_message


def sticker_message(chat_id):
    chat = MagicMock(id=chat_id)
    message = MagicMock(text=None, chat=chat)
    return MagicMock(update_id=1, message=message, effective_chat=chat)


@pytest.fixture
def store():
    return InMemorySubscriptionStore()


@pytest.fixture
def gate(clock):
    return CooldownGate(cooldown_seconds=5.0, clock=clock)


@pytest.fixture
def pool():
    return HandlerPool(max_concurrency=4)


@pytest.fixture
def router(gate, transport, content, store, pool):
    handlers = CommandHandlers(transport, SubscriptionManager(store), content)
    return CommandRouter(gate, handlers, pool)


class TestDropped:
    """Tests for updates without a message."""

    @pytest.mark.asyncio
    async def test_no_message_dropped_without_reply(self, router, transport, pool, gate):
        result = router.route(Update(chat_id=1, text=None, has_message=False))
        await pool.join()

        assert result == RouteResult.DROPPED
        assert transport.messages == []
        assert len(gate) == 0

    @pytest.mark.asyncio
    async def test_no_chat_dropped(self, router, transport, pool):
        result = router.route(Update(chat_id=None, text="/start", is_command=True, command="start"))
        await pool.join()

        assert result == RouteResult.DROPPED
        assert transport.messages == []


class TestCooldown:
    """Tests for the cooldown gate in front of every handler."""

    @pytest.mark.asyncio
    async def test_second_request_inside_window(self, router, transport, pool, content, clock):
        """Test /peepo at t=0, t=2 and t=6 with a 5 second cooldown."""
        assert router.route(command(1, "peepo")) == RouteResult.DISPATCHED
        clock.advance(2)
        assert router.route(command(1, "peepo")) == RouteResult.ON_COOLDOWN
        clock.advance(4)
        assert router.route(command(1, "peepo")) == RouteResult.DISPATCHED
        await pool.join()

        assert content.calls == 2
        assert len(transport.photos_for(1)) == 2
        assert transport.texts_for(1) == ["Command on cooldown for 3.0 sec"]

    @pytest.mark.asyncio
    async def test_cooldown_applies_to_any_text(self, router, transport, pool, clock):
        router.route(command(1, "help"))
        clock.advance(1)
        assert router.route(text_message(1, "hello")) == RouteResult.ON_COOLDOWN
        await pool.join()

        assert transport.texts_for(1)[-1] == "Command on cooldown for 4.0 sec"

    @pytest.mark.asyncio
    async def test_chats_have_separate_windows(self, router, pool):
        assert router.route(command(1, "help")) == RouteResult.DISPATCHED
        assert router.route(command(2, "help")) == RouteResult.DISPATCHED
        await pool.join()


class TestDispatch:
    """Tests for command dispatch."""

    @pytest.mark.asyncio
    async def test_plain_text_gets_commands_only_notice(self, router, transport, pool, store):
        """Test that free text mutates nothing and gets the notice."""
        result = router.route(text_message(1, "hello"))
        await pool.join()

        assert result == RouteResult.NOT_A_COMMAND
        assert transport.texts_for(1) == [MessageBuilder.build_commands_only()]
        assert await store.list_active() == []

    @pytest.mark.asyncio
    async def test_sticker_gets_commands_only_notice(self, router, transport, pool):
        """Test that a message without text is answered, not dropped."""
        result = router.route(to_update(sticker_message(1)))
        await pool.join()

        assert result == RouteResult.NOT_A_COMMAND
        assert transport.texts_for(1) == [MessageBuilder.build_commands_only()]

    @pytest.mark.asyncio
    async def test_unknown_command(self, router, transport, pool):
        result = router.route(command(1, "foo"))
        await pool.join()

        assert result == RouteResult.UNKNOWN_COMMAND
        assert transport.texts_for(1) == [MessageBuilder.build_unknown_command()]

    @pytest.mark.asyncio
    async def test_commands_are_case_sensitive(self, router, transport, pool):
        result = router.route(command(1, "PEEPO"))
        await pool.join()

        assert result == RouteResult.UNKNOWN_COMMAND
        assert transport.photos == []

    @pytest.mark.asyncio
    async def test_subscribe_passes_params(self, router, pool, store):
        router.route(command(1, "sub", "30"))
        await pool.join()

        subscription = await store.get(1)
        assert subscription.interval_seconds == 1800

    @pytest.mark.asyncio
    async def test_route_does_not_wait_for_handler(self, router, pool, content):
        """Test that a slow handler does not hold up routing of other chats."""
        content.delay = 0.05
        router.route(command(1, "peepo"))

        assert len(pool) == 1
        assert router.route(command(2, "help")) == RouteResult.DISPATCHED
        await pool.join()
