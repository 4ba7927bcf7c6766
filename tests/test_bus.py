"""
Tests for the async message bus.

Tests cover:
- FIFO ordering per direction
- Timeout on an empty queue, without losing later items
- Waiters are served first come, first served
- Queue size accessors
"""

import asyncio

import pytest

from superbot.bus import AsyncQueue, InboundMessage, MessageBus, OutboundMessage


def _inbound(content: str, chat_id: str = "c1") -> InboundMessage:
    return InboundMessage(channel="cli", sender_id="u", chat_id=chat_id, content=content)


class TestAsyncQueue:

    @pytest.mark.asyncio
    async def test_fifo(self):
        q: AsyncQueue[int] = AsyncQueue()
        for i in range(5):
            q.push(i)
        assert [await q.pop(timeout=1) for _ in range(5)] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_pop_times_out_when_empty(self):
        q: AsyncQueue[str] = AsyncQueue()
        with pytest.raises(asyncio.TimeoutError):
            await q.pop(timeout=0.05)

    @pytest.mark.asyncio
    async def test_timed_out_pop_does_not_eat_later_item(self):
        q: AsyncQueue[str] = AsyncQueue()
        with pytest.raises(asyncio.TimeoutError):
            await q.pop(timeout=0.01)
        q.push("late")
        assert q.size == 1
        assert await q.pop(timeout=1) == "late"

    @pytest.mark.asyncio
    async def test_waiters_served_in_arrival_order(self):
        q: AsyncQueue[str] = AsyncQueue()
        first = asyncio.create_task(q.pop(timeout=1))
        await asyncio.sleep(0.01)
        second = asyncio.create_task(q.pop(timeout=1))
        await asyncio.sleep(0.01)

        q.push("a")
        q.push("b")
        assert await first == "a"
        assert await second == "b"

    @pytest.mark.asyncio
    async def test_push_wakes_blocked_pop(self):
        q: AsyncQueue[str] = AsyncQueue()
        waiter = asyncio.create_task(q.pop())
        await asyncio.sleep(0.01)
        assert not waiter.done()
        q.push("x")
        assert await asyncio.wait_for(waiter, timeout=1) == "x"


class TestMessageBus:

    @pytest.mark.asyncio
    async def test_inbound_fifo(self, bus):
        for i in range(3):
            bus.publish_inbound(_inbound(f"m{i}"))
        assert bus.inbound_size == 3

        got = [(await bus.consume_inbound(timeout=1)).content for _ in range(3)]
        assert got == ["m0", "m1", "m2"]
        assert bus.inbound_size == 0

    @pytest.mark.asyncio
    async def test_directions_are_independent(self, bus):
        bus.publish_outbound(OutboundMessage(channel="cli", chat_id="c1", content="out"))
        assert bus.outbound_size == 1
        assert bus.inbound_size == 0

        with pytest.raises(asyncio.TimeoutError):
            await bus.consume_inbound(timeout=0.01)
        assert (await bus.consume_outbound(timeout=1)).content == "out"

    @pytest.mark.asyncio
    async def test_consume_timeout_is_idle_signal(self, bus):
        with pytest.raises(asyncio.TimeoutError):
            await bus.consume_outbound(timeout=0.01)

    @pytest.mark.asyncio
    async def test_start_stop(self):
        bus = MessageBus()
        assert not bus.running
        assert bus.start() is bus
        assert bus.running
        await bus.stop()
        assert not bus.running


def test_session_key():
    msg = InboundMessage(channel="telegram", sender_id="1", chat_id="42", content="hi")
    assert msg.session_key == "telegram:42"
    assert msg.media == []
    assert msg.metadata == {}
