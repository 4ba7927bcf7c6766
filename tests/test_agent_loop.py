"""
Tests for AgentLoop.

Tests cover:
- Plain replies and session persistence (two entries per turn)
- Tool iteration: ordering, one result per call, final answer
- Iteration cap placeholders
- System-channel routing back to the origin conversation
- The run loop: publishing replies and surviving failures
- process_direct and the reset command
- Overlapping turns keep their own message/spawn target
- Replaying a message grows the session by two entries per turn
"""

import asyncio

import pytest

from superbot.agent.loop import BACKGROUND_DONE, NO_RESPONSE, AgentLoop
from superbot.bus import InboundMessage, OutboundMessage
from superbot.memory.sessions import SessionManager
from superbot.providers.base import LLMProvider, LLMResponse, ToolCallRequest


def _msg(content: str, channel: str = "cli", chat_id: str = "direct", **kwargs) -> InboundMessage:
    return InboundMessage(channel=channel, sender_id="user", chat_id=chat_id, content=content, **kwargs)


@pytest.fixture
def make_loop(bus, workspace):
    def _make(provider, **kwargs) -> AgentLoop:
        return AgentLoop(bus=bus, provider=provider, workspace=workspace, **kwargs)

    return _make


class TestSingleTurn:

    @pytest.mark.asyncio
    async def test_plain_reply(self, make_loop, scripted, reply_factory):
        loop = make_loop(scripted([reply_factory("4")]))

        out = await loop.process_message(_msg("2+2?"))

        assert isinstance(out, OutboundMessage)
        assert (out.channel, out.chat_id, out.content) == ("cli", "direct", "4")

        session = loop.sessions.get_or_create("cli:direct")
        assert [(m["role"], m["content"]) for m in session.messages] == [
            ("user", "2+2?"),
            ("assistant", "4"),
        ]

    @pytest.mark.asyncio
    async def test_messages_sent_to_provider(self, make_loop, scripted, reply_factory):
        provider = scripted([reply_factory("first"), reply_factory("second")])
        loop = make_loop(provider)

        await loop.process_message(_msg("hello"))
        await loop.process_message(_msg("again"))

        first = provider.calls[0]["messages"]
        assert first[0]["role"] == "system"
        assert first[-1] == {"role": "user", "content": "hello"}
        assert len(first) == 2

        second = provider.calls[1]["messages"]
        assert [m["role"] for m in second] == ["system", "user", "assistant", "user"]
        assert second[-1]["content"] == "again"

        tool_names = {d["function"]["name"] for d in provider.calls[0]["tools"]}
        assert {"read_file", "write_file", "edit_file", "list_dir", "exec", "web_search",
                "web_fetch", "message", "spawn"} <= tool_names
        assert "schedule" not in tool_names

    @pytest.mark.asyncio
    async def test_session_persisted_to_disk(self, make_loop, scripted, reply_factory, workspace):
        loop = make_loop(scripted([reply_factory("hi there")]))
        await loop.process_message(_msg("hi", channel="telegram", chat_id="42"))

        reloaded = SessionManager(workspace).get_or_create("telegram:42")
        assert [m["content"] for m in reloaded.messages] == ["hi", "hi there"]

    @pytest.mark.asyncio
    async def test_memory_window_limits_history(self, make_loop, scripted, reply_factory):
        provider = scripted([reply_factory("ok")])
        loop = make_loop(provider, memory_window=2)
        for i in range(3):
            await loop.process_message(_msg(f"m{i}"))

        last = provider.calls[-1]["messages"]
        # system + 2 history entries + new user turn
        assert len(last) == 4
        assert last[1]["content"] == "m1"

    @pytest.mark.asyncio
    async def test_media_references_in_user_turn(self, make_loop, scripted, reply_factory):
        provider = scripted([reply_factory("nice photo")])
        loop = make_loop(provider)
        await loop.process_message(_msg("look", media=["/tmp/p.jpg"]))
        assert "[Attached file: /tmp/p.jpg]" in provider.calls[0]["messages"][-1]["content"]


class TestToolIteration:

    @pytest.mark.asyncio
    async def test_read_file_then_answer(self, make_loop, scripted, reply_factory, tool_call_factory, workspace):
        (workspace / "x.txt").write_text("file body")
        provider = scripted([
            tool_call_factory("read_file", {"path": "x.txt"}),
            reply_factory("done"),
        ])
        loop = make_loop(provider)

        out = await loop.process_message(_msg("read x.txt"))
        assert out.content == "done"

        messages = provider.calls[1]["messages"]
        roles = [m["role"] for m in messages]
        assert roles == ["system", "user", "assistant", "tool"]

        assistant, tool_result = messages[2], messages[3]
        assert assistant["tool_calls"][0]["function"]["name"] == "read_file"
        assert assistant["tool_calls"][0]["function"]["arguments"] == '{"path": "x.txt"}'
        assert tool_result["tool_call_id"] == "call_1"
        assert tool_result["name"] == "read_file"
        assert tool_result["content"] == "file body"

    @pytest.mark.asyncio
    async def test_tool_calls_run_in_order(self, make_loop, scripted, reply_factory, workspace):
        multi = LLMResponse(
            content=None,
            tool_calls=[
                ToolCallRequest(id="a", name="write_file", arguments={"path": "o.txt", "content": "1"}),
                ToolCallRequest(id="b", name="edit_file", arguments={"path": "o.txt", "old_text": "1", "new_text": "12"}),
                ToolCallRequest(id="c", name="read_file", arguments={"path": "o.txt"}),
            ],
        )
        provider = scripted([multi, reply_factory("written")])
        loop = make_loop(provider)

        await loop.process_message(_msg("go"))

        tool_msgs = [m for m in provider.calls[1]["messages"] if m["role"] == "tool"]
        assert [m["tool_call_id"] for m in tool_msgs] == ["a", "b", "c"]
        assert tool_msgs[2]["content"] == "12"

    @pytest.mark.asyncio
    async def test_tool_errors_are_fed_back(self, make_loop, scripted, reply_factory, tool_call_factory):
        provider = scripted([
            tool_call_factory("no_such_tool", {}),
            tool_call_factory("read_file", {}, call_id="call_2"),
            reply_factory("gave up"),
        ])
        loop = make_loop(provider)

        out = await loop.process_message(_msg("try"))
        assert out.content == "gave up"

        tool_msgs = [m for m in provider.calls[2]["messages"] if m["role"] == "tool"]
        assert tool_msgs[0]["content"] == "Error: Tool 'no_such_tool' not found"
        assert tool_msgs[1]["content"] == (
            "Error: Invalid parameters for tool 'read_file': missing required path"
        )

    @pytest.mark.asyncio
    async def test_tool_traffic_not_persisted(self, make_loop, scripted, reply_factory, tool_call_factory, workspace):
        (workspace / "x.txt").write_text("body")
        loop = make_loop(scripted([tool_call_factory("read_file", {"path": "x.txt"}), reply_factory("done")]))

        await loop.process_message(_msg("read"))

        session = loop.sessions.get_or_create("cli:direct")
        assert [m["role"] for m in session.messages] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_iteration_cap_placeholder(self, make_loop, scripted, tool_call_factory):
        provider = scripted([tool_call_factory("list_dir", {"path": "."})])
        loop = make_loop(provider, max_iterations=1)

        out = await loop.process_message(_msg("loop forever"))

        assert out.content == NO_RESPONSE
        assert len(provider.calls) == 1
        session = loop.sessions.get_or_create("cli:direct")
        assert session.messages[-1]["content"] == NO_RESPONSE

    @pytest.mark.asyncio
    async def test_none_content_uses_placeholder(self, make_loop, scripted):
        loop = make_loop(scripted([LLMResponse(content=None)]))
        out = await loop.process_message(_msg("hi"))
        assert out.content == NO_RESPONSE

    @pytest.mark.asyncio
    async def test_message_tool_uses_current_chat(self, make_loop, scripted, reply_factory, tool_call_factory, bus):
        provider = scripted([
            tool_call_factory("message", {"content": "side note"}),
            reply_factory("main answer"),
        ])
        loop = make_loop(provider)

        await loop.process_message(_msg("hi", channel="telegram", chat_id="7"))

        sent = await bus.consume_outbound(timeout=1)
        assert (sent.channel, sent.chat_id, sent.content) == ("telegram", "7", "side note")


class TestSystemMessages:

    @pytest.mark.asyncio
    async def test_routes_to_origin(self, make_loop, scripted, reply_factory):
        provider = scripted([reply_factory("Your report is ready.")])
        loop = make_loop(provider)

        announce = InboundMessage(
            channel="system", sender_id="subagent", chat_id="telegram:42", content="[Subagent 'x' completed]"
        )
        out = await loop.process_message(announce)

        assert (out.channel, out.chat_id, out.content) == ("telegram", "42", "Your report is ready.")
        session = loop.sessions.get_or_create("telegram:42")
        assert session.messages[0]["content"] == "[System: subagent] [Subagent 'x' completed]"
        assert session.messages[1]["content"] == "Your report is ready."

    @pytest.mark.asyncio
    async def test_chat_id_without_colon_routes_to_cli(self, make_loop, scripted, reply_factory):
        loop = make_loop(scripted([reply_factory("ok")]))
        out = await loop.process_message(
            InboundMessage(channel="system", sender_id="cron", chat_id="direct", content="ping")
        )
        assert (out.channel, out.chat_id) == ("cli", "direct")

    @pytest.mark.asyncio
    async def test_system_placeholder(self, make_loop, scripted, tool_call_factory):
        loop = make_loop(scripted([tool_call_factory("list_dir", {"path": "."})]), max_iterations=1)
        out = await loop.process_message(
            InboundMessage(channel="system", sender_id="subagent", chat_id="cli:direct", content="done")
        )
        assert out.content == BACKGROUND_DONE


class TestRunLoop:

    @pytest.mark.asyncio
    async def test_publishes_replies_in_order(self, make_loop, scripted, reply_factory, bus):
        provider = scripted([reply_factory("r1"), reply_factory("r2")])
        loop = make_loop(provider)

        bus.publish_inbound(_msg("q1", chat_id="a"))
        bus.publish_inbound(_msg("q2", chat_id="b"))
        task = asyncio.create_task(loop.run())
        try:
            first = await bus.consume_outbound(timeout=2)
            second = await bus.consume_outbound(timeout=2)
        finally:
            loop.stop()
            await asyncio.wait_for(task, timeout=3)

        assert [(first.chat_id, first.content), (second.chat_id, second.content)] == [("a", "r1"), ("b", "r2")]

    @pytest.mark.asyncio
    async def test_survives_failing_turn(self, make_loop, scripted, reply_factory, bus):
        provider = scripted([RuntimeError("provider exploded"), reply_factory("recovered")])
        loop = make_loop(provider)

        bus.publish_inbound(_msg("boom", channel="telegram", chat_id="1"))
        bus.publish_inbound(_msg("again", channel="telegram", chat_id="1"))
        task = asyncio.create_task(loop.run())
        try:
            apology = await bus.consume_outbound(timeout=2)
            answer = await bus.consume_outbound(timeout=2)
        finally:
            loop.stop()
            await asyncio.wait_for(task, timeout=3)

        assert apology.content.startswith("Sorry, I encountered an error")
        assert answer.content == "recovered"

    @pytest.mark.asyncio
    async def test_failed_system_turn_is_not_answered(self, make_loop, scripted, reply_factory, bus):
        loop = make_loop(scripted([RuntimeError("nope"), reply_factory("after")]))

        bus.publish_inbound(InboundMessage(channel="system", sender_id="subagent", chat_id="cli:x", content="r"))
        bus.publish_inbound(_msg("next"))
        task = asyncio.create_task(loop.run())
        try:
            out = await bus.consume_outbound(timeout=2)
        finally:
            loop.stop()
            await asyncio.wait_for(task, timeout=3)

        assert out.content == "after"

    @pytest.mark.asyncio
    async def test_stop_ends_idle_loop(self, make_loop, scripted, reply_factory):
        loop = make_loop(scripted([reply_factory("x")]))
        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.05)
        assert loop.running
        loop.stop()
        await asyncio.wait_for(task, timeout=3)
        assert not loop.running


class TestDirectAndReset:

    @pytest.mark.asyncio
    async def test_process_direct_returns_text_without_publishing(self, make_loop, scripted, reply_factory, bus):
        loop = make_loop(scripted([reply_factory("pong")]))

        assert await loop.process_direct("ping", session_key="cron:daily") == "pong"
        assert bus.outbound_size == 0
        assert len(loop.sessions.get_or_create("cron:daily").messages) == 2

    @pytest.mark.asyncio
    async def test_default_session_key(self, make_loop, scripted, reply_factory):
        loop = make_loop(scripted([reply_factory("pong")]))
        await loop.process_direct("ping")
        assert len(loop.sessions.get_or_create("cli:direct").messages) == 2

    @pytest.mark.asyncio
    async def test_reset_clears_session(self, make_loop, scripted, reply_factory):
        provider = scripted([reply_factory("hello")])
        loop = make_loop(provider)
        await loop.process_message(_msg("hi", channel="telegram", chat_id="5"))

        out = await loop.process_message(
            _msg("/reset", channel="telegram", chat_id="5", metadata={"command": "reset"})
        )

        assert out.content == ""
        assert loop.sessions.get_or_create("telegram:5").messages == []
        assert len(provider.calls) == 1

    def test_schedule_tool_registered_with_cron(self, bus, workspace, scripted, reply_factory):
        from superbot.cron.service import CronService

        loop = AgentLoop(bus=bus, provider=scripted([reply_factory("x")]), workspace=workspace, cron_service=CronService())
        assert "schedule" in loop.tools


class GatedProvider(LLMProvider):
    """
    Holds the first channel turn at the provider until `gate` is set.

    "cron prompt" is answered at once. Any other user turn waits, then asks
    for an untargeted `message` tool call.
    """

    def __init__(self):
        super().__init__(api_key="test", default_model="test-model")
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def chat(self, messages, tools=None, model=None, max_tokens=4096, temperature=0.7):
        last = messages[-1]
        if last["role"] == "user" and last["content"] == "cron prompt":
            return LLMResponse(content="cron done")
        if last["role"] == "user":
            self.entered.set()
            await self.gate.wait()
            return LLMResponse(
                content=None,
                tool_calls=[ToolCallRequest(id="m1", name="message", arguments={"content": "side note"})],
            )
        return LLMResponse(content="main answer")


class TestOverlappingTurns:

    @pytest.mark.asyncio
    async def test_direct_turn_does_not_redirect_waiting_turn(self, make_loop, bus):
        provider = GatedProvider()
        loop = make_loop(provider)

        channel_turn = asyncio.create_task(loop.process_message(_msg("hi", channel="telegram", chat_id="7")))
        await asyncio.wait_for(provider.entered.wait(), timeout=2)

        assert await loop.process_direct("cron prompt", session_key="cron:daily") == "cron done"

        provider.gate.set()
        out = await asyncio.wait_for(channel_turn, timeout=2)

        sent = await bus.consume_outbound(timeout=1)
        assert (sent.channel, sent.chat_id, sent.content) == ("telegram", "7", "side note")
        assert (out.channel, out.chat_id, out.content) == ("telegram", "7", "main answer")

    @pytest.mark.asyncio
    async def test_spawn_reports_to_each_turns_chat(self, make_loop, scripted, reply_factory, tool_call_factory, bus):
        provider = scripted([
            tool_call_factory("spawn", {"task": "research", "label": "r"}),
            reply_factory("started"),
            reply_factory("sub result"),
        ])
        loop = make_loop(provider)

        await loop.process_message(_msg("go", channel="whatsapp", chat_id="55"))
        announce = await bus.consume_inbound(timeout=2)

        assert announce.channel == "system"
        assert announce.chat_id == "whatsapp:55"


class TestReplay:

    @pytest.mark.asyncio
    async def test_same_message_twice_adds_two_entries_per_turn(
        self, make_loop, scripted, reply_factory, tool_call_factory, workspace
    ):
        (workspace / "notes.txt").write_text("n")
        provider = scripted([
            tool_call_factory("read_file", {"path": "notes.txt"}),
            reply_factory("first"),
            tool_call_factory("read_file", {"path": "notes.txt"}, call_id="call_2"),
            reply_factory("second"),
        ])
        loop = make_loop(provider)
        msg = _msg("what is in notes?", channel="telegram", chat_id="3")

        await loop.process_message(msg)
        session = loop.sessions.get_or_create("telegram:3")
        assert len(session.messages) == 2

        await loop.process_message(msg)
        assert len(session.messages) == 4
        assert [m["role"] for m in session.messages] == ["user", "assistant", "user", "assistant"]
        assert [m["content"] for m in session.messages] == [
            "what is in notes?", "first", "what is in notes?", "second",
        ]

        reloaded = SessionManager(workspace).get_or_create("telegram:3")
        assert all(m["role"] != "tool" for m in reloaded.messages)
        assert len(reloaded.messages) == 4
