"""Tests for adkchat.session.conversation.Conversation."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from adkchat.errors import AccumulatorStateError
from adkchat.session.conversation import ERROR_REASON, Conversation
from adkchat.session.store import TranscriptStore
from adkchat.stream.accumulator import ABORTED
from adkchat.types import InlineData, Message, Role, text_fragment
from tests.mock_server import (
    SESSION,
    MockAgentServer,
    call_payload,
    sse_body,
    sse_line,
    text_payload,
)


@pytest.fixture
async def store(tmp_path):
    s = TranscriptStore(str(tmp_path / "history.db"))
    await s.init()
    yield s
    await s.close()


def _conversation(server: MockAgentServer, store=None) -> Conversation:
    return Conversation(SESSION, server.client(), store)


class TestSend:
    async def test_successful_exchange(self):
        server = MockAgentServer(chunks=[sse_body(text_payload("Hi"), text_payload("there"))])
        conv = _conversation(server)
        updates = []

        last = await conv.send("Hello", on_update=updates.append)

        assert [m.role for m in conv.transcript] == [Role.USER, Role.AGENT]
        assert conv.transcript[0].text == "Hello"
        assert last is conv.transcript[-1]
        assert last.text == "Hi there"
        assert last.termination_reason == "STOP"
        assert len(updates) == 2
        assert all(u.is_open for u in updates)
        assert conv.streaming is None
        assert not conv.busy

    async def test_attachment_names_in_user_message(self):
        server = MockAgentServer(chunks=[sse_body(text_payload("ok"))])
        conv = _conversation(server)
        data = InlineData("report.pdf", "AAAA", "application/pdf")

        await conv.send("", [data])

        user = conv.transcript[0]
        assert user.text == "Attached file: report.pdf"
        assert server.last_body["newMessage"]["parts"] == [data.to_wire()]

    async def test_empty_message_rejected(self):
        server = MockAgentServer()
        conv = _conversation(server)
        with pytest.raises(ValueError):
            await conv.send("   ")
        assert conv.transcript == []
        assert server.requests == []

    async def test_http_failure_appends_error_message(self):
        server = MockAgentServer(status_code=500)
        conv = _conversation(server)

        last = await conv.send("Hello")

        assert [m.role for m in conv.transcript] == [Role.USER, Role.AGENT]
        assert last.termination_reason == ERROR_REASON
        assert last.text.startswith("Sorry, I encountered an error: HTTP 500")

    async def test_partial_reply_kept_before_error(self):
        chunks = [sse_line(text_payload("partial")).encode(), b"never delivered"]
        server = MockAgentServer(chunks=chunks, fail_after=1)
        conv = _conversation(server)

        last = await conv.send("Hello")

        partial = conv.transcript[1]
        assert partial.text == "partial"
        assert partial.termination_reason == ABORTED
        assert last.termination_reason == ERROR_REASON
        assert len(conv.transcript) == 3

    async def test_unexpected_error_does_not_leave_conversation_busy(self):
        server = MockAgentServer(handler_error=ValueError("boom"))
        conv = _conversation(server)

        last = await conv.send("Hello")

        assert last.termination_reason == ERROR_REASON
        assert "boom" in last.text
        assert not conv.busy

        again = await conv.send("Hello again")
        assert again.termination_reason == ERROR_REASON
        assert len(server.requests) == 2

    async def test_streaming_snapshot_visible_during_update(self):
        server = MockAgentServer(chunks=[sse_body(text_payload("Hi"))])
        conv = _conversation(server)
        seen = []

        def on_update(message):
            seen.append((conv.busy, conv.streaming is message))

        await conv.send("Hello", on_update=on_update)
        assert seen == [(True, True)]

    async def test_concurrent_send_rejected(self):
        gate = asyncio.Event()
        release = asyncio.Event()
        chunks = [sse_line(text_payload("one")).encode(), sse_body(text_payload("two"))]
        server = MockAgentServer(chunks=chunks)
        conv = _conversation(server)

        async def on_update(message):
            gate.set()
            await release.wait()

        task = asyncio.create_task(conv.send("first", on_update=on_update))
        await gate.wait()
        with pytest.raises(AccumulatorStateError):
            await conv.send("second")
        release.set()
        last = await task
        assert last.text == "one two"

    async def test_cancelled_send_keeps_partial(self):
        gate = asyncio.Event()
        chunks = [sse_line(text_payload("one")).encode(), sse_body(text_payload("two"))]
        server = MockAgentServer(chunks=chunks)
        conv = _conversation(server)

        async def on_update(message):
            gate.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(conv.send("Hello", on_update=on_update))
        await gate.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert conv.transcript[-1].termination_reason == ABORTED
        assert conv.transcript[-1].text == "one"
        assert conv.streaming is None
        assert not conv.busy

    async def test_function_call_reply(self):
        server = MockAgentServer(chunks=[sse_body(call_payload("c1", "search", {"q": "x"}))])
        conv = _conversation(server)
        last = await conv.send("find x")
        assert last.pending_call_ids() == frozenset({"c1"})
        assert last.is_working


class TestPersistence:
    async def test_messages_persisted(self, store):
        server = MockAgentServer(chunks=[sse_body(text_payload("Hi"))])
        conv = _conversation(server, store)
        await conv.load()
        await conv.send("Hello")

        stored = await store.get_messages(SESSION.session_id)
        assert [m.id for m in stored] == [m.id for m in conv.transcript]

    async def test_load_restores_transcript(self, store):
        server = MockAgentServer(chunks=[sse_body(text_payload("Hi"))])
        first = _conversation(server, store)
        await first.load()
        await first.send("Hello")

        second = _conversation(MockAgentServer(), store)
        restored = await second.load()
        assert [m.text for m in restored] == ["Hello", "Hi"]
        assert await store.get_session(SESSION.session_id) is not None

    async def test_clear(self, store):
        server = MockAgentServer(chunks=[sse_body(text_payload("Hi"))])
        conv = _conversation(server, store)
        await conv.load()
        await conv.send("Hello")
        await conv.clear()
        assert conv.transcript == []
        assert await store.get_messages(SESSION.session_id) == []


class TestExport:
    def test_markdown_export(self):
        conv = Conversation(SESSION, MockAgentServer().client())
        when = datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)
        conv.transcript = [
            Message.from_text(Role.USER, "question"),
            Message(role=Role.AGENT, fragments=(text_fragment("answer"),), created_at=when),
            Message(role=Role.AGENT, fragments=()),
        ]

        md = conv.export_markdown(now=when)

        assert md.startswith("# Chat Export\n")
        assert "**Exported on:** 2024-05-01 12:30:00" in md
        assert "**Session:** test_app" in md
        assert "## Response 1" in md
        assert "**Time:** 2024-05-01 12:30:00" in md
        assert "answer" in md
        assert "question" not in md
        assert "## Response 2" not in md
