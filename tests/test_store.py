"""Tests for adkchat.session.store.TranscriptStore."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from adkchat.session.store import SCHEMA_VERSION, TranscriptStore
from adkchat.types import Message, Role, SessionInfo


@pytest.fixture
async def store(tmp_path):
    s = TranscriptStore(str(tmp_path / "nested" / "history.db"))
    await s.init()
    yield s
    await s.close()


def _session(session_id: str, minutes_ago: int = 0) -> SessionInfo:
    return SessionInfo(
        session_id=session_id,
        user_id="user-1",
        app_name="test_app",
        created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )


class TestSchema:
    async def test_schema_version(self, store):
        assert await store.get_schema_version() == SCHEMA_VERSION

    async def test_reinit_is_idempotent(self, tmp_path):
        path = str(tmp_path / "history.db")
        first = TranscriptStore(path)
        await first.init()
        await first.save_session(_session("s1"))
        await first.close()

        second = TranscriptStore(path)
        await second.init()
        assert await second.get_schema_version() == SCHEMA_VERSION
        assert await second.get_session("s1") is not None
        await second.close()


class TestSessions:
    async def test_save_and_get(self, store):
        info = _session("s1")
        await store.save_session(info)
        loaded = await store.get_session("s1")
        assert loaded == info

    async def test_missing_session(self, store):
        assert await store.get_session("nope") is None
        assert await store.latest_session() is None

    async def test_list_newest_first(self, store):
        await store.save_session(_session("old", minutes_ago=10))
        await store.save_session(_session("new", minutes_ago=1))
        ids = [s.session_id for s in await store.list_sessions()]
        assert ids == ["new", "old"]
        assert (await store.latest_session()).session_id == "new"

    async def test_resave_keeps_messages(self, store):
        info = _session("s1")
        await store.save_session(info)
        await store.append_message("s1", Message.from_text(Role.USER, "hi"))
        await store.save_session(info)
        assert len(await store.get_messages("s1")) == 1

    async def test_delete_removes_transcript(self, store):
        await store.save_session(_session("s1"))
        await store.append_message("s1", Message.from_text(Role.USER, "hi"))
        await store.delete_session("s1")
        assert await store.get_session("s1") is None
        assert await store.get_messages("s1") == []


class TestMessages:
    async def test_append_order_preserved(self, store):
        await store.save_session(_session("s1"))
        texts = ["first", "second", "third"]
        for text in texts:
            await store.append_message("s1", Message.from_text(Role.AGENT, text, reason="STOP"))
        loaded = await store.get_messages("s1")
        assert [m.text for m in loaded] == texts
        assert all(m.termination_reason == "STOP" for m in loaded)

    async def test_messages_scoped_to_session(self, store):
        await store.save_session(_session("s1"))
        await store.save_session(_session("s2"))
        await store.append_message("s1", Message.from_text(Role.USER, "one"))
        await store.append_message("s2", Message.from_text(Role.USER, "two"))
        assert [m.text for m in await store.get_messages("s2")] == ["two"]

    async def test_open_message_rejected(self, store):
        await store.save_session(_session("s1"))
        open_message = Message(role=Role.AGENT, is_open=True, termination_reason=None)
        with pytest.raises(ValueError):
            await store.append_message("s1", open_message)

    async def test_clear_messages(self, store):
        await store.save_session(_session("s1"))
        await store.append_message("s1", Message.from_text(Role.USER, "hi"))
        await store.clear_messages("s1")
        assert await store.get_messages("s1") == []
        assert await store.get_session("s1") is not None

    async def test_round_trip_preserves_message(self, store):
        await store.save_session(_session("s1"))
        message = Message.from_text(Role.AGENT, "hello", reason="MAX_TOKENS")
        await store.append_message("s1", message)
        assert (await store.get_messages("s1"))[0] == message
