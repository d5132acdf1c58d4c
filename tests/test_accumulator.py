"""Tests for adkchat.stream.accumulator.MessageAccumulator."""

from __future__ import annotations

import pytest

from adkchat.errors import AccumulatorStateError
from adkchat.stream.accumulator import ABORTED, AccumulatorState, MessageAccumulator
from adkchat.types import Role, text_fragment


class TestLifecycle:
    def test_initial_state(self):
        acc = MessageAccumulator()
        assert acc.state is AccumulatorState.UNOPENED
        assert acc.message is None

    def test_open_creates_empty_open_message(self):
        acc = MessageAccumulator()
        message = acc.open()
        assert message.role is Role.AGENT
        assert message.is_open
        assert message.termination_reason is None
        assert message.fragments == ()
        assert acc.state is AccumulatorState.OPEN

    def test_open_with_role(self):
        assert MessageAccumulator().open(Role.USER).role is Role.USER

    def test_append_and_close(self):
        acc = MessageAccumulator()
        acc.open()
        acc.append([text_fragment("Hello")])
        acc.append([text_fragment("world")])
        message = acc.close("STOP")
        assert not message.is_open
        assert message.termination_reason == "STOP"
        assert message.text == "Hello world"
        assert acc.state is AccumulatorState.CLOSED

    def test_close_without_reason_records_empty_string(self):
        acc = MessageAccumulator()
        acc.open()
        assert acc.close().termination_reason == ""

    def test_id_stable_across_snapshots(self):
        acc = MessageAccumulator()
        opened = acc.open()
        appended = acc.append([text_fragment("a")])
        closed = acc.close()
        assert opened.id == appended.id == closed.id

    def test_reopen_after_close(self):
        acc = MessageAccumulator()
        first = acc.open()
        acc.close()
        second = acc.open()
        assert second.id != first.id
        assert second.fragments == ()


class TestSnapshots:
    def test_earlier_snapshots_unchanged(self):
        acc = MessageAccumulator()
        acc.open()
        first = acc.append([text_fragment("a")])
        second = acc.append([text_fragment("b")])
        assert [f.rendered_text for f in first.fragments] == ["a"]
        assert [f.rendered_text for f in second.fragments] == ["a", "b"]
        acc.close()
        assert first.is_open

    def test_append_nothing_returns_current(self):
        acc = MessageAccumulator()
        acc.open()
        current = acc.append([text_fragment("a")])
        assert acc.append([]) is current

    def test_append_accepts_generator(self):
        acc = MessageAccumulator()
        acc.open()
        message = acc.append(text_fragment(t) for t in ("x", "y"))
        assert len(message.fragments) == 2


class TestDiscard:
    def test_discard_marks_aborted_and_keeps_fragments(self):
        acc = MessageAccumulator()
        acc.open()
        acc.append([text_fragment("partial")])
        message = acc.discard()
        assert message.termination_reason == ABORTED
        assert message.text == "partial"
        assert not message.is_open
        assert acc.state is AccumulatorState.CLOSED

    def test_discard_when_not_open_raises(self):
        with pytest.raises(AccumulatorStateError):
            MessageAccumulator().discard()


class TestStateErrors:
    def test_open_twice_raises(self):
        acc = MessageAccumulator()
        acc.open()
        with pytest.raises(AccumulatorStateError, match="still open"):
            acc.open()

    def test_append_before_open_raises(self):
        with pytest.raises(AccumulatorStateError, match="cannot append"):
            MessageAccumulator().append([text_fragment("x")])

    def test_append_after_close_raises(self):
        acc = MessageAccumulator()
        acc.open()
        acc.close()
        with pytest.raises(AccumulatorStateError):
            acc.append([text_fragment("late")])

    def test_close_twice_raises(self):
        acc = MessageAccumulator()
        acc.open()
        acc.close()
        with pytest.raises(AccumulatorStateError, match="cannot close"):
            acc.close()

    def test_state_error_is_runtime_error(self):
        with pytest.raises(RuntimeError):
            MessageAccumulator().close()
