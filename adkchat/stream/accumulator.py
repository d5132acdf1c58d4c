"""
Accumulates content fragments into one in-flight message.

Lifecycle::

    UNOPENED --open()--> OPEN --append()*--> OPEN --close()/discard()--> CLOSED

Each operation returns a new immutable ``Message`` snapshot; snapshots
handed out earlier are never touched.  Calling an operation in the wrong
state raises ``AccumulatorStateError``.  After a message is closed the
accumulator can open the next one.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import Iterable

from adkchat.errors import AccumulatorStateError
from adkchat.types import ContentFragment, Message, Role

logger = logging.getLogger(__name__)

ABORTED = "ABORTED"


class AccumulatorState(str, Enum):
    UNOPENED = "unopened"
    OPEN = "open"
    CLOSED = "closed"


class MessageAccumulator:
    """Owns at most one open ``Message`` at a time."""

    def __init__(self) -> None:
        self._message: Message | None = None
        self._state = AccumulatorState.UNOPENED

    @property
    def state(self) -> AccumulatorState:
        return self._state

    @property
    def message(self) -> Message | None:
        """The latest snapshot, open or closed, or ``None`` before ``open()``."""
        return self._message

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, role: Role = Role.AGENT) -> Message:
        if self._state is AccumulatorState.OPEN:
            raise AccumulatorStateError(
                f"message {self._message.id} is still open"  # type: ignore[union-attr]
            )
        self._message = Message(role=role, is_open=True, termination_reason=None)
        self._state = AccumulatorState.OPEN
        return self._message

    def append(self, fragments: Iterable[ContentFragment]) -> Message:
        message = self._require_open("append")
        new = tuple(fragments)
        if not new:
            return message
        self._message = replace(message, fragments=message.fragments + new)
        return self._message

    def close(self, termination_reason: str | None = None) -> Message:
        message = self._require_open("close")
        self._message = replace(
            message,
            is_open=False,
            termination_reason=termination_reason if termination_reason is not None else "",
        )
        self._state = AccumulatorState.CLOSED
        return self._message

    def discard(self) -> Message:
        """Abort the open message, marking it ``ABORTED``."""
        self._require_open("discard")
        message = self.close(ABORTED)
        logger.debug("Discarded message %s with %d fragments", message.id, len(message.fragments))
        return message

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_open(self, operation: str) -> Message:
        if self._state is not AccumulatorState.OPEN or self._message is None:
            raise AccumulatorStateError(
                f"cannot {operation}: accumulator is {self._state.value}"
            )
        return self._message
