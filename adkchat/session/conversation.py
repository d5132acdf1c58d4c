"""
Conversation controller.

Keeps the transcript of one session and turns each user input into a
streaming exchange:

1. Append the user message.
2. Stream the agent reply, forwarding every snapshot to the caller.
3. Append the closed agent message, or on failure keep whatever arrived
   and append a synthesized error message.

Every appended message is persisted when a ``TranscriptStore`` is attached.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Any, Iterable

from adkchat.errors import AccumulatorStateError
from adkchat.session.store import TranscriptStore
from adkchat.stream.accumulator import AccumulatorState, MessageAccumulator
from adkchat.stream.transport import (
    AgentClient,
    Completed,
    Progress,
    ProgressCallback,
    invoke_callback,
)
from adkchat.types import InlineData, Message, Role, SessionInfo, text_fragment

logger = logging.getLogger(__name__)

ERROR_MESSAGE_TEMPLATE = "Sorry, I encountered an error: {error}"
ERROR_REASON = "ERROR"


class Conversation:
    """
    A conversation with the agent within one session.

    Parameters
    ----------
    session:
        Backend session descriptor.
    client:
        Client used to open streaming exchanges.
    store:
        Optional transcript store.
    """

    def __init__(
        self,
        session: SessionInfo,
        client: AgentClient,
        store: TranscriptStore | None = None,
    ) -> None:
        self.session = session
        self.client = client
        self.store = store
        self.transcript: list[Message] = []
        self.streaming: Message | None = None
        self._accumulator = MessageAccumulator()

    @property
    def busy(self) -> bool:
        """``True`` while an agent reply is streaming."""
        return self._accumulator.state is AccumulatorState.OPEN

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------

    async def load(self) -> list[Message]:
        """Register the session with the store and restore its transcript."""
        if self.store is not None:
            await self.store.save_session(self.session)
            self.transcript = await self.store.get_messages(self.session.session_id)
        return list(self.transcript)

    async def clear(self) -> None:
        self.transcript = []
        if self.store is not None:
            await self.store.clear_messages(self.session.session_id)

    async def _append(self, message: Message) -> Message:
        self.transcript.append(message)
        if self.store is not None:
            await self.store.append_message(self.session.session_id, message)
        return message

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(
        self,
        text: str,
        attachments: Iterable[InlineData] = (),
        on_update: ProgressCallback | None = None,
        *,
        state_delta: dict[str, Any] | None = None,
    ) -> Message:
        """
        Send *text* (and attachments) and wait for the agent's reply.

        Returns the last message appended to the transcript: the agent's
        reply, or the synthesized error message if the exchange failed.

        Raises ``ValueError`` for an empty message and
        ``AccumulatorStateError`` if a reply is already streaming.
        """
        if self.busy:
            raise AccumulatorStateError("an agent reply is still streaming")

        attachments = list(attachments)
        exchange = self.client.exchange(
            self.session,
            text,
            attachments,
            state_delta=state_delta,
            accumulator=self._accumulator,
        )

        fragments = [text_fragment(text)] if text.strip() else []
        fragments.extend(text_fragment(f"Attached file: {a.display_name}") for a in attachments)
        last = await self._append(Message(role=Role.USER, fragments=tuple(fragments)))

        try:
            async with aclosing(exchange.events()) as events:
                async for event in events:
                    if isinstance(event, Progress):
                        self.streaming = event.message
                        if on_update is not None:
                            await invoke_callback(on_update, event.message)
                    elif isinstance(event, Completed):
                        last = await self._append(event.message)
                    else:
                        if event.message is not None and event.message.fragments:
                            await self._append(event.message)
                        last = await self._append(
                            Message.from_text(
                                Role.AGENT,
                                ERROR_MESSAGE_TEMPLATE.format(error=event.error),
                                reason=ERROR_REASON,
                            )
                        )
        except asyncio.CancelledError:
            partial = self._accumulator.message
            if partial is not None and not partial.is_open and partial.fragments:
                self.transcript.append(partial)
            raise
        finally:
            self.streaming = None

        return last

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_markdown(self, now: datetime | None = None) -> str:
        """Render the agent's text replies as a markdown document."""
        now = now or datetime.now(timezone.utc)
        replies = [
            m for m in self.transcript
            if m.role is Role.AGENT and m.text.strip()
        ]

        lines = [
            "# Chat Export",
            "",
            f"**Exported on:** {now:%Y-%m-%d %H:%M:%S}",
            "",
            f"**Session:** {self.session.app_name}",
            "",
            "---",
            "",
        ]
        for index, message in enumerate(replies, start=1):
            lines += [
                f"## Response {index}",
                "",
                f"**Time:** {message.created_at:%Y-%m-%d %H:%M:%S}",
                "",
                message.text,
                "",
                "---",
                "",
            ]
        return "\n".join(lines)
