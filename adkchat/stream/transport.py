"""
Transport driver for streaming exchanges with the agent backend.

One ``StreamExchange`` covers one request/response round trip::

    IDLE -> SENDING -> STREAMING -> COMPLETED
                   \\           \\-> FAILED
                    \\-> FAILED  (non-success status)

The exchange reads the response body chunk by chunk, runs each chunk
through a ``FrameDecoder``, maps every frame to fragments and appends them
to a ``MessageAccumulator``.  Callers observe it either as an async
generator of ``Progress`` / ``Completed`` / ``Failed`` events, or through
the ``on_progress`` / ``on_complete`` / ``on_error`` callback trio.  Either
way there is exactly one terminal outcome per exchange.

Dependencies: ``httpx`` (async HTTP client).  No retries are attempted.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Iterator, Union

import httpx

from adkchat.errors import ExchangeCancelled, ExchangeError
from adkchat.stream.accumulator import MessageAccumulator
from adkchat.stream.decoder import FrameDecoder
from adkchat.stream.mapper import map_frame
from adkchat.types import Frame, InlineData, Message, Role, SessionInfo

logger = logging.getLogger(__name__)

DEFAULT_RUN_PATH = "/run_sse"
DEFAULT_FINISH_REASON = "STOP"


class ExchangeState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Progress:
    """The open message grew by at least one fragment."""

    message: Message


@dataclass(frozen=True)
class Completed:
    """The stream ended normally; *message* is closed."""

    message: Message


@dataclass(frozen=True)
class Failed:
    """
    The exchange failed.

    *message* is the discarded partial message (closed as ``ABORTED``), or
    ``None`` if the accumulator never opened one.
    """

    error: ExchangeError
    message: Message | None = None


StreamEvent = Union[Progress, Completed, Failed]

ProgressCallback = Callable[[Message], Union[Awaitable[None], None]]
CompleteCallback = Callable[[], Union[Awaitable[None], None]]
ErrorCallback = Callable[[Exception], Union[Awaitable[None], None]]


async def invoke_callback(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------


def build_request_body(
    session: SessionInfo,
    text: str,
    attachments: Iterable[InlineData] = (),
    state_delta: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build the ``/run_sse`` request payload.

    Raises ``ValueError`` when there is neither text nor an attachment.
    """
    parts: list[dict[str, Any]] = []
    if text.strip():
        parts.append({"text": text})
    parts.extend(a.to_wire() for a in attachments)
    if not parts:
        raise ValueError("Message must contain either text or files")

    return {
        "appName": session.app_name,
        "userId": session.user_id,
        "sessionId": session.session_id,
        "newMessage": {"role": "user", "parts": parts},
        "streaming": True,
        "stateDelta": dict(state_delta) if state_delta else {},
    }


# ---------------------------------------------------------------------------
# Exchange
# ---------------------------------------------------------------------------


class StreamExchange:
    """
    A single streaming request/response exchange.

    Parameters
    ----------
    url:
        Full URL of the streaming endpoint.
    body:
        JSON request body (see ``build_request_body``).
    headers:
        Request headers.
    timeout:
        HTTP timeout in seconds.
    accumulator:
        Accumulator that receives the agent message.  Pass the
        conversation's accumulator so overlapping exchanges are rejected.
    transport:
        Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        url: str,
        body: dict[str, Any],
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 120.0,
        accumulator: MessageAccumulator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.body = body
        self.headers = headers or {}
        self.timeout = timeout
        self.accumulator = accumulator or MessageAccumulator()
        self.decoder = FrameDecoder()
        self.state = ExchangeState.IDLE
        self._transport = transport
        self._cancelled = False
        self._finish_reason: str | None = None

    def cancel(self) -> None:
        """Release the response reader at the next chunk boundary."""
        self._cancelled = True

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    async def events(self) -> AsyncIterator[StreamEvent]:
        """
        Run the exchange, yielding ``Progress`` events and one terminal
        ``Completed`` or ``Failed`` event.
        """
        if self.state is not ExchangeState.IDLE:
            raise RuntimeError("a StreamExchange can only be consumed once")
        self.accumulator.open(Role.AGENT)
        self.state = ExchangeState.SENDING

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                async with client.stream(
                    "POST", self.url, json=self.body, headers=self.headers
                ) as response:
                    if not response.is_success:
                        # Read the body so the connection is released.
                        await response.aread()
                        raise ExchangeError(
                            f"HTTP {response.status_code}: {response.reason_phrase}",
                            status_code=response.status_code,
                        )

                    self.state = ExchangeState.STREAMING
                    async for chunk in response.aiter_bytes():
                        if self._cancelled:
                            raise ExchangeCancelled("response reader released by caller")
                        for event in self._consume(self.decoder.feed(chunk)):
                            yield event
                        if self.decoder.done:
                            break
                    else:
                        for event in self._consume(self.decoder.finish()):
                            yield event
        except (GeneratorExit, asyncio.CancelledError):
            self._abort()
            raise
        except ExchangeError as exc:
            yield self._fail(exc)
            return
        except (httpx.HTTPError, httpx.StreamError) as exc:
            error = ExchangeError(str(exc) or type(exc).__name__)
            error.__cause__ = exc
            yield self._fail(error)
            return
        except Exception as exc:
            # Bad URLs, unencodable headers and custom transports end here.
            logger.exception("Unexpected error during exchange")
            error = ExchangeError(f"{type(exc).__name__}: {exc}")
            error.__cause__ = exc
            yield self._fail(error)
            return

        message = self.accumulator.close(self._finish_reason or DEFAULT_FINISH_REASON)
        self.state = ExchangeState.COMPLETED
        logger.info(
            "Exchange completed: message=%s fragments=%d reason=%s decode_errors=%d",
            message.id,
            len(message.fragments),
            message.termination_reason,
            len(self.decoder.errors),
        )
        yield Completed(message)

    def _consume(self, frames: Iterable[Frame]) -> Iterator[Progress]:
        for frame in frames:
            mapped = map_frame(frame)
            if mapped.finish_reason is not None:
                self._finish_reason = mapped.finish_reason
            if mapped.fragments:
                yield Progress(self.accumulator.append(mapped.fragments))

    def _abort(self) -> Message:
        self.state = ExchangeState.FAILED
        return self.accumulator.discard()

    def _fail(self, error: ExchangeError) -> Failed:
        message = self._abort()
        logger.warning(
            "Exchange failed after %d fragments: %s", len(message.fragments), error
        )
        return Failed(error=error, message=message)

    # ------------------------------------------------------------------
    # Callback contract
    # ------------------------------------------------------------------

    async def run(
        self,
        on_progress: ProgressCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> Message | None:
        """
        Drive the exchange, reporting through callbacks.

        ``on_progress`` may fire any number of times; then exactly one of
        ``on_complete`` or ``on_error`` fires.  Returns the final message
        snapshot.
        """
        terminal_sent = False
        try:
            async with aclosing(self.events()) as events:
                async for event in events:
                    if isinstance(event, Progress):
                        await invoke_callback(on_progress, event.message)
                    elif isinstance(event, Completed):
                        terminal_sent = True
                        await invoke_callback(on_complete)
                    else:
                        terminal_sent = True
                        await invoke_callback(on_error, event.error)
        except asyncio.CancelledError:
            if not terminal_sent:
                await invoke_callback(on_error, ExchangeCancelled("exchange task was cancelled"))
            raise
        return self.accumulator.message


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AgentClient:
    """
    Creates streaming exchanges against one agent backend.

    Parameters
    ----------
    base_url:
        Base URL of the backend, e.g. ``"http://localhost:8000"``.
    run_path:
        Path of the streaming endpoint.
    timeout:
        HTTP timeout in seconds.
    headers:
        Extra headers sent with every request.
    transport:
        Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        base_url: str,
        *,
        run_path: str = DEFAULT_RUN_PATH,
        timeout: float = 120.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._run_path = run_path
        self._timeout = timeout
        self._extra_headers = dict(headers or {})
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self._base_url}{self._run_path}"

    def build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        headers.update(self._extra_headers)
        return headers

    def exchange(
        self,
        session: SessionInfo,
        text: str,
        attachments: Iterable[InlineData] = (),
        *,
        state_delta: dict[str, Any] | None = None,
        accumulator: MessageAccumulator | None = None,
    ) -> StreamExchange:
        body = build_request_body(session, text, attachments, state_delta)
        logger.info(
            "REQUEST: app=%s session=%s parts=%d",
            session.app_name,
            session.session_id,
            len(body["newMessage"]["parts"]),
        )
        return StreamExchange(
            self.url,
            body,
            headers=self.build_headers(),
            timeout=self._timeout,
            accumulator=accumulator,
            transport=self._transport,
        )

    async def send_message(
        self,
        session: SessionInfo,
        text: str,
        attachments: Iterable[InlineData] = (),
        *,
        on_progress: ProgressCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
        state_delta: dict[str, Any] | None = None,
        accumulator: MessageAccumulator | None = None,
    ) -> Message | None:
        """Send one user message and stream the agent's reply via callbacks."""
        exchange = self.exchange(
            session,
            text,
            attachments,
            state_delta=state_delta,
            accumulator=accumulator,
        )
        return await exchange.run(on_progress, on_complete, on_error)
