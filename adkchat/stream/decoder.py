"""
Incremental decoder for the agent's server-sent event stream.

The wire format is line oriented::

    data: {json}\\n
    \\n
    data: [DONE]\\n

Bytes arrive in arbitrary chunks, so the decoder keeps the unterminated
tail of the last chunk in a buffer until its newline shows up.  Multi-byte
UTF-8 sequences split across chunks are reassembled by an incremental
codec.

Lines that do not carry the ``data:`` prefix (blank separators, ``event:``
or ``id:`` fields) are skipped.  A ``data:`` line whose payload is not a
JSON object is recorded in ``errors`` and skipped; it never aborts the
stream.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Iterable, Iterator

from adkchat.types import Frame

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class FrameDecoder:
    """Turns byte chunks into ``Frame`` objects.  One instance per stream."""

    def __init__(self) -> None:
        self._codec = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._next_index = 0
        self.done = False
        self.ignored_lines = 0
        self.errors: list[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, chunk: bytes) -> list[Frame]:
        """
        Feed one chunk of the response body.

        Returns the frames completed by this chunk, in wire order.  After the
        ``[DONE]`` sentinel has been seen every call returns ``[]``.
        """
        if self.done:
            return []
        self._buffer += self._codec.decode(chunk)
        return self._drain()

    def finish(self) -> list[Frame]:
        """
        Signal end of stream.

        Returns any frames still pending in the codec.  An unterminated
        trailing line is dropped.
        """
        if self.done:
            return []
        self._buffer += self._codec.decode(b"", final=True)
        frames = self._drain()
        if self._buffer.strip() and not self.done:
            logger.debug("Dropping unterminated line at end of stream: %s", self._buffer[:200])
        self._buffer = ""
        self.done = True
        return frames

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _drain(self) -> list[Frame]:
        frames: list[Frame] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            frame = self._decode_line(line.rstrip("\r"))
            if self.done:
                self._buffer = ""
                break
            if frame is not None:
                frames.append(frame)
        return frames

    def _decode_line(self, line: str) -> Frame | None:
        if not line.startswith(DATA_PREFIX):
            if line:
                logger.debug("Ignoring non-data line: %s", line[:200])
            self.ignored_lines += 1
            return None

        data_str = line[len(DATA_PREFIX):].strip()
        if data_str == DONE_SENTINEL:
            self.done = True
            return None

        try:
            payload = json.loads(data_str)
        except json.JSONDecodeError as exc:
            self._record_error(f"frame_json_parse_failed err={exc}", data_str)
            return None

        if not isinstance(payload, dict):
            self._record_error(
                f"frame_not_an_object type={type(payload).__name__}", data_str
            )
            return None

        frame = Frame(payload=payload, index=self._next_index)
        self._next_index += 1
        return frame

    def _record_error(self, error: str, data_str: str) -> None:
        logger.warning("Failed to parse SSE data (%s): %s", error, data_str[:200])
        self.errors.append(error)


def iter_frames(chunks: Iterable[bytes]) -> Iterator[Frame]:
    """
    Lazily decode an iterable of byte chunks with a fresh decoder.

    Stops at the ``[DONE]`` sentinel without consuming further chunks.
    """
    decoder = FrameDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
        if decoder.done:
            return
    yield from decoder.finish()
