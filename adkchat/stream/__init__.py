"""Streaming core -- frame decoding, fragment mapping, message accumulation, transport."""

from adkchat.stream.accumulator import ABORTED, AccumulatorState, MessageAccumulator
from adkchat.stream.decoder import DONE_SENTINEL, FrameDecoder, iter_frames
from adkchat.stream.mapper import (
    FORMAT_ERROR_PLACEHOLDER,
    MappedFrame,
    map_frame,
    map_payload,
)
from adkchat.stream.transport import (
    AgentClient,
    Completed,
    ExchangeState,
    Failed,
    Progress,
    StreamEvent,
    StreamExchange,
    build_request_body,
)

__all__ = [
    "ABORTED",
    "AccumulatorState",
    "AgentClient",
    "Completed",
    "DONE_SENTINEL",
    "ExchangeState",
    "FORMAT_ERROR_PLACEHOLDER",
    "Failed",
    "FrameDecoder",
    "MappedFrame",
    "MessageAccumulator",
    "Progress",
    "StreamEvent",
    "StreamExchange",
    "build_request_body",
    "iter_frames",
    "map_frame",
    "map_payload",
]
