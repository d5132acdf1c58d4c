"""
Maps decoded frame payloads to typed content fragments.

A payload looks like::

    {"content": {"parts": [{"text": ...},
                           {"functionCall": {"id", "name", "args"}},
                           {"functionResponse": {"id", "result"}}],
                 "role": "model"},
     "finishReason": "STOP"}

Every part may carry any combination of the three keys.  They are mapped
in the order text, call, response, so one part yields up to three
fragments.  The mapper has no side effects.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from adkchat.types import (
    ContentFragment,
    FragmentKind,
    Frame,
    FunctionCall,
    FunctionResult,
)

logger = logging.getLogger(__name__)

FORMAT_ERROR_PLACEHOLDER = "Error formatting response"


@dataclass(frozen=True)
class MappedFrame:
    """Fragments produced by one frame, plus its finish reason if any."""

    fragments: tuple[ContentFragment, ...] = ()
    finish_reason: str | None = None


def map_frame(frame: Frame) -> MappedFrame:
    return map_payload(frame.payload)


def map_payload(payload: Mapping[str, Any]) -> MappedFrame:
    """Convert one stream payload into a ``MappedFrame``."""
    fragments: list[ContentFragment] = []

    content = payload.get("content")
    parts = content.get("parts") if isinstance(content, Mapping) else None
    if isinstance(parts, list):
        for part in parts:
            if isinstance(part, Mapping):
                fragments.extend(_map_part(part))

    finish_reason = payload.get("finishReason")
    if not isinstance(finish_reason, str):
        finish_reason = None

    return MappedFrame(fragments=tuple(fragments), finish_reason=finish_reason)


def _map_part(part: Mapping[str, Any]) -> list[ContentFragment]:
    out: list[ContentFragment] = []

    text = part.get("text")
    if isinstance(text, str) and text:
        out.append(ContentFragment(kind=FragmentKind.TEXT, rendered_text=text))

    raw_call = part.get("functionCall")
    if isinstance(raw_call, Mapping):
        args = raw_call.get("args")
        if not isinstance(args, Mapping):
            if args is not None:
                logger.debug("Non-object functionCall args replaced with {}: %r", args)
            args = {}
        call = FunctionCall(
            id=str(raw_call.get("id") or ""),
            name=str(raw_call.get("name") or ""),
            args=dict(args),
        )
        out.append(
            ContentFragment(
                kind=FragmentKind.FUNCTION_CALL,
                rendered_text=render_function_call(call),
                function_call=call,
            )
        )

    raw_response = part.get("functionResponse")
    if isinstance(raw_response, Mapping):
        result = FunctionResult(
            id=str(raw_response.get("id") or ""),
            result=raw_response.get("result"),
        )
        out.append(
            ContentFragment(
                kind=FragmentKind.FUNCTION_RESULT,
                rendered_text=render_function_result(result),
                function_result=result,
            )
        )

    return out


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_function_call(call: FunctionCall) -> str:
    args_str = json.dumps(call.args, indent=2, ensure_ascii=False) if call.args else "{}"
    return f"Calling function: {call.name}\nArguments:\n{args_str}"


def render_function_result(result: FunctionResult) -> str:
    try:
        if isinstance(result.result, str):
            result_str = result.result
        else:
            result_str = json.dumps(result.result, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        logger.debug("Could not format function result for call %s", result.id)
        result_str = FORMAT_ERROR_PLACEHOLDER
    return f"Function result:\n{result_str}"
