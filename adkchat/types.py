"""Core value types: frames, content fragments, messages and sessions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex}"


class Role(str, Enum):
    USER = "user"
    AGENT = "agent"


class FragmentKind(str, Enum):
    TEXT = "text"
    FUNCTION_CALL = "function_call"
    FUNCTION_RESULT = "function_result"


# ---------------------------------------------------------------------------
# Wire records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Frame:
    """
    One decoded ``data:`` record from the event stream.

    *index* is the arrival order within a single decoder, starting at 0.
    """

    payload: dict[str, Any]
    index: int = 0


@dataclass(frozen=True)
class FunctionCall:
    """A function invocation requested by the agent."""

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FunctionResult:
    """The value a function returned to the agent."""

    id: str
    result: Any = None


@dataclass(frozen=True)
class InlineData:
    """A base64-encoded file attached to an outbound message."""

    display_name: str
    data: str
    mime_type: str

    def to_wire(self) -> dict[str, Any]:
        return {
            "inlineData": {
                "displayName": self.display_name,
                "data": self.data,
                "mimeType": self.mime_type,
            }
        }


@dataclass(frozen=True)
class SessionInfo:
    """Identifies one conversation session on the agent backend."""

    session_id: str
    user_id: str
    app_name: str
    created_at: datetime = field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Content fragments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContentFragment:
    """
    One unit of agent output.

    Attributes
    ----------
    kind:
        Which of the three shapes this fragment has.
    rendered_text:
        Human-readable form of the fragment.
    function_call:
        Set only when *kind* is ``function_call``.
    function_result:
        Set only when *kind* is ``function_result``.
    produced_at:
        UTC timestamp of fragment creation.
    """

    kind: FragmentKind
    rendered_text: str
    function_call: FunctionCall | None = None
    function_result: FunctionResult | None = None
    produced_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        kind = FragmentKind(self.kind)
        object.__setattr__(self, "kind", kind)
        has_call = self.function_call is not None
        has_result = self.function_result is not None
        expected = {
            FragmentKind.TEXT: (False, False),
            FragmentKind.FUNCTION_CALL: (True, False),
            FragmentKind.FUNCTION_RESULT: (False, True),
        }[kind]
        if (has_call, has_result) != expected:
            raise ValueError(
                f"{kind.value} fragment has mismatched payload "
                f"(function_call={has_call}, function_result={has_result})"
            )

    @property
    def call_id(self) -> str | None:
        if self.function_call is not None:
            return self.function_call.id
        if self.function_result is not None:
            return self.function_result.id
        return None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "rendered_text": self.rendered_text,
            "produced_at": self.produced_at.isoformat(),
        }
        if self.function_call is not None:
            d["function_call"] = {
                "id": self.function_call.id,
                "name": self.function_call.name,
                "args": self.function_call.args,
            }
        if self.function_result is not None:
            d["function_result"] = {
                "id": self.function_result.id,
                "result": self.function_result.result,
            }
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentFragment:
        call = data.get("function_call")
        result = data.get("function_result")
        return cls(
            kind=FragmentKind(data["kind"]),
            rendered_text=data.get("rendered_text", ""),
            function_call=FunctionCall(**call) if call else None,
            function_result=FunctionResult(**result) if result else None,
            produced_at=datetime.fromisoformat(data["produced_at"]),
        )


def text_fragment(text: str) -> ContentFragment:
    """Create a ``text`` fragment."""
    return ContentFragment(kind=FragmentKind.TEXT, rendered_text=text)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Message:
    """
    An immutable snapshot of one conversation message.

    A message is open while the agent is still streaming into it.  Once
    closed it carries a ``termination_reason`` (possibly ``""``) and never
    changes again.
    """

    role: Role
    fragments: tuple[ContentFragment, ...] = ()
    is_open: bool = False
    termination_reason: str | None = ""
    id: str = field(default_factory=_new_message_id)
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.is_open and self.termination_reason is not None:
            raise ValueError("an open message cannot have a termination reason")
        if not self.is_open and self.termination_reason is None:
            raise ValueError("a closed message needs a termination reason")

    @classmethod
    def from_text(cls, role: Role, text: str, reason: str = "") -> Message:
        """Create a closed single-fragment text message."""
        return cls(role=role, fragments=(text_fragment(text),), termination_reason=reason)

    @property
    def text(self) -> str:
        return " ".join(
            f.rendered_text for f in self.fragments if f.kind is FragmentKind.TEXT
        )

    def function_calls(self) -> list[FunctionCall]:
        return [f.function_call for f in self.fragments if f.function_call is not None]

    def function_results(self) -> list[FunctionResult]:
        return [
            f.function_result for f in self.fragments if f.function_result is not None
        ]

    def pending_call_ids(self) -> frozenset[str]:
        """Ids of function calls that have no matching result yet."""
        answered = {r.id for r in self.function_results()}
        return frozenset(c.id for c in self.function_calls() if c.id not in answered)

    @property
    def is_working(self) -> bool:
        return self.is_open or bool(self.pending_call_ids())

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "fragments": [f.to_dict() for f in self.fragments],
            "is_open": self.is_open,
            "termination_reason": self.termination_reason,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            id=data["id"],
            role=Role(data["role"]),
            fragments=tuple(ContentFragment.from_dict(f) for f in data.get("fragments", [])),
            is_open=data.get("is_open", False),
            termination_reason=data.get("termination_reason"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
