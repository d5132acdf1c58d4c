"""Tests for adkchat.stream.mapper."""

from __future__ import annotations

from adkchat.stream.mapper import (
    FORMAT_ERROR_PLACEHOLDER,
    map_frame,
    map_payload,
    render_function_call,
    render_function_result,
)
from adkchat.types import FragmentKind, Frame, FunctionCall, FunctionResult
from tests.mock_server import call_payload, response_payload, text_payload


class TestTextParts:
    def test_text_part(self):
        mapped = map_payload(text_payload("Hello"))
        assert len(mapped.fragments) == 1
        assert mapped.fragments[0].kind is FragmentKind.TEXT
        assert mapped.fragments[0].rendered_text == "Hello"

    def test_empty_text_is_skipped(self):
        assert map_payload(text_payload("")).fragments == ()

    def test_non_string_text_is_skipped(self):
        payload = {"content": {"parts": [{"text": 42}]}}
        assert map_payload(payload).fragments == ()

    def test_map_frame_uses_payload(self):
        mapped = map_frame(Frame(payload=text_payload("Hi"), index=3))
        assert mapped.fragments[0].rendered_text == "Hi"


class TestFunctionCalls:
    def test_call_fragment(self):
        mapped = map_payload(call_payload("c1", "get_weather", {"city": "Paris"}))
        fragment = mapped.fragments[0]
        assert fragment.kind is FragmentKind.FUNCTION_CALL
        assert fragment.function_call == FunctionCall("c1", "get_weather", {"city": "Paris"})
        assert fragment.call_id == "c1"
        assert fragment.rendered_text == (
            'Calling function: get_weather\nArguments:\n{\n  "city": "Paris"\n}'
        )

    def test_empty_args_render_as_braces(self):
        mapped = map_payload(call_payload("c1", "ping", {}))
        assert mapped.fragments[0].rendered_text == "Calling function: ping\nArguments:\n{}"

    def test_missing_args_default_to_empty(self):
        payload = {"content": {"parts": [{"functionCall": {"id": "c1", "name": "ping"}}]}}
        fragment = map_payload(payload).fragments[0]
        assert fragment.function_call.args == {}

    def test_non_object_args_replaced(self):
        payload = {"content": {"parts": [{"functionCall": {"id": "c1", "name": "f", "args": [1]}}]}}
        fragment = map_payload(payload).fragments[0]
        assert fragment.function_call.args == {}
        assert fragment.rendered_text.endswith("Arguments:\n{}")

    def test_missing_id_and_name_become_empty_strings(self):
        payload = {"content": {"parts": [{"functionCall": {}}]}}
        call = map_payload(payload).fragments[0].function_call
        assert call.id == ""
        assert call.name == ""


class TestFunctionResults:
    def test_string_result_rendered_verbatim(self):
        fragment = map_payload(response_payload("c1", "sunny")).fragments[0]
        assert fragment.kind is FragmentKind.FUNCTION_RESULT
        assert fragment.rendered_text == "Function result:\nsunny"
        assert fragment.function_result == FunctionResult("c1", "sunny")

    def test_structured_result_rendered_as_json(self):
        fragment = map_payload(response_payload("c1", {"temp": 21})).fragments[0]
        assert fragment.rendered_text == 'Function result:\n{\n  "temp": 21\n}'

    def test_null_result(self):
        fragment = map_payload(response_payload("c1", None)).fragments[0]
        assert fragment.rendered_text == "Function result:\nnull"

    def test_unserializable_result_uses_placeholder(self):
        rendered = render_function_result(FunctionResult("c1", object()))
        assert rendered == f"Function result:\n{FORMAT_ERROR_PLACEHOLDER}"

    def test_render_call_directly(self):
        assert render_function_call(FunctionCall("c1", "f")) == (
            "Calling function: f\nArguments:\n{}"
        )


class TestPartOrdering:
    def test_kinds_within_one_part_follow_fixed_order(self):
        payload = {
            "content": {
                "parts": [
                    {
                        "functionResponse": {"id": "c0", "result": "ok"},
                        "functionCall": {"id": "c1", "name": "f", "args": {}},
                        "text": "thinking",
                    }
                ]
            }
        }
        kinds = [f.kind for f in map_payload(payload).fragments]
        assert kinds == [
            FragmentKind.TEXT,
            FragmentKind.FUNCTION_CALL,
            FragmentKind.FUNCTION_RESULT,
        ]

    def test_parts_keep_wire_order(self):
        payload = {
            "content": {
                "parts": [
                    {"text": "first"},
                    {"functionCall": {"id": "c1", "name": "f"}},
                    {"text": "second"},
                ]
            }
        }
        texts = [f.rendered_text for f in map_payload(payload).fragments]
        assert texts[0] == "first"
        assert texts[2] == "second"


class TestFinishReasonAndShape:
    def test_finish_reason_extracted(self):
        assert map_payload(text_payload("x", finish_reason="MAX_TOKENS")).finish_reason == "MAX_TOKENS"

    def test_finish_reason_absent(self):
        assert map_payload(text_payload("x")).finish_reason is None

    def test_non_string_finish_reason_ignored(self):
        assert map_payload({"finishReason": 3}).finish_reason is None

    def test_missing_content(self):
        mapped = map_payload({"usageMetadata": {"totalTokenCount": 5}})
        assert mapped.fragments == ()

    def test_parts_not_a_list(self):
        assert map_payload({"content": {"parts": "text"}}).fragments == ()

    def test_non_mapping_parts_skipped(self):
        payload = {"content": {"parts": ["junk", None, {"text": "ok"}]}}
        assert [f.rendered_text for f in map_payload(payload).fragments] == ["ok"]

    def test_unknown_part_keys_ignored(self):
        payload = {"content": {"parts": [{"thought": True}]}}
        assert map_payload(payload).fragments == ()
