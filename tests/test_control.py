"""Tests for outbound control records."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from agentwire.errors import EncodingError
from agentwire.protocol.control import (
    ToolResponseRecord,
    UserMessageRecord,
    encode_tool_response,
    encode_user_message,
)


class TestEncodeUserMessage:
    def test_single_line_json(self) -> None:
        data = encode_user_message("hello")
        assert data.endswith(b"\n")
        assert data.count(b"\n") == 1
        assert json.loads(data) == {"type": "user_message", "content": "hello"}

    def test_newlines_and_unicode_are_escaped(self) -> None:
        text = 'multi\nline "quoted" ☃'
        data = encode_user_message(text)
        assert data.count(b"\n") == 1
        assert json.loads(data)["content"] == text

    def test_non_string_rejected(self) -> None:
        with pytest.raises(EncodingError):
            encode_user_message(42)  # type: ignore[arg-type]

    def test_unencodable_text_rejected(self) -> None:
        with pytest.raises(EncodingError, match="Cannot encode user message"):
            encode_user_message("bad \ud800 surrogate")


class TestEncodeToolResponse:
    @pytest.mark.parametrize("approved", [True, False])
    def test_record_shape(self, approved: bool) -> None:
        data = encode_tool_response("t1", approved)
        assert data.endswith(b"\n")
        assert json.loads(data) == {
            "type": "tool_result",
            "tool_use_id": "t1",
            "approved": approved,
        }

    def test_non_bool_approval_rejected(self) -> None:
        with pytest.raises(EncodingError):
            encode_tool_response("t1", "yes")  # type: ignore[arg-type]

    def test_non_string_id_rejected(self) -> None:
        with pytest.raises(EncodingError):
            encode_tool_response(None, True)  # type: ignore[arg-type]

    def test_unencodable_id_rejected(self) -> None:
        with pytest.raises(EncodingError, match="Cannot encode tool response"):
            encode_tool_response("t\udfff", True)


class TestRecords:
    def test_records_are_frozen(self) -> None:
        record = UserMessageRecord(content="x")
        with pytest.raises(ValidationError):
            record.content = "y"  # type: ignore[misc]

    def test_to_line_matches_encoder(self) -> None:
        record = ToolResponseRecord(tool_use_id="t9", approved=True)
        assert record.to_line() == encode_tool_response("t9", True)
