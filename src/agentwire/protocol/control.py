"""Outbound control records written to the agent's stdin."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic_core import PydanticSerializationError

from agentwire.errors import EncodingError


class _ControlRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, strict=True)

    def to_line(self) -> bytes:
        """Serialize as one compact JSON object followed by a newline."""
        return self.model_dump_json().encode("utf-8") + b"\n"


class UserMessageRecord(_ControlRecord):
    type: Literal["user_message"] = "user_message"
    content: str


class ToolResponseRecord(_ControlRecord):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    approved: bool


def encode_user_message(text: str) -> bytes:
    """Encode a ``user_message`` record.

    Raises:
        EncodingError: If *text* is not a string or has no UTF-8 form.
    """
    return _encode("user message", UserMessageRecord, content=text)


def encode_tool_response(tool_id: str, approved: bool) -> bytes:
    """Encode a ``tool_result`` approval record.

    Raises:
        EncodingError: If *tool_id* is not a string or *approved* not a bool.
    """
    return _encode(
        "tool response", ToolResponseRecord, tool_use_id=tool_id, approved=approved
    )


def _encode(what: str, record_type: type[_ControlRecord], **fields: object) -> bytes:
    try:
        return record_type(**fields).to_line()
    except ValidationError as exc:
        msg = f"Cannot encode {what}: {exc.errors()[0]['msg']}"
        raise EncodingError(msg) from exc
    except (PydanticSerializationError, UnicodeEncodeError) as exc:
        # Lone surrogates pass validation but have no UTF-8 form.
        msg = f"Cannot encode {what}: {exc}"
        raise EncodingError(msg) from exc
