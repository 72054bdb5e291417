"""Decode stream-json lines into ``ProtocolEvent`` values.

``decode`` is total: any line that is not a JSON object, lacks a known
``type``/``subtype``, or is missing a required field decodes to
``Unknown``.  Optional fields fall back to defaults instead of failing
the whole event, so one malformed field never aborts the stream.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from agentwire.protocol.events import (
    AssistantMessageStart,
    ContentBlockDelta,
    ContentBlockKind,
    ContentBlockStart,
    ContentBlockStop,
    Delta,
    ProtocolEvent,
    Result,
    SystemInit,
    TextBlock,
    TextDelta,
    ThinkingBlock,
    ThinkingDelta,
    ToolInputDelta,
    ToolResultBlock,
    ToolUseBlock,
    Unknown,
    UserMessageEcho,
)
from agentwire.protocol.values import (
    JSONObject,
    JSONValue,
    get_bool,
    get_int,
    get_list,
    get_object,
    get_str,
    get_str_list,
    parse_object,
)

logger = logging.getLogger(__name__)

#: Max characters of a malformed line to include in debug logs.
_PREVIEW_LEN = 200


def decode(line: str) -> ProtocolEvent:
    """Decode one stream-json record. Never raises."""
    record = parse_object(line)
    if record is None:
        logger.debug("non-JSON record from agent: %s", line[:_PREVIEW_LEN])
        return Unknown(raw=line)

    try:
        event = _dispatch(record)
    except ValidationError as exc:
        logger.debug("record failed validation: %s", exc)
        event = None

    if event is None:
        logger.debug("unrecognised record from agent: %s", line[:_PREVIEW_LEN])
        return Unknown(raw=line)
    return event


def _dispatch(record: JSONObject) -> ProtocolEvent | None:
    """Select a decoder by the top-level ``type`` discriminator."""
    event_type = get_str(record, "type")

    if event_type == "system":
        return _decode_system(record)
    elif event_type == "assistant":
        return _decode_assistant(record)
    elif event_type == "user":
        return _decode_user(record)
    elif event_type == "result":
        return _decode_result(record)
    return None


def _decode_system(record: JSONObject) -> SystemInit | None:
    session_id = get_str(record, "session_id")
    if get_str(record, "subtype") != "init" or session_id is None:
        return None
    return SystemInit(
        session_id=session_id,
        tools=get_str_list(record, "tools"),
        model=get_str(record, "model"),
    )


def _decode_assistant(record: JSONObject) -> ProtocolEvent | None:
    """Select a decoder by the second-level ``subtype`` discriminator."""
    subtype = get_str(record, "subtype")

    if subtype == "message":
        message = get_object(record, "message")
        if message is None:
            return None
        message_id = get_str(message, "id")
        if message_id is None:
            return None
        return AssistantMessageStart(
            message_id=message_id,
            stop_reason=get_str(message, "stop_reason"),
        )

    index = get_int(record, "index")
    if index is None:
        return None

    if subtype == "content_block_start":
        block = _decode_block(get_object(record, "content_block"))
        if block is None:
            return None
        return ContentBlockStart(index=index, block=block)

    elif subtype == "content_block_delta":
        delta = _decode_delta(get_object(record, "delta"))
        if delta is None:
            return None
        return ContentBlockDelta(index=index, delta=delta)

    elif subtype == "content_block_stop":
        return ContentBlockStop(index=index)

    return None


def _decode_block(block: JSONObject | None) -> ContentBlockKind | None:
    if block is None:
        return None
    block_type = get_str(block, "type")
    if block_type == "text":
        return TextBlock()
    elif block_type == "tool_use":
        return ToolUseBlock(
            id=get_str(block, "id") or "",
            name=get_str(block, "name") or "",
        )
    elif block_type == "thinking":
        return ThinkingBlock()
    return None


def _decode_delta(delta: JSONObject | None) -> Delta | None:
    if delta is None:
        return None
    delta_type = get_str(delta, "type")
    if delta_type == "text_delta":
        return TextDelta(text=get_str(delta, "text") or "")
    elif delta_type == "input_json_delta":
        return ToolInputDelta(partial_json=get_str(delta, "partial_json") or "")
    elif delta_type == "thinking_delta":
        return ThinkingDelta(thinking=get_str(delta, "thinking") or "")
    return None


def _decode_user(record: JSONObject) -> UserMessageEcho | None:
    subtype = record.get("subtype")
    if subtype is not None and subtype != "message":
        return None
    message = get_object(record, "message")
    if message is None:
        return None

    results: list[ToolResultBlock] = []
    for item in get_list(message, "content"):
        if not isinstance(item, dict) or get_str(item, "type") != "tool_result":
            continue
        tool_use_id = get_str(item, "tool_use_id")
        if tool_use_id is None:
            continue
        results.append(
            ToolResultBlock(
                tool_use_id=tool_use_id,
                content=_flatten_result_content(item.get("content")),
                is_error=bool(get_bool(item, "is_error")),
            )
        )

    return UserMessageEcho(
        message_id=get_str(message, "id") or "",
        tool_results=results,
    )


def _flatten_result_content(content: JSONValue) -> str:
    """Tool result content is either a string or a list of text parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if not isinstance(part, dict) or get_str(part, "type") != "text":
                continue
            text = get_str(part, "text")
            if text is not None:
                parts.append(text)
        return "\n".join(parts)
    return ""


def _decode_result(record: JSONObject) -> Result:
    return Result(
        subtype=get_str(record, "subtype"),
        duration_ms=get_int(record, "duration_ms"),
        num_turns=get_int(record, "num_turns"),
        session_id=get_str(record, "session_id"),
        result=get_str(record, "result"),
    )
