"""Stream-json protocol — line framing, event models, decoder, control records."""

from agentwire.protocol.control import encode_tool_response, encode_user_message
from agentwire.protocol.decoder import decode
from agentwire.protocol.events import (
    AssistantMessageStart,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
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
from agentwire.protocol.framing import LineFramer, iter_lines
from agentwire.protocol.values import JSONObject, JSONValue

__all__ = [
    "AssistantMessageStart",
    "ContentBlockDelta",
    "ContentBlockStart",
    "ContentBlockStop",
    "JSONObject",
    "JSONValue",
    "LineFramer",
    "ProtocolEvent",
    "Result",
    "SystemInit",
    "TextBlock",
    "TextDelta",
    "ThinkingBlock",
    "ThinkingDelta",
    "ToolInputDelta",
    "ToolResultBlock",
    "ToolUseBlock",
    "Unknown",
    "UserMessageEcho",
    "decode",
    "encode_tool_response",
    "encode_user_message",
    "iter_lines",
]
