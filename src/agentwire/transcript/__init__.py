"""Transcript models — entries, content pieces, tool calls, session handle."""

from agentwire.transcript.models import (
    CodeContent,
    MessageContent,
    Role,
    SessionHandle,
    SessionStatus,
    TextContent,
    ThinkingContent,
    ToolCall,
    ToolCallStatus,
    ToolResultContent,
    ToolUseContent,
    TranscriptEntry,
)

__all__ = [
    "CodeContent",
    "MessageContent",
    "Role",
    "SessionHandle",
    "SessionStatus",
    "TextContent",
    "ThinkingContent",
    "ToolCall",
    "ToolCallStatus",
    "ToolResultContent",
    "ToolUseContent",
    "TranscriptEntry",
]
