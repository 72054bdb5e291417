"""Pydantic v2 models for events decoded from the agent's stream-json output."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class _Frozen(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


# ------------------------------------------------------------------ #
# Content block kinds
# ------------------------------------------------------------------ #


class TextBlock(_Frozen):
    """A run of assistant text."""

    type: Literal["text"] = "text"


class ToolUseBlock(_Frozen):
    """A tool invocation whose input streams in as partial JSON."""

    type: Literal["tool_use"] = "tool_use"
    id: str = Field(description="Tool use identifier")
    name: str = Field(description="Tool name")


class ThinkingBlock(_Frozen):
    """A reasoning segment."""

    type: Literal["thinking"] = "thinking"


ContentBlockKind = Annotated[
    TextBlock | ToolUseBlock | ThinkingBlock,
    Field(discriminator="type"),
]


# ------------------------------------------------------------------ #
# Deltas
# ------------------------------------------------------------------ #


class TextDelta(_Frozen):
    type: Literal["text_delta"] = "text_delta"
    text: str = ""


class ToolInputDelta(_Frozen):
    """A fragment of a tool's JSON input; fragments concatenate."""

    type: Literal["input_json_delta"] = "input_json_delta"
    partial_json: str = ""


class ThinkingDelta(_Frozen):
    type: Literal["thinking_delta"] = "thinking_delta"
    thinking: str = ""


Delta = Annotated[
    TextDelta | ToolInputDelta | ThinkingDelta,
    Field(discriminator="type"),
]


# ------------------------------------------------------------------ #
# Events
# ------------------------------------------------------------------ #


class SystemInit(_Frozen):
    """Emitted once at stream start."""

    kind: Literal["system_init"] = "system_init"
    session_id: str = Field(description="Session identifier assigned by the agent")
    tools: list[str] = Field(default_factory=list, description="Available tools")
    model: str | None = Field(default=None, description="Model identifier")


class AssistantMessageStart(_Frozen):
    kind: Literal["assistant_message"] = "assistant_message"
    message_id: str
    stop_reason: str | None = None


class ToolResultBlock(_Frozen):
    """A tool result echoed back to the model in a user message."""

    tool_use_id: str
    content: str = ""
    is_error: bool = False


class UserMessageEcho(_Frozen):
    kind: Literal["user_message"] = "user_message"
    message_id: str = ""
    tool_results: list[ToolResultBlock] = Field(default_factory=list)


class ContentBlockStart(_Frozen):
    kind: Literal["content_block_start"] = "content_block_start"
    index: int
    block: ContentBlockKind


class ContentBlockDelta(_Frozen):
    kind: Literal["content_block_delta"] = "content_block_delta"
    index: int
    delta: Delta


class ContentBlockStop(_Frozen):
    kind: Literal["content_block_stop"] = "content_block_stop"
    index: int


class Result(_Frozen):
    """Final event of a run's streaming phase."""

    kind: Literal["result"] = "result"
    subtype: str | None = None
    duration_ms: int | None = None
    num_turns: int | None = None
    session_id: str | None = None
    result: str | None = None


class Unknown(_Frozen):
    """Any record that does not match a known shape. Never fatal."""

    kind: Literal["unknown"] = "unknown"
    raw: str


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("kind", ""))
    return str(getattr(v, "kind", ""))


ProtocolEvent = Annotated[
    Annotated[SystemInit, Tag("system_init")]
    | Annotated[AssistantMessageStart, Tag("assistant_message")]
    | Annotated[UserMessageEcho, Tag("user_message")]
    | Annotated[ContentBlockStart, Tag("content_block_start")]
    | Annotated[ContentBlockDelta, Tag("content_block_delta")]
    | Annotated[ContentBlockStop, Tag("content_block_stop")]
    | Annotated[Result, Tag("result")]
    | Annotated[Unknown, Tag("unknown")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all protocol events."""
