"""Pydantic v2 models for the assembled conversation transcript."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from agentwire.protocol.values import JSONValue


def iso_now() -> str:
    """Return the current UTC time as ISO 8601 with milliseconds."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ToolCallStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionStatus(StrEnum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    TERMINATED = "terminated"


class ToolCall(BaseModel):
    """A request from the agent to invoke a named tool."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(description="Tool use identifier")
    name: str = Field(description="Tool name")
    input: dict[str, JSONValue] = Field(
        default_factory=dict, description="Structured tool input"
    )
    status: ToolCallStatus = ToolCallStatus.PENDING
    output: str | None = None


# ------------------------------------------------------------------ #
# Content pieces
# ------------------------------------------------------------------ #


class _ContentBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class TextContent(_ContentBase):
    type: Literal["text"] = "text"
    text: str


class CodeContent(_ContentBase):
    type: Literal["code"] = "code"
    language: str
    content: str


class ToolUseContent(_ContentBase):
    type: Literal["tool_use"] = "tool_use"
    tool_call: ToolCall


class ToolResultContent(_ContentBase):
    type: Literal["tool_result"] = "tool_result"
    tool_id: str
    output: str
    is_error: bool = False


class ThinkingContent(_ContentBase):
    type: Literal["thinking"] = "thinking"
    thought: str


MessageContent = Annotated[
    TextContent | CodeContent | ToolUseContent | ToolResultContent | ThinkingContent,
    Field(discriminator="type"),
]
"""Discriminated union of transcript content pieces."""


class TranscriptEntry(BaseModel):
    """One finalized, immutable unit of conversation history."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    role: Role
    timestamp: str = Field(
        default_factory=iso_now,
        description="ISO 8601 timestamp with milliseconds",
    )
    content: list[MessageContent] = Field(min_length=1)


class SessionHandle(BaseModel):
    """Identity and lifecycle of one continuous interaction."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    session_id: str | None = Field(
        default=None,
        description="Assigned by the agent on init, or supplied to resume",
    )
    working_directory: Path
    status: SessionStatus = SessionStatus.NOT_STARTED
