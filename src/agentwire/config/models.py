"""Pydantic v2 models for agentwire.yaml configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

#: Well-known install locations for the agent CLI, searched in order.
#: ``~`` is expanded at resolution time.
DEFAULT_CANDIDATE_PATHS = [
    "~/.local/bin/claude",
    "/usr/local/bin/claude",
    "/opt/homebrew/bin/claude",
    "~/.claude/local/claude",
]

#: Env vars stripped from the CLI subprocess so it uses subscription auth.
DEFAULT_STRIPPED_ENV_KEYS = ["ANTHROPIC_API_KEY"]


class SupervisorConfig(BaseModel):
    """How the agent process is located, launched, read and stopped."""

    model_config = ConfigDict(extra="forbid")

    executable: str = Field(
        default="claude",
        description="Command name, or an absolute path that skips the search",
    )
    candidate_paths: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CANDIDATE_PATHS),
        description="Install locations searched before falling back to the shell",
    )
    shell: str | None = Field(
        default=None,
        description="Shell used for PATH lookup (defaults to $SHELL, then /bin/sh)",
    )
    extra_args: list[str] = Field(
        default_factory=list,
        description="Additional arguments appended to every invocation",
    )
    stripped_env_keys: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STRIPPED_ENV_KEYS),
        description="Environment variables removed from the child environment",
    )
    shutdown_grace: float = Field(
        default=5.0,
        ge=0,
        description="Seconds to wait after SIGTERM before SIGKILL",
    )
    kill_wait: float = Field(
        default=3.0,
        ge=0,
        description="Seconds to wait for the process to reap after SIGKILL",
    )
    read_chunk_size: int = Field(
        default=65_536,
        gt=0,
        description="Bytes requested per stdout read",
    )
    max_line_bytes: int = Field(
        default=1_048_576,
        gt=0,
        description="Longest stdout record accepted; longer lines are skipped",
    )
    flush_partial_line: bool = Field(
        default=True,
        description="Deliver an unterminated final stdout line at EOF",
    )

    @field_validator("executable")
    @classmethod
    def _non_empty_executable(cls, value: str) -> str:
        if not value.strip():
            msg = "executable must not be empty"
            raise ValueError(msg)
        return value


class AgentWireConfig(BaseModel):
    """Top-level agentwire.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1", description="Config schema version")
    supervisor: SupervisorConfig = Field(
        default_factory=SupervisorConfig,
        description="Agent process settings",
    )
    tool_policy: Literal["ask", "approve", "deny"] = Field(
        default="ask",
        description="How `agentwire run` answers tool approval requests",
    )
