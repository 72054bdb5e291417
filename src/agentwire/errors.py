"""Typed failures raised to callers of the supervisor and assembler."""

from __future__ import annotations


class AgentWireError(Exception):
    """Base class for agentwire errors."""


class LaunchError(AgentWireError):
    """The agent executable could not be resolved or spawned."""


class NotRunningError(AgentWireError):
    """A write was attempted while no agent process is running."""


class EncodingError(AgentWireError):
    """A control record could not be serialized."""


class StreamWriteError(AgentWireError):
    """The OS rejected a write to the agent's stdin."""


class UnknownToolCallError(AgentWireError):
    """An approval decision referenced a tool call that is not pending."""
