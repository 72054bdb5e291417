"""Collaborator interfaces consumed by the conversation assembler."""

from __future__ import annotations

import json
import threading
from typing import IO, Protocol, runtime_checkable

from agentwire.transcript.models import ToolCall, TranscriptEntry


@runtime_checkable
class TranscriptStore(Protocol):
    """Receives transcript entries as they finalize.

    Failures raised here are logged by the assembler and never reach the
    streaming path.
    """

    def create_entry(self, entry: TranscriptEntry) -> None:
        """Take ownership of a newly finalized entry."""
        ...

    def update_session_identifier(self, new_id: str) -> None:
        """Record the session id the agent reported for this session."""
        ...


@runtime_checkable
class ApprovalSurface(Protocol):
    """Observes additions to and removals from the pending-approval set."""

    def tool_call_added(self, call: ToolCall) -> None: ...

    def tool_call_removed(self, tool_id: str) -> None: ...


class MemoryStore:
    """Keeps entries and session ids in memory."""

    def __init__(self) -> None:
        self.entries: list[TranscriptEntry] = []
        self.session_ids: list[str] = []

    def create_entry(self, entry: TranscriptEntry) -> None:
        self.entries.append(entry)

    def update_session_identifier(self, new_id: str) -> None:
        self.session_ids.append(new_id)


class JsonlEchoStore:
    """Echoes entries and session-id changes to a text stream as JSONL.

    Thread-safe: all writes are serialized through a ``threading.Lock``.
    The stream is flushed after every record.
    """

    def __init__(self, stream: IO[str]) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def create_entry(self, entry: TranscriptEntry) -> None:
        payload = entry.model_dump(mode="json")
        self._write(json.dumps({"type": "entry", "entry": payload}))

    def update_session_identifier(self, new_id: str) -> None:
        self._write(json.dumps({"type": "session", "session_id": new_id}))

    def _write(self, line: str) -> None:
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()
