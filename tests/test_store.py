"""Tests for transcript stores and collaborator protocols."""

from __future__ import annotations

import io
import json
import threading
from unittest.mock import MagicMock

from agentwire.store import ApprovalSurface, JsonlEchoStore, MemoryStore, TranscriptStore
from agentwire.transcript.models import (
    Role,
    TextContent,
    ToolCall,
    ToolUseContent,
    TranscriptEntry,
)


def _entry(text: str = "hi") -> TranscriptEntry:
    return TranscriptEntry(role=Role.ASSISTANT, content=[TextContent(text=text)])


class TestProtocols:
    def test_memory_store_is_a_transcript_store(self) -> None:
        assert isinstance(MemoryStore(), TranscriptStore)

    def test_echo_store_is_a_transcript_store(self) -> None:
        assert isinstance(JsonlEchoStore(io.StringIO()), TranscriptStore)

    def test_approval_surface_shape(self) -> None:
        class Surface:
            def tool_call_added(self, call: ToolCall) -> None: ...

            def tool_call_removed(self, tool_id: str) -> None: ...

        assert isinstance(Surface(), ApprovalSurface)
        assert not isinstance(MemoryStore(), ApprovalSurface)


class TestMemoryStore:
    def test_records_entries_and_ids(self) -> None:
        store = MemoryStore()
        entry = _entry()
        store.create_entry(entry)
        store.update_session_identifier("s-1")
        assert store.entries == [entry]
        assert store.session_ids == ["s-1"]


class TestJsonlEchoStore:
    def test_entry_line(self) -> None:
        buf = io.StringIO()
        store = JsonlEchoStore(buf)
        call = ToolCall(id="t1", name="Bash", input={"cmd": "ls", "n": [1, None]})
        entry = TranscriptEntry(
            role=Role.ASSISTANT,
            timestamp="2026-01-01T00:00:00.000Z",
            content=[ToolUseContent(tool_call=call)],
        )

        store.create_entry(entry)

        (line,) = buf.getvalue().splitlines()
        record = json.loads(line)
        assert record["type"] == "entry"
        assert record["entry"]["role"] == "assistant"
        assert record["entry"]["timestamp"] == "2026-01-01T00:00:00.000Z"
        assert record["entry"]["content"][0]["tool_call"] == {
            "id": "t1",
            "name": "Bash",
            "input": {"cmd": "ls", "n": [1, None]},
            "status": "pending",
            "output": None,
        }
        assert TranscriptEntry.model_validate(record["entry"]) == entry

    def test_session_line(self) -> None:
        buf = io.StringIO()
        JsonlEchoStore(buf).update_session_identifier("s-42")
        assert json.loads(buf.getvalue()) == {"type": "session", "session_id": "s-42"}

    def test_flushes_every_record(self) -> None:
        stream = MagicMock()
        store = JsonlEchoStore(stream)
        store.create_entry(_entry())
        store.update_session_identifier("s")
        assert stream.flush.call_count == 2

    def test_concurrent_writes_do_not_interleave(self) -> None:
        buf = io.StringIO()
        store = JsonlEchoStore(buf)

        def _writer(n: int) -> None:
            for i in range(50):
                store.create_entry(_entry(f"{n}-{i}"))

        threads = [threading.Thread(target=_writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = buf.getvalue().splitlines()
        assert len(lines) == 200
        for line in lines:
            assert json.loads(line)["type"] == "entry"
