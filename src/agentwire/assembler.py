"""Conversation assembler — folds the agent event feed into a transcript.

The assembler is the single consumer of the supervisor's signal channel.
It keeps the transient state of open content blocks, appends finalized
``TranscriptEntry`` values in block-stop order, and tracks tool calls
awaiting human approval.  None of its operations are fatal: malformed
tool input degrades to ``{}`` and collaborator failures are logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from agentwire.errors import NotRunningError, UnknownToolCallError
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
from agentwire.protocol.values import JSONObject, parse_object
from agentwire.store import ApprovalSurface, TranscriptStore
from agentwire.supervisor import (
    CompleteSignal,
    ErrorSignal,
    EventSignal,
    ProcessSupervisor,
    SupervisorSignal,
)
from agentwire.transcript.models import (
    MessageContent,
    Role,
    SessionHandle,
    TextContent,
    ThinkingContent,
    ToolCall,
    ToolCallStatus,
    ToolResultContent,
    ToolUseContent,
    TranscriptEntry,
)

logger = logging.getLogger(__name__)

#: Max characters of unknown records to include in debug logs.
_PREVIEW_LEN = 200


@dataclass
class _ToolAccumulator:
    id: str
    name: str
    fragments: list[str] = field(default_factory=list)

    def parse_input(self) -> JSONObject:
        """Parse the concatenated fragments, or ``{}`` if they are not an object."""
        text = "".join(self.fragments)
        if not text.strip():
            return {}
        parsed = parse_object(text)
        if parsed is None:
            logger.warning(
                "tool %s (%s): unparseable input, using {}: %s",
                self.name,
                self.id,
                text[:_PREVIEW_LEN],
            )
            return {}
        return parsed


class ConversationAssembler:
    """Reduces protocol events into transcript entries and pending tool calls.

    Snapshots exposed to collaborators (``entries``, ``pending_tool_calls``)
    are copies; the underlying state is only mutated here, on the single
    consumer of the supervisor's channel.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        store: TranscriptStore | None = None,
        approval_surface: ApprovalSurface | None = None,
    ) -> None:
        self._supervisor = supervisor
        self._store = store
        self._approval_surface = approval_surface

        self._entries: list[TranscriptEntry] = []
        self._pending: dict[str, ToolCall] = {}

        # Transient block state.
        self._text_index: int | None = None
        self._text: list[str] = []
        self._thinking_index: int | None = None
        self._thinking: list[str] = []
        self._tool_blocks: dict[int, _ToolAccumulator] = {}

        self._streaming = False
        self._last_result: Result | None = None
        self._last_error: str | None = None

    # ------------------------------------------------------------------ #
    # Snapshots
    # ------------------------------------------------------------------ #

    @property
    def entries(self) -> tuple[TranscriptEntry, ...]:
        """Finalized entries in the order their blocks closed."""
        return tuple(self._entries)

    @property
    def pending_tool_calls(self) -> dict[str, ToolCall]:
        """Tool calls awaiting a decision, keyed by tool id."""
        return dict(self._pending)

    @property
    def session(self) -> SessionHandle | None:
        return self._supervisor.session

    @property
    def is_streaming(self) -> bool:
        return self._streaming

    @property
    def streaming_text(self) -> str:
        """Text accumulated so far for the open text block."""
        return "".join(self._text)

    @property
    def last_result(self) -> Result | None:
        return self._last_result

    @property
    def last_error(self) -> str | None:
        return self._last_error

    # ------------------------------------------------------------------ #
    # Session control
    # ------------------------------------------------------------------ #

    async def start(
        self,
        working_directory: str | Path,
        *,
        prompt: str | None = None,
        resume_session_id: str | None = None,
        continue_previous: bool = False,
    ) -> SessionHandle:
        """Start a run, recording *prompt* as a user entry first.

        Pending tool calls from a previous run can no longer be answered,
        so they are dropped.
        """
        self._reset_transient()
        self._drop_pending()
        self._last_error = None
        if prompt is not None:
            self.record_user_message(prompt)
        self._streaming = True
        try:
            return await self._supervisor.start(
                working_directory,
                prompt=prompt,
                resume_session_id=resume_session_id,
                continue_previous=continue_previous,
            )
        except Exception:
            self._streaming = False
            raise

    async def submit(self, text: str) -> TranscriptEntry:
        """Record *text* as a user entry and deliver it to the agent.

        Sends it on the running process, or resumes the session with it
        as a one-shot prompt when the process has exited.

        Raises:
            NotRunningError: If there is no session to deliver it to.
        """
        if self._supervisor.is_running:
            entry = self.record_user_message(text)
            self._supervisor.send(text)
            self._streaming = True
            return entry

        session = self._supervisor.session
        if session is None:
            msg = "No session to send the message to"
            raise NotRunningError(msg)
        await self.start(
            session.working_directory,
            prompt=text,
            resume_session_id=session.session_id,
        )
        return self._entries[-1]

    async def stop(self) -> None:
        await self._supervisor.stop()

    def record_user_message(self, text: str) -> TranscriptEntry:
        """Append a user text entry (the human side of the conversation)."""
        return self._append(Role.USER, [TextContent(text=text)])

    # ------------------------------------------------------------------ #
    # Tool approval
    # ------------------------------------------------------------------ #

    def approve(self, tool_id: str) -> ToolCall:
        return self.resolve_tool_call(tool_id, approved=True)

    def deny(self, tool_id: str) -> ToolCall:
        return self.resolve_tool_call(tool_id, approved=False)

    def resolve_tool_call(self, tool_id: str, approved: bool) -> ToolCall:
        """Relay a human decision to the agent and clear the pending call.

        Does not wait for the agent to act on it; any tool result arrives
        later through the event feed.

        Raises:
            UnknownToolCallError: If *tool_id* is not pending.
            NotRunningError, StreamWriteError: If the decision cannot be
                written; the call stays pending.
        """
        call = self._pending.get(tool_id)
        if call is None:
            msg = f"No pending tool call with id {tool_id!r}"
            raise UnknownToolCallError(msg)

        self._supervisor.respond_to_tool(tool_id, approved)
        del self._pending[tool_id]
        status = ToolCallStatus.APPROVED if approved else ToolCallStatus.DENIED
        logger.info("tool %s (%s) %s", call.name, tool_id, status.value)
        self._notify_removed(tool_id)
        return call.model_copy(update={"status": status})

    # ------------------------------------------------------------------ #
    # Signal consumption
    # ------------------------------------------------------------------ #

    async def consume(self) -> None:
        """Process supervisor signals forever. Cancel to stop."""
        while True:
            signal = await self._next_signal()
            self.handle_signal(signal)

    async def run_turn(self) -> Result | None:
        """Process signals until a ``Result`` event or the run completes."""
        while True:
            signal = await self._next_signal()
            self.handle_signal(signal)
            if isinstance(signal, CompleteSignal):
                return self._last_result
            if isinstance(signal, EventSignal) and isinstance(signal.event, Result):
                return signal.event

    async def run_until_complete(self) -> int | None:
        """Process signals until the current run completes; return its exit code."""
        while True:
            signal = await self._next_signal()
            self.handle_signal(signal)
            if isinstance(signal, CompleteSignal):
                return signal.returncode

    def handle_signal(self, signal: SupervisorSignal) -> None:
        """Apply one signal.  Signals left over from an earlier run are dropped."""
        if not self._is_current(signal):
            logger.debug("dropping signal from run %d: %r", signal.run_id, signal)
            return
        if isinstance(signal, EventSignal):
            self.apply(signal.event)
        elif isinstance(signal, ErrorSignal):
            self._last_error = signal.message
            logger.warning("agent error: %s", signal.message)
        elif isinstance(signal, CompleteSignal):
            # An interrupted run still flushes whatever was accumulated.
            self._finish_turn()
            logger.debug("run complete (exit code %s)", signal.returncode)

    async def _next_signal(self) -> SupervisorSignal:
        """Wait for the next signal belonging to the current run."""
        while True:
            signal = await self._supervisor.signals.get()
            if self._is_current(signal):
                return signal
            logger.debug("dropping signal from run %d: %r", signal.run_id, signal)

    def _is_current(self, signal: SupervisorSignal) -> bool:
        return signal.run_id == self._supervisor.run_id

    # ------------------------------------------------------------------ #
    # Reduction
    # ------------------------------------------------------------------ #

    def apply(self, event: ProtocolEvent) -> None:
        """Fold one protocol event into the assembler state."""
        match event:
            case SystemInit(session_id=session_id):
                self._streaming = True
                self._adopt_session_id(session_id)
            case AssistantMessageStart():
                self._streaming = True
            case UserMessageEcho(tool_results=results):
                self._append_tool_results(results)
            case ContentBlockStart(index=index, block=block):
                self._streaming = True
                self._start_block(index, block)
            case ContentBlockDelta(index=index, delta=delta):
                self._apply_delta(index, delta)
            case ContentBlockStop(index=index):
                self._stop_block(index)
            case Result():
                self._last_result = event
                if event.session_id:
                    self._adopt_session_id(event.session_id)
                self._finish_turn()
            case Unknown(raw=raw):
                logger.debug("ignoring unknown record: %s", raw[:_PREVIEW_LEN])

    def _start_block(self, index: int, block: ContentBlockKind) -> None:
        match block:
            case TextBlock():
                self._text_index = index
                self._text = []
            case ToolUseBlock(id=tool_id, name=name):
                self._tool_blocks[index] = _ToolAccumulator(tool_id, name)
                call = ToolCall(id=tool_id, name=name)
                self._pending[tool_id] = call
                self._notify_added(call)
            case ThinkingBlock():
                self._thinking_index = index
                self._thinking = []

    def _apply_delta(self, index: int, delta: Delta) -> None:
        match delta:
            case TextDelta(text=text):
                self._text.append(text)
            case ToolInputDelta(partial_json=fragment):
                accumulator = self._tool_blocks.get(index)
                if accumulator is None:
                    logger.debug("input delta for unknown block %d", index)
                    return
                accumulator.fragments.append(fragment)
            case ThinkingDelta(thinking=thinking):
                self._thinking.append(thinking)

    def _stop_block(self, index: int) -> None:
        if index == self._text_index:
            self._flush_text()
            self._text_index = None

        accumulator = self._tool_blocks.pop(index, None)
        if accumulator is not None:
            self._finalize_tool(accumulator)

        if index == self._thinking_index:
            self._flush_thinking()
            self._thinking_index = None

    def _finish_turn(self) -> None:
        """Flush every open accumulator and clear transient state."""
        self._flush_text()
        self._flush_thinking()
        for index in sorted(self._tool_blocks):
            self._finalize_tool(self._tool_blocks[index])
        self._reset_transient()
        self._streaming = False

    def _flush_text(self) -> None:
        text = "".join(self._text)
        self._text = []
        if text:
            self._append(Role.ASSISTANT, [TextContent(text=text)])

    def _flush_thinking(self) -> None:
        thought = "".join(self._thinking)
        self._thinking = []
        if thought:
            self._append(Role.ASSISTANT, [ThinkingContent(thought=thought)])

    def _finalize_tool(self, accumulator: _ToolAccumulator) -> None:
        call = ToolCall(
            id=accumulator.id,
            name=accumulator.name,
            input=accumulator.parse_input(),
        )
        if accumulator.id in self._pending:
            self._pending[accumulator.id] = call
        self._append(Role.ASSISTANT, [ToolUseContent(tool_call=call)])

    def _append_tool_results(self, results: list[ToolResultBlock]) -> None:
        if not results:
            return
        content: list[MessageContent] = [
            ToolResultContent(
                tool_id=result.tool_use_id,
                output=result.content,
                is_error=result.is_error,
            )
            for result in results
        ]
        self._append(Role.USER, content)

    def _reset_transient(self) -> None:
        self._text_index = None
        self._text = []
        self._thinking_index = None
        self._thinking = []
        self._tool_blocks = {}

    # ------------------------------------------------------------------ #
    # Collaborators
    # ------------------------------------------------------------------ #

    def _append(self, role: Role, content: list[MessageContent]) -> TranscriptEntry:
        entry = TranscriptEntry(role=role, content=content)
        self._entries.append(entry)
        if self._store is not None:
            try:
                self._store.create_entry(entry)
            except Exception:
                logger.exception("store failed to record %s entry", role.value)
        return entry

    def _adopt_session_id(self, session_id: str) -> None:
        if not self._supervisor.adopt_session_id(session_id):
            return
        if self._store is not None:
            try:
                self._store.update_session_identifier(session_id)
            except Exception:
                logger.exception("store failed to update session id")

    def _drop_pending(self) -> None:
        for tool_id in list(self._pending):
            del self._pending[tool_id]
            self._notify_removed(tool_id)

    def _notify_added(self, call: ToolCall) -> None:
        if self._approval_surface is None:
            return
        try:
            self._approval_surface.tool_call_added(call)
        except Exception:
            logger.exception("approval surface failed on tool %s", call.id)

    def _notify_removed(self, tool_id: str) -> None:
        if self._approval_surface is None:
            return
        try:
            self._approval_surface.tool_call_removed(tool_id)
        except Exception:
            logger.exception("approval surface failed on tool %s", tool_id)
