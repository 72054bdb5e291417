"""Process supervisor — owns the agent CLI subprocess and its event feed."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shlex
from collections import deque
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from agentwire.config.models import SupervisorConfig
from agentwire.errors import LaunchError, NotRunningError, StreamWriteError
from agentwire.protocol.control import encode_tool_response, encode_user_message
from agentwire.protocol.decoder import decode
from agentwire.protocol.events import ProtocolEvent
from agentwire.protocol.framing import LineFramer, iter_lines
from agentwire.transcript.models import SessionHandle, SessionStatus

logger = logging.getLogger(__name__)

#: Stderr lines retained for the exit-error preview.
_STDERR_TAIL_LINES = 50

#: Shell used for PATH lookup when neither config nor $SHELL names one.
_FALLBACK_SHELL = "/bin/sh"


class SupervisorState(StrEnum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    TERMINATING = "terminating"


# ------------------------------------------------------------------ #
# Signal channel
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class EventSignal:
    """A decoded protocol event, in arrival order."""

    event: ProtocolEvent
    run_id: int = 0


@dataclass(frozen=True, slots=True)
class ErrorSignal:
    """An I/O-level failure (read error, broken pipe, non-zero exit)."""

    message: str
    run_id: int = 0


@dataclass(frozen=True, slots=True)
class CompleteSignal:
    """Emitted exactly once per run when the process is gone."""

    returncode: int | None
    run_id: int = 0


SupervisorSignal = EventSignal | ErrorSignal | CompleteSignal


class _Run:
    """Everything owned by one launched process, released together."""

    def __init__(
        self, run_id: int, process: asyncio.subprocess.Process, framer: LineFramer
    ) -> None:
        self.run_id = run_id
        self.process = process
        self.framer = framer
        self.read_task: asyncio.Task[None] | None = None
        self.stderr_task: asyncio.Task[str] | None = None
        self.completed = False


# ------------------------------------------------------------------ #
# Invocation
# ------------------------------------------------------------------ #


def build_arguments(
    *,
    prompt: str | None = None,
    resume_session_id: str | None = None,
    continue_previous: bool = False,
    extra_args: list[str] | None = None,
) -> list[str]:
    """Build the agent argument vector (without the executable)."""
    if resume_session_id is not None and continue_previous:
        msg = "resume_session_id and continue_previous are mutually exclusive"
        raise ValueError(msg)

    args = ["--output-format", "stream-json"]
    if resume_session_id is not None:
        args.extend(["--resume", resume_session_id])
    elif continue_previous:
        args.append("--continue")
    if prompt is not None:
        args.extend(["-p", prompt])
    if extra_args:
        args.extend(extra_args)
    return args


def resolve_command(config: SupervisorConfig, args: list[str]) -> list[str]:
    """Return the full argv: a known install path, or a login-shell lookup.

    Raises:
        LaunchError: If an absolute ``executable`` is not an executable file.
    """
    executable = os.path.expanduser(config.executable)
    if os.path.isabs(executable):
        if not _is_executable(executable):
            msg = f"Agent executable not found: {executable}"
            raise LaunchError(msg)
        return [executable, *args]

    name = os.path.basename(executable)
    for candidate in config.candidate_paths:
        path = os.path.expanduser(candidate)
        if os.path.basename(path) == name and _is_executable(path):
            logger.debug("resolved %s to %s", name, path)
            return [path, *args]

    shell = config.shell or os.environ.get("SHELL") or _FALLBACK_SHELL
    logger.debug("%s not in known locations, using %s for PATH lookup", name, shell)
    return [shell, "-l", "-c", shlex.join([executable, *args])]


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


# ------------------------------------------------------------------ #
# Supervisor
# ------------------------------------------------------------------ #


class ProcessSupervisor:
    """Runs one agent CLI process at a time and exposes its event feed.

    Decoded events, I/O errors and run completion are delivered in order
    on a single FIFO channel (``signals``).  Exactly one ``CompleteSignal``
    is emitted per started run, whether the process exits on its own,
    crashes, or is stopped.  Every signal carries the ``run_id`` of the run
    that produced it; the channel outlives runs, so consumers drop signals
    whose ``run_id`` is not the current one.

    State machine: ``Idle -> Starting -> Running -> Terminating -> Idle``.
    """

    def __init__(self, config: SupervisorConfig | None = None) -> None:
        self._config = config if config is not None else SupervisorConfig()
        self._signals: asyncio.Queue[SupervisorSignal] = asyncio.Queue()
        self._state = SupervisorState.IDLE
        self._session: SessionHandle | None = None
        self._run: _Run | None = None
        self._run_id = 0

    @property
    def config(self) -> SupervisorConfig:
        return self._config

    @property
    def signals(self) -> asyncio.Queue[SupervisorSignal]:
        """FIFO channel of events, errors and completions."""
        return self._signals

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def run_id(self) -> int:
        """Id of the most recently started run (0 before the first start)."""
        return self._run_id

    @property
    def session(self) -> SessionHandle | None:
        """Handle for the current (or most recent) session."""
        return self._session

    @property
    def is_running(self) -> bool:
        return self._state is SupervisorState.RUNNING

    @property
    def pid(self) -> int | None:
        """PID of the running agent process, if any."""
        if self._run is None or self._run.process.returncode is not None:
            return None
        return self._run.process.pid

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(
        self,
        working_directory: str | Path,
        *,
        prompt: str | None = None,
        resume_session_id: str | None = None,
        continue_previous: bool = False,
    ) -> SessionHandle:
        """Launch the agent in *working_directory* and begin reading its output.

        Any existing run is stopped first.

        Raises:
            LaunchError: If the executable cannot be resolved or spawned.
            ValueError: If both *resume_session_id* and *continue_previous*
                are given.
        """
        args = build_arguments(
            prompt=prompt,
            resume_session_id=resume_session_id,
            continue_previous=continue_previous,
            extra_args=self._config.extra_args,
        )
        await self.stop()
        self._run_id += 1

        cwd = Path(working_directory).expanduser()
        session = SessionHandle(session_id=resume_session_id, working_directory=cwd)
        self._session = session
        self._state = SupervisorState.STARTING

        try:
            process = await self._spawn(cwd, args)
        except LaunchError as exc:
            self._state = SupervisorState.IDLE
            logger.error("failed to launch agent: %s", exc)
            raise

        run = _Run(
            self._run_id,
            process,
            LineFramer(
                max_line_bytes=self._config.max_line_bytes,
                flush_remainder=self._config.flush_partial_line,
            ),
        )
        self._run = run
        session.status = SessionStatus.RUNNING
        self._state = SupervisorState.RUNNING
        logger.info("agent started (pid %s) in %s", process.pid, cwd)

        run.stderr_task = asyncio.create_task(self._drain_stderr(process))
        run.read_task = asyncio.create_task(self._read_loop(run))
        return session

    async def stop(self) -> None:
        """Cancel the read loop, terminate the process, release its pipes.

        Idempotent, and safe to call when nothing was ever started.  A call
        made while another stop is still terminating the process returns at
        once and leaves the state ``Terminating``.
        """
        run = self._run
        if run is None:
            return

        self._run = None
        self._state = SupervisorState.TERMINATING
        returncode: int | None = None
        try:
            await _cancel_task(run.read_task)
            _close_stdin(run.process)
            returncode = await self._terminate(run.process)
            await _cancel_task(run.stderr_task)
        finally:
            # A start() may have launched a new run meanwhile.
            if self._state is SupervisorState.TERMINATING:
                self._state = SupervisorState.IDLE
                if self._session is not None:
                    self._session.status = SessionStatus.TERMINATED
            self._complete(run, returncode)
        logger.info("agent stopped (exit code %s)", returncode)

    def adopt_session_id(self, session_id: str) -> bool:
        """Record the id the agent assigned to the current session.

        Returns True if the handle changed.
        """
        session = self._session
        if session is None or not session_id or session.session_id == session_id:
            return False
        logger.info("session id is now %s", session_id)
        session.session_id = session_id
        return True

    # ------------------------------------------------------------------ #
    # Write path
    # ------------------------------------------------------------------ #

    def send(self, text: str) -> None:
        """Write a ``user_message`` control record to the agent's stdin.

        Raises:
            NotRunningError: If no process is running.
            EncodingError: If *text* cannot be serialized.
            StreamWriteError: If the OS rejects the write.
        """
        stdin = self._stdin()
        _write(stdin, encode_user_message(text))

    def respond_to_tool(self, tool_id: str, approved: bool) -> None:
        """Write a ``tool_result`` approval record to the agent's stdin.

        Raises:
            NotRunningError: If no process is running.
            EncodingError: If the values cannot be serialized.
            StreamWriteError: If the OS rejects the write.
        """
        stdin = self._stdin()
        _write(stdin, encode_tool_response(tool_id, approved))

    def _stdin(self) -> asyncio.StreamWriter:
        run = self._run
        if self._state is not SupervisorState.RUNNING or run is None:
            msg = "Agent process is not running"
            raise NotRunningError(msg)
        if run.process.stdin is None:
            msg = "Agent process has no stdin pipe"
            raise NotRunningError(msg)
        return run.process.stdin

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _spawn(
        self, cwd: Path, args: list[str]
    ) -> asyncio.subprocess.Process:
        if not cwd.is_dir():
            msg = f"Working directory does not exist: {cwd}"
            raise LaunchError(msg)

        argv = resolve_command(self._config, args)
        stripped = set(self._config.stripped_env_keys)
        env = {k: v for k, v in os.environ.items() if k not in stripped}
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
                env=env,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            msg = (
                f"Agent CLI not found ({argv[0]}). Make sure "
                f"'{self._config.executable}' is installed and on your PATH."
            )
            raise LaunchError(msg) from exc
        except OSError as exc:
            msg = f"Failed to spawn agent CLI: {exc}"
            raise LaunchError(msg) from exc

    async def _read_loop(self, run: _Run) -> None:
        """Drain stdout through the framer and decoder until EOF."""
        proc = run.process
        if proc.stdout is None:
            return

        read_failed = False
        try:
            async for line in iter_lines(
                proc.stdout, run.framer, self._config.read_chunk_size
            ):
                if not line.strip():
                    continue
                self._emit(EventSignal(decode(line), run.run_id))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            read_failed = True
            logger.error("error reading agent stdout: %s", exc)
            self._emit(
                ErrorSignal(f"Error reading agent output: {exc}", run.run_id)
            )

        if read_failed:
            returncode = await self._terminate(proc)
        else:
            returncode = await proc.wait()
        stderr_text = await run.stderr_task if run.stderr_task is not None else ""

        if returncode != 0 and not read_failed:
            error_msg = f"Agent exited with code {returncode}."
            preview = format_stderr_preview(stderr_text)
            if preview:
                error_msg += f" Stderr:\n  {preview}"
            logger.error("%s", error_msg)
            self._emit(ErrorSignal(error_msg, run.run_id))

        # Natural exit: release the run unless stop() already took it.
        if self._run is run:
            self._run = None
            _close_stdin(proc)
            self._state = SupervisorState.IDLE
            if self._session is not None:
                self._session.status = SessionStatus.TERMINATED
            logger.info("agent exited with code %s", returncode)
        self._complete(run, returncode)

    async def _drain_stderr(self, proc: asyncio.subprocess.Process) -> str:
        """Read stderr to EOF so the child never blocks; keep the tail."""
        if proc.stderr is None:
            return ""
        tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)
        try:
            async for line in iter_lines(
                proc.stderr,
                LineFramer(max_line_bytes=self._config.max_line_bytes),
                self._config.read_chunk_size,
            ):
                if line.strip():
                    logger.debug("agent stderr: %s", line)
                    tail.append(line)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("error reading agent stderr: %s", exc)
        return "\n".join(tail)

    async def _terminate(self, proc: asyncio.subprocess.Process) -> int | None:
        """SIGTERM -> wait -> SIGKILL -> wait."""
        if proc.returncode is not None:
            return proc.returncode

        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        try:
            return await asyncio.wait_for(
                proc.wait(), timeout=self._config.shutdown_grace
            )
        except TimeoutError:
            logger.warning("agent ignored SIGTERM, killing")
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
        try:
            return await asyncio.wait_for(proc.wait(), timeout=self._config.kill_wait)
        except TimeoutError:
            logger.error("agent process %s did not exit after SIGKILL", proc.pid)
            return None

    def _emit(self, signal: SupervisorSignal) -> None:
        self._signals.put_nowait(signal)

    def _complete(self, run: _Run, returncode: int | None) -> None:
        if run.completed:
            return
        run.completed = True
        self._emit(CompleteSignal(returncode, run.run_id))


async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
    if task is None or task.done() or task is asyncio.current_task():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


def _close_stdin(proc: asyncio.subprocess.Process) -> None:
    stdin = proc.stdin
    if stdin is None:
        return
    with contextlib.suppress(OSError, RuntimeError):
        stdin.close()


def _write(stdin: asyncio.StreamWriter, data: bytes) -> None:
    if stdin.is_closing():
        msg = "Agent stdin is closed"
        raise StreamWriteError(msg)
    try:
        stdin.write(data)
    except (BrokenPipeError, ConnectionResetError, OSError) as exc:
        msg = f"Failed to write to agent stdin: {exc}"
        raise StreamWriteError(msg) from exc
