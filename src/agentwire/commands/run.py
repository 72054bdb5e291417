"""agentwire run — drive one agent session and print its transcript as JSONL."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from agentwire.assembler import ConversationAssembler
from agentwire.config.models import AgentWireConfig
from agentwire.config.parser import ConfigError, load_config
from agentwire.errors import AgentWireError, LaunchError
from agentwire.store import JsonlEchoStore
from agentwire.supervisor import ProcessSupervisor
from agentwire.transcript.models import ToolCall

logger = logging.getLogger(__name__)


class PolicyApprover:
    """Answers tool approval requests according to ``tool_policy``.

    ``ask`` prompts on the terminal (stderr) from a worker thread so the
    event loop keeps draining the agent's output meanwhile.
    """

    def __init__(self, policy: str) -> None:
        self._policy = policy
        self._assembler: ConversationAssembler | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    def attach(self, assembler: ConversationAssembler) -> None:
        self._assembler = assembler

    def tool_call_added(self, call: ToolCall) -> None:
        task = asyncio.get_running_loop().create_task(self._decide(call))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def tool_call_removed(self, tool_id: str) -> None:
        logger.debug("tool call %s no longer pending", tool_id)

    async def _decide(self, call: ToolCall) -> None:
        if self._policy == "approve":
            approved = True
        elif self._policy == "deny":
            approved = False
        else:
            approved = await asyncio.to_thread(
                click.confirm,
                f"Allow tool '{call.name}' ({call.id})?",
                default=False,
                err=True,
            )

        if self._assembler is None:
            return
        try:
            self._assembler.resolve_tool_call(call.id, approved)
        except AgentWireError as exc:
            click.echo(f"Could not answer tool {call.id}: {exc}", err=True)

    async def wait(self) -> None:
        """Wait for outstanding decisions to be relayed."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


@click.command()
@click.argument(
    "directory",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.option("-p", "--prompt", type=str, default=None, help="One-shot prompt.")
@click.option(
    "--resume",
    "resume_session_id",
    type=str,
    default=None,
    help="Resume a previous session by id.",
)
@click.option(
    "--continue",
    "continue_previous",
    is_flag=True,
    help="Continue the most recent session in DIRECTORY.",
)
@click.option(
    "-c", "--config", "config_file", type=click.Path(), help="Config file path."
)
@click.option(
    "--tool-policy",
    type=click.Choice(["ask", "approve", "deny"]),
    default=None,
    help="How to answer tool approval requests (overrides config).",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
def run(
    directory: Path,
    prompt: str | None,
    resume_session_id: str | None,
    continue_previous: bool,
    config_file: str | None,
    tool_policy: str | None,
    verbose: bool,
) -> None:
    """Run the agent in DIRECTORY and print transcript entries as JSON lines."""
    if resume_session_id is not None and continue_previous:
        raise click.UsageError("--resume and --continue are mutually exclusive.")

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    if tool_policy is not None:
        config = config.model_copy(update={"tool_policy": tool_policy})

    returncode = asyncio.run(
        _run_session(config, directory, prompt, resume_session_id, continue_previous)
    )
    if returncode:
        raise SystemExit(1)


async def _run_session(
    config: AgentWireConfig,
    directory: Path,
    prompt: str | None,
    resume_session_id: str | None,
    continue_previous: bool,
) -> int | None:
    """Start the agent, stream its transcript until it exits, then stop it."""
    supervisor = ProcessSupervisor(config.supervisor)
    approver = PolicyApprover(config.tool_policy)
    assembler = ConversationAssembler(
        supervisor,
        store=JsonlEchoStore(sys.stdout),
        approval_surface=approver,
    )
    approver.attach(assembler)

    try:
        await assembler.start(
            directory,
            prompt=prompt,
            resume_session_id=resume_session_id,
            continue_previous=continue_previous,
        )
    except LaunchError as exc:
        click.echo(f"Error: {exc}", err=True)
        return 1

    try:
        returncode = await assembler.run_until_complete()
        await approver.wait()
    except asyncio.CancelledError:
        returncode = None
    finally:
        await assembler.stop()

    if assembler.last_error:
        click.echo(f"Agent error: {assembler.last_error}", err=True)
    return returncode
