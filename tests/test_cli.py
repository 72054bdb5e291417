"""Tests for the agentwire command line."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from agentwire import __version__
from agentwire.cli import cli
from agentwire.commands.run import PolicyApprover
from agentwire.errors import NotRunningError
from agentwire.transcript.models import ToolCall

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #

_STREAM = [
    {"type": "system", "subtype": "init", "session_id": "s-1"},
    {
        "type": "assistant",
        "subtype": "content_block_start",
        "index": 0,
        "content_block": {"type": "text"},
    },
    {
        "type": "assistant",
        "subtype": "content_block_delta",
        "index": 0,
        "delta": {"type": "text_delta", "text": "Hello"},
    },
    {"type": "assistant", "subtype": "content_block_stop", "index": 0},
    {"type": "result", "subtype": "success", "session_id": "s-1"},
]


def _make_process(records: list[dict[str, Any]], exit_code: int = 0) -> MagicMock:
    """A mock subprocess that prints *records* and exits."""
    chunks = [json.dumps(r).encode() + b"\n" for r in records]

    async def _read(n: int = -1) -> bytes:
        return chunks.pop(0) if chunks else b""

    proc = MagicMock()
    proc.pid = 999
    proc.returncode = None
    proc.stdin = MagicMock()
    proc.stdin.is_closing = MagicMock(return_value=False)
    proc.stdout = MagicMock()
    proc.stdout.read = _read
    proc.stderr = MagicMock()
    proc.stderr.read = AsyncMock(return_value=b"")
    proc.wait = AsyncMock(return_value=exit_code)
    return proc


def _json_lines(output: str) -> list[dict[str, Any]]:
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


# ------------------------------------------------------------------ #
# Root group
# ------------------------------------------------------------------ #


def test_help() -> None:
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "run" in result.output


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_run_flags() -> None:
    result = CliRunner().invoke(cli, ["run", "--help"])
    assert result.exit_code == 0
    for flag in ("--prompt", "--resume", "--continue", "--config", "--tool-policy"):
        assert flag in result.output


# ------------------------------------------------------------------ #
# agentwire run
# ------------------------------------------------------------------ #


def test_run_prints_transcript() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        with patch(
            "asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=_make_process(_STREAM)),
        ) as spawn:
            result = runner.invoke(cli, ["run", "-p", "say hello"])

    assert result.exit_code == 0, result.output
    records = _json_lines(result.stdout)
    assert records[0]["type"] == "entry"
    assert records[0]["entry"]["role"] == "user"
    assert records[0]["entry"]["content"] == [{"type": "text", "text": "say hello"}]
    assert {"type": "session", "session_id": "s-1"} in records
    entries = [r["entry"] for r in records if r["type"] == "entry"]
    assistant = [e for e in entries if e["role"] == "assistant"]
    assert assistant[0]["content"] == [{"type": "text", "text": "Hello"}]
    assert "stream-json" in " ".join(spawn.call_args.args)


def test_run_nonzero_exit() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        with patch(
            "asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=_make_process([], exit_code=2)),
        ):
            result = runner.invoke(cli, ["run", "-p", "x"])

    assert result.exit_code == 1
    assert "Agent exited with code 2" in result.output


def test_run_launch_failure() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        with patch(
            "asyncio.create_subprocess_exec",
            new=AsyncMock(side_effect=FileNotFoundError("claude")),
        ):
            result = runner.invoke(cli, ["run", "-p", "x"])

    assert result.exit_code == 1
    assert "Error: Agent CLI not found" in result.output


def test_run_missing_config() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["run", "--config", "nope.yaml"])
    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_run_resume_and_continue_conflict() -> None:
    result = CliRunner().invoke(cli, ["run", "--resume", "abc", "--continue"])
    assert result.exit_code == 2
    assert "mutually exclusive" in result.output


def test_run_missing_directory(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, ["run", str(tmp_path / "missing")])
    assert result.exit_code == 2


# ------------------------------------------------------------------ #
# Tool policy
# ------------------------------------------------------------------ #


class TestPolicyApprover:
    async def _decide(self, policy: str, assembler: MagicMock) -> None:
        approver = PolicyApprover(policy)
        approver.attach(assembler)
        approver.tool_call_added(ToolCall(id="t1", name="Bash"))
        await approver.wait()

    async def test_approve_policy(self) -> None:
        assembler = MagicMock()
        await self._decide("approve", assembler)
        assembler.resolve_tool_call.assert_called_once_with("t1", True)

    async def test_deny_policy(self) -> None:
        assembler = MagicMock()
        await self._decide("deny", assembler)
        assembler.resolve_tool_call.assert_called_once_with("t1", False)

    async def test_ask_policy_prompts(self) -> None:
        assembler = MagicMock()
        with patch("agentwire.commands.run.click.confirm", return_value=True) as confirm:
            await self._decide("ask", assembler)
        confirm.assert_called_once()
        assert "Bash" in confirm.call_args.args[0]
        assembler.resolve_tool_call.assert_called_once_with("t1", True)

    async def test_failed_relay_is_reported(self) -> None:
        assembler = MagicMock()
        assembler.resolve_tool_call.side_effect = NotRunningError("not running")
        with patch("agentwire.commands.run.click.echo") as echo:
            await self._decide("approve", assembler)
        assert "not running" in echo.call_args.args[0]
