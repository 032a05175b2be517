"""Subprocess-based backends for agent CLIs and shell commands."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import IO

from cortex.workflow.backend.base import AgentRegistry, AgentResult, AgentRunError, AgentTask

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
CANCELLED_EXIT_CODE = 130

DEFAULT_SYSTEM_PROMPT = """\
Output formatting rules:
1. Use clear numbered points or bullet points
2. No emojis or decorative characters
3. Be concise and direct
4. Structure: Brief summary first, then details if needed
5. Keep responses focused and actionable"""


class CliAgentBackend:
    """Run one external CLI per task and capture its output.

    Subclasses provide the argument list; this class owns process lifecycle:
    output spooling, polling, timeout and cancellation.
    """

    tool = ""

    def __init__(
        self,
        executable: str,
        *,
        timeout_seconds: int = 0,
        poll_interval_seconds: float = 0.1,
    ) -> None:
        self.executable = executable
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds

    def build_args(self, task: AgentTask) -> list[str]:
        raise NotImplementedError

    def check_args(self) -> list[str]:
        return ["--version"]

    def run(self, task: AgentTask) -> AgentResult:
        run_args = [self.executable, *self.build_args(task)]
        cwd = str(task.workdir) if task.workdir else None
        logger.info("Starting %s for task %s", self.tool, task.name)

        try:
            with (
                tempfile.TemporaryFile("w+", encoding="utf-8", errors="replace") as stdout_handle,
                tempfile.TemporaryFile("w+", encoding="utf-8", errors="replace") as stderr_handle,
            ):
                exit_code, timed_out = _run_subprocess_with_shutdown(
                    run_args=run_args,
                    cwd=cwd,
                    timeout_seconds=self.timeout_seconds,
                    stdout_handle=stdout_handle,
                    stderr_handle=stderr_handle,
                    shutdown_requested=task.cancel_requested,
                    poll_interval_seconds=self.poll_interval_seconds,
                )
                stdout = _read_spooled(stdout_handle)
                stderr = _read_spooled(stderr_handle)
        except FileNotFoundError as error:
            raise AgentRunError(f"{self.tool} CLI not found: {self.executable}") from error
        except OSError as error:
            raise AgentRunError(f"failed to start {self.tool}: {error}") from error

        if timed_out:
            stderr += f"\n{self.tool} timed out after {self.timeout_seconds}s"
        return AgentResult(stdout=stdout, stderr=stderr, exit_code=exit_code, timed_out=timed_out)

    def check(self) -> None:
        """Probe the executable; raise ``AgentRunError`` when it is unusable."""

        try:
            completed = subprocess.run(  # noqa: S603
                [self.executable, *self.check_args()],
                capture_output=True,
                text=True,
                timeout=30,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as error:
            raise AgentRunError(f"{self.tool} CLI not found or not executable: {error}") from error
        if completed.returncode != 0:
            details = (completed.stderr or completed.stdout).strip()
            raise AgentRunError(
                f"{self.tool} CLI not usable (exit code {completed.returncode}): {details}",
            )


class ClaudeCodeBackend(CliAgentBackend):
    """Claude Code in headless print mode."""

    tool = "claude-code"

    def __init__(
        self,
        executable: str = "claude",
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        timeout_seconds: int = 0,
    ) -> None:
        super().__init__(executable, timeout_seconds=timeout_seconds)
        self.system_prompt = system_prompt

    def build_args(self, task: AgentTask) -> list[str]:
        args = ["-p", "--output-format", "text", "--system-prompt", self.system_prompt]
        if task.workdir:
            args += ["--cwd", str(task.workdir)]
        if task.model:
            args += ["--model", task.model]
        if task.write:
            args.append("--dangerously-skip-permissions")
        args.append(task.prompt)
        return args


class OpenCodeBackend(CliAgentBackend):
    tool = "opencode"

    def __init__(self, executable: str = "opencode", *, timeout_seconds: int = 0) -> None:
        super().__init__(executable, timeout_seconds=timeout_seconds)

    def build_args(self, task: AgentTask) -> list[str]:
        args = ["-p", task.prompt]
        if task.model:
            args += ["--model", task.model]
        if task.write:
            args.append("--auto-approve")
        return args


class ShellBackend(CliAgentBackend):
    """Runs the task prompt as a ``sh -c`` command in the task workdir."""

    tool = "shell"

    def __init__(self, executable: str = "/bin/sh", *, timeout_seconds: int = 0) -> None:
        super().__init__(executable, timeout_seconds=timeout_seconds)

    def build_args(self, task: AgentTask) -> list[str]:
        if not task.prompt.strip():
            raise AgentRunError(f"no command specified for shell task {task.name!r}")
        return ["-c", task.prompt]

    def check_args(self) -> list[str]:
        return ["-c", "echo ok"]


def build_default_registry(*, timeout_seconds: int = 0) -> AgentRegistry:
    registry = AgentRegistry()
    registry.register(ClaudeCodeBackend.tool, ClaudeCodeBackend(timeout_seconds=timeout_seconds))
    registry.register(OpenCodeBackend.tool, OpenCodeBackend(timeout_seconds=timeout_seconds))
    registry.register(ShellBackend.tool, ShellBackend(timeout_seconds=timeout_seconds))
    return registry


def _read_spooled(handle: IO[str]) -> str:
    handle.flush()
    handle.seek(0)
    return handle.read()


def _run_subprocess_with_shutdown(  # noqa: PLR0913
    *,
    run_args: list[str],
    cwd: str | None,
    timeout_seconds: int,
    stdout_handle: IO[str],
    stderr_handle: IO[str],
    shutdown_requested: Callable[[], bool] | None,
    poll_interval_seconds: float,
) -> tuple[int, bool]:
    """Return ``(exit_code, timed_out)`` once the process exits or is stopped."""

    process = subprocess.Popen(  # noqa: S603
        run_args,
        cwd=cwd,
        env=os.environ.copy(),
        stdin=subprocess.DEVNULL,
        stdout=stdout_handle,
        stderr=stderr_handle,
        text=True,
    )
    start_monotonic = time.monotonic()

    while True:
        returncode = process.poll()
        if returncode is not None:
            return returncode, False

        if timeout_seconds > 0 and time.monotonic() - start_monotonic >= timeout_seconds:
            _terminate_process(process)
            return TIMEOUT_EXIT_CODE, True

        if shutdown_requested is not None and shutdown_requested():
            _terminate_process(process)
            return CANCELLED_EXIT_CODE, False

        time.sleep(poll_interval_seconds)


def _terminate_process(process: subprocess.Popen[str] | subprocess.Popen[bytes]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
