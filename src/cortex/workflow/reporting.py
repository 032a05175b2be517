"""Console rendering of plans, task progress, and run summaries."""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from cortex.workflow.levels import max_parallelism
from cortex.workflow.models import ExecutionTask, RunResult, TaskResult
from cortex.workflow.planner import ExecutionPlan
from cortex.workflow.store import SessionInfo, format_duration

OUTPUT_PREVIEW_LINES = 5


def truncate_lines(text: str, limit: int = OUTPUT_PREVIEW_LINES) -> list[str]:
    """First ``limit`` lines of ``text``, with ``...`` appended when cut."""

    lines = text.splitlines()
    if len(lines) <= limit:
        return lines
    return [*lines[:limit], "..."]


class ConsoleReporter:
    """Formats workflow events; colour is fixed per instance."""

    def __init__(
        self,
        *,
        color: bool = True,
        verbose: bool = False,
        emit: Callable[[str], None] | None = None,
    ) -> None:
        self.color = color
        self.verbose = verbose
        self._emit = emit or click.echo
        self._lock = threading.Lock()

    def style(self, text: str, **styles: object) -> str:
        if not self.color:
            return text
        return click.style(text, **styles)

    def plan_lines(self, plan: ExecutionPlan, *, parallel: bool, max_parallel: int) -> list[str]:
        levels = plan.levels()
        if parallel:
            mode = (
                f"parallel ({len(levels)} levels, up to "
                f"{min(max_parallelism(levels), max_parallel)} concurrent)"
            )
        else:
            mode = "sequential"
        lines = [
            self.style(f"Execution plan: {len(plan.tasks)} tasks, {mode}", bold=True),
            *(f"  {line}" for line in plan.describe()),
        ]
        return lines

    def task_started(self, task: ExecutionTask, index: int, total: int) -> None:
        target = task.tool + (f"/{task.model}" if task.model else "")
        line = (
            f"{self.style(f'[{index}/{total}]', fg='cyan')} "
            f"{self.style(task.name, bold=True)} ({task.agent_name} -> {target})"
        )
        self.emit_lines([line])

    def task_completed(self, result: TaskResult) -> None:
        if result.success:
            status = self.style("✓ success", fg="green")
        else:
            status = self.style(f"✗ failed (exit code {result.exit_code})", fg="red")
        lines = [f"  {result.task_name}: {status} {self.style(result.duration, dim=True)}"]

        if self.verbose and result.stdout.strip():
            lines.append(self.style("  Output (truncated):", dim=True))
            lines.extend(f"    {line}" for line in truncate_lines(result.stdout))
        if not result.success and result.stderr.strip():
            lines.append(self.style("  Error:", fg="red"))
            lines.extend(f"    {line}" for line in truncate_lines(result.stderr))
        self.emit_lines(lines)

    def summary_lines(self, run_result: RunResult, session_dir: Path | None = None) -> list[str]:
        succeeded = sum(1 for task in run_result.tasks if task.success)
        failed = len(run_result.tasks) - succeeded
        if run_result.success:
            headline = self.style("Workflow completed successfully", fg="green", bold=True)
        else:
            headline = self.style("Workflow failed", fg="red", bold=True)

        lines = [
            headline,
            f"  run_id={run_result.run_id} status={run_result.status.value}",
            f"  tasks: {succeeded} succeeded, {failed} failed",
            f"  duration: {format_duration(run_result.duration_seconds)}",
        ]
        if run_result.error:
            lines.append(f"  error: {run_result.error}")
        if session_dir is not None:
            lines.append(f"  session: {session_dir}")
        return lines

    def session_lines(self, sessions: list[SessionInfo]) -> list[str]:
        if not sessions:
            return ["No sessions found."]
        lines = [f"Sessions: {len(sessions)}"]
        for session in sessions:
            status = self.style("ok", fg="green") if session.success else self.style("failed", fg="red")
            started = session.start_time.isoformat() if session.start_time else "-"
            lines.append(
                f"- {session.project} run={session.run_id} status={status} "
                f"tasks={session.task_count} started={started} "
                f"duration={format_duration(session.duration_seconds)}",
            )
        return lines

    def emit_lines(self, lines: list[str]) -> None:
        with self._lock:
            for line in lines:
                self._emit(line)
