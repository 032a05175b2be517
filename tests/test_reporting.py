from __future__ import annotations

from pathlib import Path

import allure

from cortex.workflow.models import ExecutionTask, RunResult, RunStatus, TaskResult
from cortex.workflow.planner import build_plan
from cortex.workflow.reporting import ConsoleReporter, truncate_lines

pytestmark = [
    allure.epic("Execution"),
    allure.feature("Console Reporting"),
]


def _result(name: str, *, success: bool, stdout: str = "", stderr: str = "") -> TaskResult:
    result = TaskResult(task_name=name, agent="bot", tool="shell", model="", prompt="p")
    result.complete(stdout=stdout, stderr=stderr, exit_code=0 if success else 4, success=success)
    return result


def test_truncate_lines() -> None:
    assert truncate_lines("a\nb", limit=5) == ["a", "b"]
    assert truncate_lines("1\n2\n3\n4", limit=2) == ["1", "2", "..."]


def test_reporter_without_color_emits_plain_text() -> None:
    emitted: list[str] = []
    reporter = ConsoleReporter(color=False, emit=emitted.append)

    reporter.task_started(
        ExecutionTask(name="build", agent_name="sh", tool="shell", model="", prompt="make"),
        1,
        3,
    )
    reporter.task_completed(_result("build", success=False, stderr="boom"))

    assert emitted[0] == "[1/3] build (sh -> shell)"
    assert emitted[1].startswith("  build: ✗ failed (exit code 4)")
    assert emitted[2:] == ["  Error:", "    boom"]
    assert all("\x1b[" not in line for line in emitted)


def test_reporter_with_color_styles_output() -> None:
    emitted: list[str] = []
    reporter = ConsoleReporter(color=True, emit=emitted.append)

    reporter.task_completed(_result("build", success=True))

    assert "\x1b[" in emitted[0]


def test_verbose_reporter_shows_output_preview() -> None:
    emitted: list[str] = []
    reporter = ConsoleReporter(color=False, verbose=True, emit=emitted.append)

    reporter.task_completed(_result("gen", success=True, stdout="l1\nl2\nl3\nl4\nl5\nl6\n"))

    assert emitted[1] == "  Output (truncated):"
    assert emitted[2:] == ["    l1", "    l2", "    l3", "    l4", "    l5", "    ..."]


def test_plan_and_summary_lines(make_workflow) -> None:
    reporter = ConsoleReporter(color=False)
    plan = build_plan(make_workflow({"A": [], "B": [], "C": ["A", "B"]}))

    plan_lines = reporter.plan_lines(plan, parallel=True, max_parallel=8)
    assert plan_lines[0] == "Execution plan: 3 tasks, parallel (2 levels, up to 2 concurrent)"
    assert plan_lines[3] == "  3. C (bot -> claude-code/sonnet) [depends: A, B]"

    run_result = RunResult(
        run_id="r1",
        success=False,
        tasks=[_result("A", success=True), _result("B", success=False)],
        status=RunStatus.FAILED,
        error="task 'B' failed with exit code 4",
    )
    run_result.end_time = run_result.start_time
    summary = reporter.summary_lines(run_result, Path("/tmp/run-r1"))

    assert summary[0] == "Workflow failed"
    assert "  tasks: 1 succeeded, 1 failed" in summary
    assert "  error: task 'B' failed with exit code 4" in summary
    assert summary[-1] == "  session: /tmp/run-r1"
