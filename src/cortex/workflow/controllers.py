"""Controllers for workflow CLI commands."""

from __future__ import annotations

import glob
import logging
import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from cortex.config import Settings, apply_agent_defaults
from cortex.workflow.backend import AgentRegistry, AgentRunError, build_default_registry
from cortex.workflow.executor import WorkflowExecutor
from cortex.workflow.levels import max_parallelism
from cortex.workflow.loader import WORKFLOW_FILE_NAMES, find_workflow_file, load_workflow
from cortex.workflow.models import WorkflowConfig
from cortex.workflow.planner import ExecutionPlan, build_plan
from cortex.workflow.reporting import ConsoleReporter
from cortex.workflow.scaffold import write_workflow_template
from cortex.workflow.store import SessionFilter, SessionStore, list_sessions
from cortex.workflow.validator import validate_workflow

logger = logging.getLogger(__name__)

_GLOB_CHARS = frozenset("*?[")


@dataclass(slots=True)
class RunWorkflowCommand:
    """CLI input for workflow execution."""

    files: tuple[str, ...]
    parallel: bool | None
    max_parallel: int | None
    verbose: bool
    no_color: bool
    cwd: Path | None = None


@dataclass(slots=True)
class ValidateWorkflowCommand:
    """CLI input for workflow validation."""

    file: str | None
    check_agents: bool = False
    cwd: Path | None = None


@dataclass(slots=True)
class SessionsCommand:
    """CLI input for stored run listing."""

    project: str | None
    limit: int
    failed_only: bool


@dataclass(slots=True)
class InitWorkflowCommand:
    """CLI input for starter workflow creation."""

    minimal: bool
    force: bool
    cwd: Path | None = None


@dataclass(slots=True)
class RunOutcome:
    lines: list[str]
    success: bool


RegistryFactory = Callable[..., AgentRegistry]


class WorkflowCliController:
    """Coordinates loading, validation, execution and session inspection."""

    def __init__(
        self,
        *,
        registry_factory: RegistryFactory = build_default_registry,
        emit: Callable[[str], None] | None = None,
    ) -> None:
        self.registry_factory = registry_factory
        self.emit = emit

    def run(self, command: RunWorkflowCommand) -> RunOutcome:
        settings = Settings.from_env()
        cwd = command.cwd or Path.cwd()
        paths = resolve_workflow_files(command.files, cwd)

        lines: list[str] = []
        success = True
        cancel_event = threading.Event()
        with _cancel_on_signals(cancel_event):
            for path in paths:
                config, plan = _prepare(path, settings)
                execution = settings.resolve_execution(
                    config.settings,
                    parallel=command.parallel,
                    max_parallel=command.max_parallel,
                    verbose=command.verbose,
                )
                reporter = ConsoleReporter(
                    color=settings.color and not command.no_color,
                    verbose=execution.verbose,
                    emit=self.emit,
                )
                reporter.emit_lines(
                    [
                        f"Workflow: {path}",
                        *reporter.plan_lines(
                            plan,
                            parallel=execution.parallel,
                            max_parallel=execution.max_parallel,
                        ),
                    ],
                )

                store = SessionStore.create(settings.home_dir, path.parent)
                executor = WorkflowExecutor(
                    registry=self.registry_factory(
                        timeout_seconds=execution.task_timeout_seconds,
                    ),
                    sink=store,
                    run_id=store.run_id,
                    parallel=execution.parallel,
                    max_parallel=execution.max_parallel,
                    workdir=config.workdir,
                    cancel_event=cancel_event,
                    on_task_start=reporter.task_started,
                    on_task_complete=reporter.task_completed,
                )
                run_result = executor.execute(plan)
                lines.extend(reporter.summary_lines(run_result, store.run_dir))
                success = success and run_result.success

                if cancel_event.is_set():
                    lines.append("Cancelled: remaining workflows skipped.")
                    break

        return RunOutcome(lines=lines, success=success)

    def validate(self, command: ValidateWorkflowCommand) -> list[str]:
        settings = Settings.from_env()
        cwd = command.cwd or Path.cwd()
        files = (command.file,) if command.file else ()
        path = resolve_workflow_files(files, cwd)[0]
        config, plan = _prepare(path, settings)
        levels = plan.levels()

        lines = [
            f"Configuration valid: {path}",
            f"Agents: {len(config.agents)}",
            f"Tasks: {len(config.tasks)}",
            f"Levels: {len(levels)}",
            f"Max parallelism: {max_parallelism(levels)}",
            "Execution order:",
            *(f"  {line}" for line in plan.describe()),
        ]
        if command.check_agents:
            lines.extend(self._check_agents(plan, settings))
        return lines

    def _check_agents(self, plan: ExecutionPlan, settings: Settings) -> list[str]:
        """Probe each agent CLI used by ``plan``; raise on the first unusable one."""

        registry = self.registry_factory(
            timeout_seconds=settings.execution.task_timeout_seconds,
        )
        lines = ["Agent CLIs:"]
        for tool in sorted({task.tool for task in plan.tasks}):
            agent = registry.get(tool)
            if agent is None:
                raise AgentRunError(f"no adapter registered for tool {tool!r}")
            agent.check()
            logger.info("Agent CLI %s is available", tool)
            lines.append(f"  {tool}: ok")
        return lines

    def sessions(self, command: SessionsCommand) -> list[str]:
        settings = Settings.from_env()
        sessions = list_sessions(
            settings.home_dir,
            SessionFilter(
                project=command.project or "",
                limit=command.limit,
                failed_only=command.failed_only,
            ),
        )
        reporter = ConsoleReporter(color=settings.color)
        return reporter.session_lines(sessions)

    def init(self, command: InitWorkflowCommand) -> list[str]:
        cwd = command.cwd or Path.cwd()
        target = write_workflow_template(cwd, minimal=command.minimal, force=command.force)
        return [
            f"Created {target}",
            "Next steps: edit the agents and tasks, then run 'cortex validate' and 'cortex run'.",
        ]


def resolve_workflow_files(patterns: tuple[str, ...], cwd: Path) -> list[Path]:
    """Expand file arguments and globs into de-duplicated, sorted workflow paths.

    With no arguments the first known workflow file in ``cwd`` is used.
    """

    if not patterns:
        found = find_workflow_file(cwd)
        if found is None:
            raise FileNotFoundError(
                f"No workflow file found in {cwd} (looked for {', '.join(WORKFLOW_FILE_NAMES)}).",
            )
        return [found]

    resolved: dict[Path, Path] = {}
    for pattern in patterns:
        candidate = Path(pattern).expanduser()
        if not candidate.is_absolute():
            candidate = cwd / candidate
        if _GLOB_CHARS.intersection(pattern):
            matches = [Path(match) for match in glob.glob(str(candidate))]
            if not matches:
                raise FileNotFoundError(f"No workflow files match {pattern!r}.")
        elif candidate.is_file():
            matches = [candidate]
        else:
            raise FileNotFoundError(f"Workflow file not found: {pattern}")
        for match in matches:
            if match.is_file():
                resolved.setdefault(match.resolve(), match)

    return [resolved[key] for key in sorted(resolved)]


def _prepare(path: Path, settings: Settings) -> tuple[WorkflowConfig, ExecutionPlan]:
    config = load_workflow(path)
    apply_agent_defaults(config, settings.defaults)
    validate_workflow(config, str(path))
    return config, build_plan(config)


@contextmanager
def _cancel_on_signals(cancel_event: threading.Event) -> Iterator[None]:
    """Set ``cancel_event`` on SIGINT/SIGTERM while the block runs."""

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.warning("Received %s, cancelling pending tasks", name)
        cancel_event.set()

    originals: dict[int, object] = {}
    try:
        for signum in (signal.SIGINT, signal.SIGTERM):
            originals[signum] = signal.getsignal(signum)
            signal.signal(signum, _handler)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        originals.clear()

    try:
        yield
    finally:
        for signum, original in originals.items():
            signal.signal(signum, original)
