"""Static validation of a parsed workflow before any task runs."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

from cortex.workflow import errors
from cortex.workflow.errors import ConfigErrors
from cortex.workflow.models import SHELL_TOOL, TaskConfig, WorkflowConfig, is_supported_tool
from cortex.workflow.templates import extract_template_vars


class _Mark(Enum):
    UNVISITED = 0
    IN_PROGRESS = 1
    DONE = 2


def detect_cycle(tasks: Mapping[str, TaskConfig]) -> list[str] | None:
    """Return one dependency cycle as a closed path, or ``None`` when acyclic.

    Depth-first search with three marks. Reaching an in-progress node yields
    the path suffix starting at that node with the node appended again, e.g.
    ``["a", "b", "a"]``. Start nodes are visited in sorted order and
    dependencies in declared order; unknown dependencies are ignored.
    """

    marks = {name: _Mark.UNVISITED for name in tasks}
    path: list[str] = []

    def visit(name: str) -> list[str] | None:
        marks[name] = _Mark.IN_PROGRESS
        path.append(name)
        for dependency in tasks[name].needs:
            mark = marks.get(dependency)
            if mark is None or mark is _Mark.DONE:
                continue
            if mark is _Mark.IN_PROGRESS:
                start = path.index(dependency)
                return [*path[start:], dependency]
            cycle = visit(dependency)
            if cycle is not None:
                return cycle
        path.pop()
        marks[name] = _Mark.DONE
        return None

    for name in sorted(tasks):
        if marks[name] is not _Mark.UNVISITED:
            continue
        cycle = visit(name)
        if cycle is not None:
            return cycle
    return None


def validate_workflow(config: WorkflowConfig, file_path: str = "") -> None:
    """Collect every configuration problem and raise them together.

    Raises ``ConfigErrors`` when at least one problem is found.
    """

    problems = ConfigErrors()

    if not config.agents:
        problems.add(errors.no_agents_error(file_path))
    if not config.tasks:
        problems.add(errors.no_tasks_error(file_path))

    for agent_name, agent in config.agents.items():
        line = config.line_of("agents", agent_name)
        if not agent_name.strip():
            problems.add(errors.empty_agent_name_error(file_path, line))
            continue
        if not is_supported_tool(agent.tool):
            problems.add(errors.unsupported_tool_error(file_path, line, agent_name, agent.tool))

    for task_name, task in config.tasks.items():
        line = config.line_of("tasks", task_name)
        if not task_name.strip():
            problems.add(errors.empty_task_name_error(file_path, line))
            continue
        for problem in _task_problems(config, file_path, line, task_name, task):
            problems.add(problem)

    cycle = detect_cycle(config.tasks)
    if cycle is not None:
        problems.add(errors.circular_dependency_error(file_path, cycle))

    if problems.has_errors():
        raise problems


def _task_problems(  # noqa: PLR0913
    config: WorkflowConfig,
    file_path: str,
    line: int,
    task_name: str,
    task: TaskConfig,
) -> list[errors.ConfigError]:
    problems: list[errors.ConfigError] = []

    agent = config.agents.get(task.agent)
    if agent is None:
        problems.append(
            errors.undefined_agent_error(file_path, line, task_name, task.agent, config.agents),
        )
    elif agent.tool == SHELL_TOOL:
        if not task.command.strip():
            problems.append(errors.missing_command_error(file_path, line, task_name))
    else:
        problems.extend(_prompt_problems(file_path, line, task_name, task, agent.tool))

    seen: set[str] = set()
    for dependency in task.needs:
        if dependency == task_name:
            problems.append(errors.self_dependency_error(file_path, line, task_name))
        elif dependency in seen:
            problems.append(
                errors.duplicate_dependency_error(file_path, line, task_name, dependency),
            )
        elif dependency not in config.tasks:
            problems.append(
                errors.undefined_dependency_error(
                    file_path,
                    line,
                    task_name,
                    dependency,
                    config.tasks,
                ),
            )
        seen.add(dependency)

    for referenced in extract_template_vars(task.prompt_text):
        if referenced not in config.tasks:
            problems.append(
                errors.undefined_template_task_error(
                    file_path,
                    line,
                    task_name,
                    referenced,
                    config.tasks,
                ),
            )
        elif referenced not in task.needs:
            problems.append(
                errors.undeclared_template_dependency_error(file_path, line, task_name, referenced),
            )

    return problems


def _prompt_problems(
    file_path: str,
    line: int,
    task_name: str,
    task: TaskConfig,
    tool: str,
) -> list[errors.ConfigError]:
    problems: list[errors.ConfigError] = []
    if task.command:
        problems.append(errors.unexpected_command_error(file_path, line, task_name, tool))
    if task.prompt and task.prompt_file:
        problems.append(errors.conflicting_prompt_error(file_path, line, task_name))
    elif not task.prompt and not task.prompt_file:
        problems.append(errors.no_prompt_error(file_path, line, task_name))
    elif task.prompt_file and task.resolved_prompt is None:
        problems.append(
            errors.prompt_file_not_found_error(file_path, line, task_name, task.prompt_file),
        )
    return problems
