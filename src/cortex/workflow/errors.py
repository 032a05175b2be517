"""Configuration and planning errors."""

from __future__ import annotations

from collections.abc import Iterable

from cortex.workflow.models import SUPPORTED_TOOLS


class ConfigError(ValueError):
    """Configuration problem with source location and an optional fix hint."""

    def __init__(self, message: str, *, file: str = "", line: int = 0, hint: str = "") -> None:
        self.file = file
        self.line = line
        self.message = message
        self.hint = hint
        super().__init__(self.render())

    def render(self) -> str:
        location = ""
        if self.file:
            location = self.file
            if self.line > 0:
                location += f":{self.line}"
            location += ": "
        rendered = f"{location}{self.message}"
        if self.hint:
            rendered += f"\n  Hint: {self.hint}"
        return rendered

    def __str__(self) -> str:
        return self.render()


class ConfigErrors(ValueError):
    """All configuration problems found in one validation pass."""

    def __init__(self, errors: Iterable[ConfigError] = ()) -> None:
        self.errors: list[ConfigError] = list(errors)
        super().__init__()

    def add(self, error: ConfigError) -> None:
        self.errors.append(error)

    def has_errors(self) -> bool:
        return bool(self.errors)

    def __str__(self) -> str:
        if not self.errors:
            return "no errors"
        if len(self.errors) == 1:
            return str(self.errors[0])
        lines = [f"found {len(self.errors)} configuration errors:"]
        lines.extend(f"  {index}. {error}" for index, error in enumerate(self.errors, start=1))
        return "\n".join(lines)


class CycleDetectedError(RuntimeError):
    """Residual dependency cycle reached the planner."""

    def __init__(self, processed: int, total: int) -> None:
        self.processed = processed
        self.total = total
        super().__init__(f"cycle detected: only processed {processed} of {total} tasks")


def _names_hint(label: str, names: Iterable[str]) -> str:
    available = sorted(names)
    if not available:
        return ""
    return f"Available {label}: {', '.join(available)}"


def undefined_agent_error(
    file: str,
    line: int,
    task_name: str,
    agent_name: str,
    available_agents: Iterable[str],
) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} references undefined agent {agent_name!r}",
        file=file,
        line=line,
        hint=_names_hint("agents", available_agents),
    )


def unsupported_tool_error(file: str, line: int, agent_name: str, tool: str) -> ConfigError:
    return ConfigError(
        f"agent {agent_name!r} uses unsupported tool {tool!r}",
        file=file,
        line=line,
        hint=f"Supported tools: {', '.join(SUPPORTED_TOOLS)}",
    )


def undefined_dependency_error(
    file: str,
    line: int,
    task_name: str,
    dependency: str,
    available_tasks: Iterable[str],
) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} depends on undefined task {dependency!r}",
        file=file,
        line=line,
        hint=_names_hint("tasks", available_tasks),
    )


def circular_dependency_error(file: str, cycle: list[str]) -> ConfigError:
    return ConfigError(
        f"circular dependency detected: {' -> '.join(cycle)}",
        file=file,
        hint="Remove one of the dependencies to break the cycle",
    )


def no_prompt_error(file: str, line: int, task_name: str) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} has no prompt defined",
        file=file,
        line=line,
        hint="Add either 'prompt:' with inline text or 'prompt_file:' with a file path",
    )


def prompt_file_not_found_error(
    file: str,
    line: int,
    task_name: str,
    prompt_file: str,
) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} references prompt file that doesn't exist: {prompt_file}",
        file=file,
        line=line,
        hint="Check the file path and ensure the file exists",
    )


def no_agents_error(file: str) -> ConfigError:
    return ConfigError(
        "no agents defined",
        file=file,
        hint="Add an 'agents:' section with at least one agent",
    )


def no_tasks_error(file: str) -> ConfigError:
    return ConfigError(
        "no tasks defined",
        file=file,
        hint="Add a 'tasks:' section with at least one task",
    )


def empty_agent_name_error(file: str, line: int) -> ConfigError:
    return ConfigError(
        "agent name cannot be empty",
        file=file,
        line=line,
        hint="Provide a valid agent name",
    )


def empty_task_name_error(file: str, line: int) -> ConfigError:
    return ConfigError(
        "task name cannot be empty",
        file=file,
        line=line,
        hint="Provide a valid task name",
    )


def yaml_parse_error(file: str, line: int, details: str) -> ConfigError:
    return ConfigError(
        f"YAML parse error: {details}",
        file=file,
        line=line,
        hint="Check YAML syntax - ensure proper indentation and formatting",
    )


def self_dependency_error(file: str, line: int, task_name: str) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} cannot depend on itself",
        file=file,
        line=line,
        hint="Remove the self-reference from the 'needs' list",
    )


def duplicate_dependency_error(file: str, line: int, task_name: str, dependency: str) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} lists dependency {dependency!r} more than once",
        file=file,
        line=line,
        hint="List each dependency in 'needs' only once",
    )


def conflicting_prompt_error(file: str, line: int, task_name: str) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} defines both 'prompt' and 'prompt_file'",
        file=file,
        line=line,
        hint="Keep only one of 'prompt:' or 'prompt_file:'",
    )


def missing_command_error(file: str, line: int, task_name: str) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} uses a shell agent but has no command",
        file=file,
        line=line,
        hint="Add 'command:' with the shell command to run",
    )


def unexpected_command_error(file: str, line: int, task_name: str, tool: str) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} defines 'command' but its agent uses {tool!r}",
        file=file,
        line=line,
        hint="'command:' is only valid for agents with tool: shell; use 'prompt:' instead",
    )


def undeclared_template_dependency_error(
    file: str,
    line: int,
    task_name: str,
    referenced: str,
) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} uses {{{{outputs.{referenced}}}}} but does not list {referenced!r} in 'needs'",
        file=file,
        line=line,
        hint=f"Add {referenced!r} to the 'needs' list",
    )


def undefined_template_task_error(
    file: str,
    line: int,
    task_name: str,
    referenced: str,
    available_tasks: Iterable[str],
) -> ConfigError:
    return ConfigError(
        f"task {task_name!r} uses {{{{outputs.{referenced}}}}} but task {referenced!r} does not exist",
        file=file,
        line=line,
        hint=_names_hint("tasks", available_tasks),
    )
