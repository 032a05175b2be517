"""Workflow file discovery and YAML parsing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from cortex.workflow.errors import ConfigError, yaml_parse_error
from cortex.workflow.models import AgentConfig, TaskConfig, WorkflowConfig, WorkflowSettings

logger = logging.getLogger(__name__)

WORKFLOW_FILE_NAMES = (
    "Cortexfile.yml",
    "Cortexfile.yaml",
    "cortexfile.yml",
    "cortexfile.yaml",
    "Agentfile.yml",
    "Agentfile.yaml",
)


def find_workflow_file(directory: Path) -> Path | None:
    """Return the first known workflow file name present in ``directory``."""

    for name in WORKFLOW_FILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_workflow(path: Path) -> WorkflowConfig:
    """Read and parse a workflow file, resolving prompt files and workdir.

    Relative ``prompt_file`` and ``workdir`` values are resolved against the
    workflow file's directory. A prompt file that cannot be found is left
    unresolved for the validator to report.
    """

    try:
        text = path.read_text("utf-8")
    except OSError as error:
        raise ConfigError(f"cannot read workflow file: {error}", file=str(path)) from error

    config = parse_workflow(text, source_path=path)
    base_dir = path.parent

    for task_name, task in config.tasks.items():
        if not task.prompt_file:
            continue
        prompt_path = Path(task.prompt_file).expanduser()
        if not prompt_path.is_absolute():
            prompt_path = base_dir / prompt_path
        if not prompt_path.is_file():
            logger.info("Prompt file for task %s not found: %s", task_name, prompt_path)
            continue
        task.resolved_prompt = prompt_path.read_text("utf-8")

    if config.workdir is not None and not config.workdir.is_absolute():
        config.workdir = (base_dir / config.workdir).resolve()

    return config


def parse_workflow(text: str, *, source_path: Path | None = None) -> WorkflowConfig:
    """Parse workflow YAML into a ``WorkflowConfig``.

    Structure errors raise ``ConfigError``; semantic checks are left to
    ``validate_workflow``.
    """

    file_label = str(source_path) if source_path else ""
    try:
        root_node = yaml.compose(text, Loader=yaml.SafeLoader)
        raw = yaml.safe_load(text)
    except yaml.YAMLError as error:
        mark = getattr(error, "problem_mark", None)
        line = mark.line + 1 if mark is not None else 0
        details = getattr(error, "problem", None) or str(error)
        raise yaml_parse_error(file_label, line, details) from error

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("workflow file must contain a YAML mapping", file=file_label, line=1)

    config = WorkflowConfig(source_path=source_path, lines=_definition_lines(root_node))

    agents_raw = _section(raw, "agents", file_label)
    for name, agent_raw in agents_raw.items():
        agent_fields = _mapping(agent_raw, f"agent {name!r}", file_label)
        config.agents[str(name)] = AgentConfig(
            tool=str(agent_fields.get("tool") or ""),
            model=str(agent_fields.get("model") or ""),
        )

    tasks_raw = _section(raw, "tasks", file_label)
    for name, task_raw in tasks_raw.items():
        task_fields = _mapping(task_raw, f"task {name!r}", file_label)
        config.tasks[str(name)] = TaskConfig(
            agent=str(task_fields.get("agent") or ""),
            prompt=str(task_fields.get("prompt") or ""),
            prompt_file=str(task_fields.get("prompt_file") or ""),
            command=str(task_fields.get("command") or ""),
            needs=_needs(task_fields.get("needs"), str(name), file_label),
            write=bool(task_fields.get("write", False)),
        )

    settings_raw = raw.get("settings")
    if settings_raw is not None:
        settings_fields = _mapping(settings_raw, "settings", file_label)
        config.settings = WorkflowSettings(
            parallel=_optional_bool(settings_fields.get("parallel"), "parallel", file_label),
            max_parallel=_int_setting(settings_fields.get("max_parallel"), file_label),
            verbose=_optional_bool(settings_fields.get("verbose"), "verbose", file_label),
        )

    workdir_raw = raw.get("workdir")
    if workdir_raw:
        config.workdir = Path(str(workdir_raw)).expanduser()

    return config


def _section(raw: dict[str, Any], key: str, file_label: str) -> dict[Any, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    return _mapping(value, f"'{key}' section", file_label)


def _mapping(value: Any, what: str, file_label: str) -> dict[Any, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{what} must be a mapping", file=file_label)
    return value


def _needs(value: Any, task_name: str, file_label: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value]
    raise ConfigError(
        f"task {task_name!r} has invalid 'needs'",
        file=file_label,
        hint="Use a task name or a list of task names",
    )


def _int_setting(value: Any, file_label: str) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as error:
        raise ConfigError(
            f"settings.max_parallel must be an integer, got {value!r}",
            file=file_label,
        ) from error


def _optional_bool(value: Any, key: str, file_label: str) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    raise ConfigError(
        f"settings.{key} must be true or false, got {value!r}",
        file=file_label,
        hint="Use an unquoted YAML boolean",
    )


def _definition_lines(root_node: yaml.Node | None) -> dict[str, int]:
    """Map ``agents.<name>``/``tasks.<name>`` to 1-based YAML line numbers."""

    lines: dict[str, int] = {}
    if not isinstance(root_node, yaml.MappingNode):
        return lines
    for key_node, value_node in root_node.value:
        section = key_node.value
        if section not in ("agents", "tasks") or not isinstance(value_node, yaml.MappingNode):
            continue
        for name_node, _ in value_node.value:
            lines[f"{section}.{name_node.value}"] = name_node.start_mark.line + 1
    return lines
