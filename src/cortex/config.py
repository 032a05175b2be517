"""Runtime configuration: global config file, environment, and workflow overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from cortex.workflow.models import WorkflowConfig, WorkflowSettings

GLOBAL_CONFIG_FILE_NAME = "config.yml"


def _cpu_count() -> int:
    return os.cpu_count() or 1


@dataclass(slots=True)
class ExecutionSettings:
    """How a workflow run is scheduled."""

    parallel: bool = True
    max_parallel: int = field(default_factory=_cpu_count)
    verbose: bool = False
    task_timeout_seconds: int = 0


@dataclass(slots=True)
class AgentDefaults:
    """Fallback model and tool for agents that do not set them."""

    model: str = ""
    tool: str = ""


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    home_dir: Path = field(default_factory=lambda: Path.home() / ".cortex")
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    defaults: AgentDefaults = field(default_factory=AgentDefaults)
    color: bool = True

    @classmethod
    def from_env(cls, home_dir: Path | None = None) -> Settings:
        """Load ``<home>/config.yml`` and apply environment overrides on top."""

        resolved_home = home_dir or Path(
            os.getenv("CORTEX_HOME", str(Path.home() / ".cortex")),
        ).expanduser()
        file_config = _load_global_config(resolved_home / GLOBAL_CONFIG_FILE_NAME)
        defaults_raw = _mapping(file_config.get("defaults"), "defaults")
        settings_raw = _mapping(file_config.get("settings"), "settings")

        max_parallel = _env_int(
            "CORTEX_MAX_PARALLEL",
            default=_file_int(settings_raw, "max_parallel", 0),
        )
        if max_parallel <= 0:
            max_parallel = _cpu_count()

        task_timeout_seconds = _env_int("CORTEX_TASK_TIMEOUT_SECONDS", default=0)
        if task_timeout_seconds < 0:
            raise ValueError("CORTEX_TASK_TIMEOUT_SECONDS must be >= 0.")

        return cls(
            home_dir=resolved_home,
            execution=ExecutionSettings(
                parallel=_env_bool(
                    "CORTEX_PARALLEL",
                    default=bool(settings_raw.get("parallel", True)),
                ),
                max_parallel=max_parallel,
                verbose=_env_bool("CORTEX_VERBOSE", default=bool(settings_raw.get("verbose", False))),
                task_timeout_seconds=task_timeout_seconds,
            ),
            defaults=AgentDefaults(
                model=str(defaults_raw.get("model") or ""),
                tool=str(defaults_raw.get("tool") or ""),
            ),
            color=not (
                _env_bool("CORTEX_NO_COLOR", default=False) or bool(os.getenv("NO_COLOR"))
            ),
        )

    def resolve_execution(
        self,
        local: WorkflowSettings | None = None,
        *,
        parallel: bool | None = None,
        max_parallel: int | None = None,
        verbose: bool | None = None,
    ) -> ExecutionSettings:
        """Merge execution settings: CLI flags over workflow settings over global ones."""

        resolved = ExecutionSettings(
            parallel=self.execution.parallel,
            max_parallel=self.execution.max_parallel,
            verbose=self.execution.verbose,
            task_timeout_seconds=self.execution.task_timeout_seconds,
        )

        if local is not None:
            if local.parallel is not None:
                resolved.parallel = local.parallel
            if local.max_parallel > 0:
                resolved.max_parallel = local.max_parallel
            if local.verbose is not None:
                resolved.verbose = local.verbose

        if parallel is not None:
            resolved.parallel = parallel
        if max_parallel is not None and max_parallel > 0:
            resolved.max_parallel = max_parallel
        if verbose:
            resolved.verbose = True
        return resolved


def apply_agent_defaults(config: WorkflowConfig, defaults: AgentDefaults) -> None:
    """Fill missing agent ``tool``/``model`` values in place."""

    for agent in config.agents.values():
        if not agent.model and defaults.model:
            agent.model = defaults.model
        if not agent.tool and defaults.tool:
            agent.tool = defaults.tool


def _load_global_config(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        raw = yaml.safe_load(path.read_text("utf-8")) or {}
    except yaml.YAMLError as error:
        raise ValueError(f"Invalid global config {path}: {error}") from error
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid global config {path}: expected a mapping.")
    return raw


def _mapping(value: Any, section: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"Global config section {section!r} must be a mapping.")
    return value


def _file_int(section: dict[str, Any], key: str, default: int) -> int:
    value = section.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as error:
        raise ValueError(f"Invalid integer for settings.{key}: {value!r}") from error


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
