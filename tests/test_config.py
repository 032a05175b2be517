from __future__ import annotations

import os
from pathlib import Path

import allure
import pytest

from cortex.config import AgentDefaults, ExecutionSettings, Settings, apply_agent_defaults
from cortex.workflow.models import AgentConfig, WorkflowConfig, WorkflowSettings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Layered Settings"),
]


def _write_global_config(home: Path, text: str) -> None:
    home.mkdir(parents=True, exist_ok=True)
    (home / "config.yml").write_text(text, "utf-8")


def test_from_env_defaults_without_config_file(cortex_home: Path) -> None:
    settings = Settings.from_env()

    assert settings.home_dir == cortex_home
    assert settings.execution.parallel is True
    assert settings.execution.max_parallel == (os.cpu_count() or 1)
    assert settings.execution.verbose is False
    assert settings.execution.task_timeout_seconds == 0
    assert settings.defaults == AgentDefaults()
    assert settings.color is True


def test_from_env_reads_global_config(cortex_home: Path) -> None:
    _write_global_config(
        cortex_home,
        "defaults:\n  model: sonnet\n  tool: claude-code\n"
        "settings:\n  parallel: false\n  max_parallel: 3\n  verbose: true\n",
    )

    settings = Settings.from_env()

    assert settings.defaults == AgentDefaults(model="sonnet", tool="claude-code")
    assert settings.execution.parallel is False
    assert settings.execution.max_parallel == 3
    assert settings.execution.verbose is True


def test_non_positive_max_parallel_falls_back_to_cpu_count(cortex_home: Path) -> None:
    _write_global_config(cortex_home, "settings:\n  max_parallel: 0\n")

    assert Settings.from_env().execution.max_parallel == (os.cpu_count() or 1)


def test_environment_overrides_global_config(
    cortex_home: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _write_global_config(cortex_home, "settings:\n  parallel: true\n  max_parallel: 3\n")
    monkeypatch.setenv("CORTEX_PARALLEL", "no")
    monkeypatch.setenv("CORTEX_MAX_PARALLEL", "7")
    monkeypatch.setenv("CORTEX_TASK_TIMEOUT_SECONDS", "30")
    monkeypatch.setenv("NO_COLOR", "1")

    settings = Settings.from_env()

    assert settings.execution.parallel is False
    assert settings.execution.max_parallel == 7
    assert settings.execution.task_timeout_seconds == 30
    assert settings.color is False


def test_invalid_environment_values_raise(
    cortex_home: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CORTEX_VERBOSE", "maybe")
    with pytest.raises(ValueError, match="CORTEX_VERBOSE"):
        Settings.from_env()

    monkeypatch.delenv("CORTEX_VERBOSE")
    monkeypatch.setenv("CORTEX_MAX_PARALLEL", "lots")
    with pytest.raises(ValueError, match="CORTEX_MAX_PARALLEL"):
        Settings.from_env()


def test_invalid_global_config_raises(cortex_home: Path) -> None:
    _write_global_config(cortex_home, "- not\n- a mapping\n")

    with pytest.raises(ValueError, match="expected a mapping"):
        Settings.from_env()


def test_resolve_execution_precedence() -> None:
    settings = Settings(
        execution=ExecutionSettings(parallel=True, max_parallel=8, verbose=False),
    )
    local = WorkflowSettings(parallel=False, max_parallel=2, verbose=True)

    from_local = settings.resolve_execution(local)
    assert (from_local.parallel, from_local.max_parallel, from_local.verbose) == (False, 2, True)

    from_cli = settings.resolve_execution(local, parallel=True, max_parallel=5)
    assert (from_cli.parallel, from_cli.max_parallel) == (True, 5)

    unchanged = settings.resolve_execution(None, max_parallel=0)
    assert (unchanged.parallel, unchanged.max_parallel) == (True, 8)
    assert settings.execution.max_parallel == 8


def test_apply_agent_defaults_fills_missing_values() -> None:
    config = WorkflowConfig(
        agents={
            "blank": AgentConfig(),
            "explicit": AgentConfig(tool="shell", model="x"),
        },
    )

    apply_agent_defaults(config, AgentDefaults(model="sonnet", tool="claude-code"))

    assert config.agents["blank"] == AgentConfig(tool="claude-code", model="sonnet")
    assert config.agents["explicit"] == AgentConfig(tool="shell", model="x")
