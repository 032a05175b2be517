from __future__ import annotations

from pathlib import Path

import allure
import pytest

from cortex.workflow.errors import ConfigError
from cortex.workflow.loader import find_workflow_file, load_workflow, parse_workflow

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Workflow Loading"),
]

_WORKFLOW = """\
workdir: project
settings:
  parallel: false
  max_parallel: 3
agents:
  analyst:
    tool: claude-code
    model: sonnet
  runner:
    tool: shell
tasks:
  build:
    agent: runner
    command: make build
  analyze:
    agent: analyst
    prompt_file: prompts/analyze.md
    needs: build
  report:
    agent: analyst
    prompt: "Report on {{outputs.analyze}}"
    needs: [build, analyze]
    write: true
"""


def test_parse_workflow_reads_agents_tasks_and_settings() -> None:
    config = parse_workflow(_WORKFLOW)

    assert config.agents["analyst"].tool == "claude-code"
    assert config.agents["analyst"].model == "sonnet"
    assert config.agents["runner"].model == ""
    assert config.tasks["build"].command == "make build"
    assert config.tasks["analyze"].needs == ["build"]
    assert config.tasks["report"].needs == ["build", "analyze"]
    assert config.tasks["report"].write is True
    assert config.settings is not None
    assert config.settings.parallel is False
    assert config.settings.max_parallel == 3
    assert config.settings.verbose is None


def test_parse_workflow_tracks_definition_lines() -> None:
    config = parse_workflow(_WORKFLOW)

    assert config.line_of("agents", "analyst") == 6
    assert config.line_of("tasks", "build") == 12
    assert config.line_of("tasks", "report") == 19
    assert config.line_of("tasks", "unknown") == 0


def test_parse_workflow_yaml_error_has_location() -> None:
    with pytest.raises(ConfigError) as error:
        parse_workflow("agents:\n  a: [unclosed\n", source_path=Path("bad.yml"))

    assert error.value.file == "bad.yml"
    assert error.value.line > 0
    assert "YAML parse error" in error.value.message


def test_parse_workflow_rejects_non_mapping_root() -> None:
    with pytest.raises(ConfigError, match="must contain a YAML mapping"):
        parse_workflow("- just\n- a list\n")


def test_parse_workflow_rejects_invalid_needs() -> None:
    with pytest.raises(ConfigError, match="invalid 'needs'"):
        parse_workflow("tasks:\n  a:\n    agent: x\n    needs: {b: 1}\n")


@pytest.mark.parametrize("raw_value", ['"false"', "1", "off-ish"])
def test_parse_workflow_rejects_non_boolean_settings(raw_value: str) -> None:
    with pytest.raises(ConfigError, match="settings.parallel must be true or false"):
        parse_workflow(f"settings:\n  parallel: {raw_value}\n")


def test_parse_workflow_accepts_yaml_booleans_in_settings() -> None:
    config = parse_workflow("settings:\n  parallel: off\n  verbose: yes\n")

    assert config.settings is not None
    assert config.settings.parallel is False
    assert config.settings.verbose is True


def test_load_workflow_resolves_prompt_file_and_workdir(tmp_path: Path) -> None:
    (tmp_path / "prompts").mkdir()
    (tmp_path / "prompts" / "analyze.md").write_text("Analyze the build output.", "utf-8")
    workflow_path = tmp_path / "Cortexfile.yml"
    workflow_path.write_text(_WORKFLOW, "utf-8")

    config = load_workflow(workflow_path)

    assert config.tasks["analyze"].resolved_prompt == "Analyze the build output."
    assert config.tasks["analyze"].prompt_text == "Analyze the build output."
    assert config.tasks["build"].prompt_text == "make build"
    assert config.workdir == (tmp_path / "project").resolve()
    assert config.source_path == workflow_path


def test_load_workflow_leaves_missing_prompt_file_unresolved(tmp_path: Path) -> None:
    workflow_path = tmp_path / "Cortexfile.yml"
    workflow_path.write_text(_WORKFLOW, "utf-8")

    config = load_workflow(workflow_path)

    assert config.tasks["analyze"].resolved_prompt is None


def test_load_workflow_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="cannot read workflow file"):
        load_workflow(tmp_path / "absent.yml")


def test_find_workflow_file_prefers_cortexfile(tmp_path: Path) -> None:
    assert find_workflow_file(tmp_path) is None

    (tmp_path / "Agentfile.yml").write_text("agents: {}\n", "utf-8")
    assert find_workflow_file(tmp_path) == tmp_path / "Agentfile.yml"

    (tmp_path / "cortexfile.yaml").write_text("agents: {}\n", "utf-8")
    assert find_workflow_file(tmp_path) == tmp_path / "cortexfile.yaml"
