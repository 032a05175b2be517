"""Shared test fixtures."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from cortex.workflow.backend.base import AgentRegistry, AgentResult, AgentRunError, AgentTask
from cortex.workflow.models import AgentConfig, TaskConfig, WorkflowConfig

_CORTEX_ENV_VARS = (
    "CORTEX_PARALLEL",
    "CORTEX_MAX_PARALLEL",
    "CORTEX_VERBOSE",
    "CORTEX_TASK_TIMEOUT_SECONDS",
    "CORTEX_NO_COLOR",
    "NO_COLOR",
)


class ScriptedAgent:
    """In-process agent returning canned outputs and recording calls."""

    def __init__(
        self,
        *,
        outputs: dict[str, str] | None = None,
        exit_codes: dict[str, int] | None = None,
        errors: dict[str, str] | None = None,
        crashes: dict[str, Exception] | None = None,
        delay_seconds: float = 0.0,
        before_run: Callable[[AgentTask], None] | None = None,
    ) -> None:
        self.outputs = outputs or {}
        self.exit_codes = exit_codes or {}
        self.errors = errors or {}
        self.crashes = crashes or {}
        self.delay_seconds = delay_seconds
        self.before_run = before_run
        self.checked = 0
        self.calls: list[AgentTask] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    @property
    def called_names(self) -> list[str]:
        return [task.name for task in self.calls]

    def run(self, task: AgentTask) -> AgentResult:
        with self._lock:
            self.calls.append(task)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.before_run is not None:
                self.before_run(task)
            if self.delay_seconds:
                time.sleep(self.delay_seconds)
            if task.name in self.errors:
                raise AgentRunError(self.errors[task.name])
            if task.name in self.crashes:
                raise self.crashes[task.name]
            return AgentResult(
                stdout=self.outputs.get(task.name, f"out-{task.name}"),
                stderr="",
                exit_code=self.exit_codes.get(task.name, 0),
            )
        finally:
            with self._lock:
                self.active -= 1

    def check(self) -> None:
        self.checked += 1


@pytest.fixture()
def scripted_agent() -> Callable[..., ScriptedAgent]:
    return ScriptedAgent


@pytest.fixture()
def registry_for() -> Callable[[ScriptedAgent], AgentRegistry]:
    def _build(agent: ScriptedAgent, tool: str = "claude-code") -> AgentRegistry:
        registry = AgentRegistry()
        registry.register(tool, agent)
        return registry

    return _build


@pytest.fixture()
def make_workflow() -> Callable[..., WorkflowConfig]:
    """Build a single-agent workflow from ``{task: needs}`` plus optional prompts."""

    def _build(
        needs: dict[str, list[str]],
        *,
        prompts: dict[str, str] | None = None,
        tool: str = "claude-code",
    ) -> WorkflowConfig:
        prompts = prompts or {}
        return WorkflowConfig(
            agents={"bot": AgentConfig(tool=tool, model="sonnet")},
            tasks={
                name: TaskConfig(
                    agent="bot",
                    prompt=prompts.get(name, f"do {name}"),
                    needs=list(dependencies),
                )
                for name, dependencies in needs.items()
            },
        )

    return _build


@pytest.fixture()
def cortex_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated ``CORTEX_HOME`` with cortex environment overrides cleared."""

    home = tmp_path / "cortex-home"
    monkeypatch.setenv("CORTEX_HOME", str(home))
    for name in _CORTEX_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return home
