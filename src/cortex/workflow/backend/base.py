"""Agent interface and tool-keyed registry for task execution."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


class AgentRunError(RuntimeError):
    """Agent could not start or run its process."""


@dataclass(slots=True)
class AgentTask:
    """Inputs required to execute one task."""

    name: str
    agent: str
    tool: str
    model: str
    prompt: str
    write: bool = False
    workdir: Path | None = None
    cancel_requested: Callable[[], bool] | None = None


@dataclass(slots=True)
class AgentResult:
    """Captured process outcome."""

    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class Agent(Protocol):
    """Protocol implemented by agent backends."""

    def run(self, task: AgentTask) -> AgentResult:
        """Run one task to completion and return its captured output."""

    def check(self) -> None:
        """Raise ``AgentRunError`` when the backing CLI is unavailable."""


class AgentRegistry:
    """Maps tool identifiers to agent backends."""

    def __init__(self) -> None:
        self._agents: dict[str, Agent] = {}

    def register(self, tool: str, agent: Agent) -> None:
        self._agents[tool] = agent

    def get(self, tool: str) -> Agent | None:
        return self._agents.get(tool)

    def has(self, tool: str) -> bool:
        return tool in self._agents

    def tools(self) -> list[str]:
        return sorted(self._agents)
