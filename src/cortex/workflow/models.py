"""Domain models for workflow configuration, planning, and run results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

SUPPORTED_TOOLS = ("claude-code", "opencode", "shell")
SHELL_TOOL = "shell"


def utc_now() -> datetime:
    """Return timezone-aware current UTC time."""

    return datetime.now(tz=UTC)


def is_supported_tool(tool: str) -> bool:
    return tool in SUPPORTED_TOOLS


class RunStatus(str, Enum):
    """Lifecycle of one workflow run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class AgentConfig:
    """Agent definition from the workflow file."""

    tool: str = ""
    model: str = ""


@dataclass(slots=True)
class TaskConfig:
    """Task definition from the workflow file."""

    agent: str = ""
    prompt: str = ""
    prompt_file: str = ""
    command: str = ""
    needs: list[str] = field(default_factory=list)
    write: bool = False
    resolved_prompt: str | None = None

    @property
    def prompt_text(self) -> str:
        """Text sent to the agent: shell command, inline prompt, or prompt file contents."""

        if self.command:
            return self.command
        if self.prompt:
            return self.prompt
        return self.resolved_prompt or ""


@dataclass(slots=True)
class WorkflowSettings:
    """Optional per-workflow overrides from the ``settings:`` section."""

    parallel: bool | None = None
    max_parallel: int = 0
    verbose: bool | None = None


@dataclass(slots=True)
class WorkflowConfig:
    """Parsed workflow file."""

    agents: dict[str, AgentConfig] = field(default_factory=dict)
    tasks: dict[str, TaskConfig] = field(default_factory=dict)
    settings: WorkflowSettings | None = None
    workdir: Path | None = None
    source_path: Path | None = None
    lines: dict[str, int] = field(default_factory=dict)

    def line_of(self, section: str, name: str) -> int:
        """Line of an agent/task definition in the source file, 0 when unknown."""

        return self.lines.get(f"{section}.{name}", 0)


@dataclass(slots=True)
class ExecutionLevel:
    """Tasks that may run concurrently because all their dependencies are in earlier levels."""

    level: int
    tasks: list[str]


@dataclass(slots=True)
class ExecutionTask:
    """Task resolved against its agent and ready to dispatch."""

    name: str
    agent_name: str
    tool: str
    model: str
    prompt: str
    write: bool = False
    dependencies: tuple[str, ...] = ()


@dataclass(slots=True)
class TaskResult:
    """Outcome of one task; completed exactly once."""

    task_name: str
    agent: str
    tool: str
    model: str
    prompt: str
    stdout: str = ""
    stderr: str = ""
    success: bool = False
    exit_code: int = 0
    start_time: datetime = field(default_factory=utc_now)
    end_time: datetime | None = None
    duration_seconds: float | None = None

    @property
    def completed(self) -> bool:
        return self.end_time is not None

    def complete(self, *, stdout: str, stderr: str, exit_code: int, success: bool) -> None:
        """Record the final outcome and timing."""

        if self.end_time is not None:
            raise RuntimeError(f"Task result for {self.task_name!r} is already completed.")
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        self.success = success
        self.end_time = utc_now()
        self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    @property
    def duration(self) -> str:
        """Human-readable duration rounded to 100ms."""

        if self.duration_seconds is None:
            return ""
        return f"{round(self.duration_seconds, 1)}s"

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_name": self.task_name,
            "agent": self.agent,
            "tool": self.tool,
            "model": self.model,
            "prompt": self.prompt,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "success": self.success,
            "exit_code": self.exit_code,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TaskResult:
        end_time_raw = raw.get("end_time")
        return cls(
            task_name=str(raw["task_name"]),
            agent=str(raw.get("agent", "")),
            tool=str(raw.get("tool", "")),
            model=str(raw.get("model") or ""),
            prompt=str(raw.get("prompt", "")),
            stdout=str(raw.get("stdout", "")),
            stderr=str(raw.get("stderr") or ""),
            success=bool(raw.get("success", False)),
            exit_code=int(raw.get("exit_code", 0)),
            start_time=datetime.fromisoformat(raw["start_time"]),
            end_time=datetime.fromisoformat(end_time_raw) if end_time_raw else None,
            duration_seconds=raw.get("duration_seconds"),
        )


@dataclass(slots=True)
class RunResult:
    """Aggregate result of one workflow run; tasks are appended as they finish."""

    run_id: str
    start_time: datetime = field(default_factory=utc_now)
    end_time: datetime | None = None
    success: bool = True
    tasks: list[TaskResult] = field(default_factory=list)
    status: RunStatus = RunStatus.NOT_STARTED
    error: str | None = None

    def task(self, name: str) -> TaskResult | None:
        for result in self.tasks:
            if result.task_name == name:
                return result
        return None

    @property
    def duration_seconds(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "success": self.success,
            "status": self.status.value,
            "error": self.error,
            "tasks": [task.to_dict() for task in self.tasks],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> RunResult:
        end_time_raw = raw.get("end_time")
        return cls(
            run_id=str(raw["run_id"]),
            start_time=datetime.fromisoformat(raw["start_time"]),
            end_time=datetime.fromisoformat(end_time_raw) if end_time_raw else None,
            success=bool(raw.get("success", False)),
            tasks=[TaskResult.from_dict(item) for item in raw.get("tasks", [])],
            status=RunStatus(raw.get("status", RunStatus.COMPLETED.value)),
            error=raw.get("error"),
        )
