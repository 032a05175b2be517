"""JSON session store for workflow run results."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from cortex.workflow.models import RunResult, TaskResult

logger = logging.getLogger(__name__)

RUN_ID_FORMAT = "%Y%m%d-%H%M%S"
RUN_DIR_PREFIX = "run-"
RUN_FILE_NAME = "run.json"

_EPOCH = datetime.min.replace(tzinfo=UTC)


class ResultSink(Protocol):
    """Receives task results as they complete and the final run result."""

    def save_task_result(self, result: TaskResult) -> None: ...

    def save_run_result(self, result: RunResult) -> None: ...


@dataclass(slots=True)
class SessionFilter:
    project: str = ""
    limit: int = 0
    failed_only: bool = False


@dataclass(slots=True)
class SessionInfo:
    """Summary of one stored run."""

    run_id: str
    project: str
    run_dir: Path
    start_time: datetime | None = None
    end_time: datetime | None = None
    success: bool = False
    task_count: int = 0

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class SessionStore:
    """Persists results under ``<home>/sessions/<project>/run-<run_id>/``."""

    def __init__(self, run_dir: Path, run_id: str) -> None:
        self.run_dir = run_dir
        self.run_id = run_id
        self._lock = threading.Lock()

    @classmethod
    def create(cls, home_dir: Path, project_dir: Path, *, now: datetime | None = None) -> SessionStore:
        """Create a fresh run directory for ``project_dir``.

        The run id is the local start timestamp; a numeric suffix is added
        when a run directory for the same second already exists.
        """

        timestamp = (now or datetime.now()).strftime(RUN_ID_FORMAT)  # noqa: DTZ005
        project_sessions = home_dir / "sessions" / _project_name(project_dir)
        project_sessions.mkdir(parents=True, exist_ok=True)

        run_id = timestamp
        suffix = 1
        while True:
            run_dir = project_sessions / f"{RUN_DIR_PREFIX}{run_id}"
            try:
                run_dir.mkdir()
                break
            except FileExistsError:
                suffix += 1
                run_id = f"{timestamp}-{suffix}"

        logger.info("Session directory created: %s", run_dir)
        return cls(run_dir=run_dir, run_id=run_id)

    def save_task_result(self, result: TaskResult) -> None:
        self._write_json(self.run_dir / f"{result.task_name}.json", result.to_dict())

    def save_run_result(self, result: RunResult) -> None:
        self._write_json(self.run_dir / RUN_FILE_NAME, result.to_dict())

    def load_task_result(self, task_name: str) -> TaskResult:
        raw = json.loads((self.run_dir / f"{task_name}.json").read_text("utf-8"))
        return TaskResult.from_dict(raw)

    def _write_json(self, path: Path, payload: dict[str, Any]) -> None:
        text = json.dumps(payload, ensure_ascii=False, indent=2)
        with self._lock:
            path.write_text(text, "utf-8")


def list_sessions(home_dir: Path, session_filter: SessionFilter | None = None) -> list[SessionInfo]:
    """Stored runs, newest first.

    Runs without a readable ``run.json`` are still listed, with only their id,
    project, and directory filled in.
    """

    session_filter = session_filter or SessionFilter()
    sessions_dir = home_dir / "sessions"
    if not sessions_dir.is_dir():
        return []

    if session_filter.project:
        project_dirs = [sessions_dir / session_filter.project]
    else:
        project_dirs = sorted(path for path in sessions_dir.iterdir() if path.is_dir())

    sessions: list[SessionInfo] = []
    for project_dir in project_dirs:
        if not project_dir.is_dir():
            continue
        try:
            run_dirs = sorted(project_dir.iterdir())
        except OSError as error:
            logger.warning("Cannot read sessions for %s: %s", project_dir.name, error)
            continue
        for run_dir in run_dirs:
            if run_dir.is_dir() and run_dir.name.startswith(RUN_DIR_PREFIX):
                sessions.append(_load_session_info(run_dir, project_dir.name))

    if session_filter.failed_only:
        sessions = [session for session in sessions if not session.success]

    sessions.sort(key=lambda session: session.start_time or _EPOCH, reverse=True)

    if session_filter.limit > 0:
        sessions = sessions[: session_filter.limit]
    return sessions


def get_session(home_dir: Path, project: str, run_id: str) -> RunResult:
    """Load a stored run; raises ``FileNotFoundError`` when it does not exist."""

    run_file = home_dir / "sessions" / project / f"{RUN_DIR_PREFIX}{run_id}" / RUN_FILE_NAME
    return RunResult.from_dict(json.loads(run_file.read_text("utf-8")))


def list_projects(home_dir: Path) -> list[str]:
    sessions_dir = home_dir / "sessions"
    if not sessions_dir.is_dir():
        return []
    return sorted(path.name for path in sessions_dir.iterdir() if path.is_dir())


def format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    total = round(seconds)
    if total < 60:
        return f"{total}s"
    if total < 3600:
        minutes, secs = divmod(total, 60)
        return f"{minutes}m{secs}s"
    hours, remainder = divmod(total, 3600)
    minutes = round(remainder / 60)
    if minutes == 60:
        hours, minutes = hours + 1, 0
    return f"{hours}h{minutes}m"


def _project_name(project_dir: Path) -> str:
    return project_dir.resolve().name or "root"


def _load_session_info(run_dir: Path, project: str) -> SessionInfo:
    run_id = run_dir.name.removeprefix(RUN_DIR_PREFIX)
    info = SessionInfo(run_id=run_id, project=project, run_dir=run_dir)
    try:
        result = RunResult.from_dict(json.loads((run_dir / RUN_FILE_NAME).read_text("utf-8")))
    except (OSError, ValueError, KeyError, TypeError) as error:
        logger.info("Skipping unreadable run metadata in %s: %s", run_dir, error)
        return info

    info.run_id = result.run_id
    info.start_time = result.start_time
    info.end_time = result.end_time
    info.success = result.success
    info.task_count = len(result.tasks)
    return info
