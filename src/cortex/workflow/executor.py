"""Workflow executor: dispatches planned tasks sequentially or level by level."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from cortex.workflow.backend.base import AgentRegistry, AgentRunError, AgentTask
from cortex.workflow.backend.cli_backend import CANCELLED_EXIT_CODE
from cortex.workflow.errors import CycleDetectedError
from cortex.workflow.levels import total_tasks
from cortex.workflow.models import ExecutionTask, RunResult, RunStatus, TaskResult, utc_now
from cortex.workflow.planner import ExecutionPlan
from cortex.workflow.store import ResultSink
from cortex.workflow.templates import expand_prompt

logger = logging.getLogger(__name__)


class _ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._condition = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._condition:
            while self._writer or self._writers_waiting:
                self._condition.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._condition:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._condition.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._condition:
                self._writer = False
                self._condition.notify_all()


class OutputMap:
    """Captured stdout per task name, shared between concurrent tasks."""

    def __init__(self) -> None:
        self._outputs: dict[str, str] = {}
        self._lock = _ReadWriteLock()

    def set(self, task_name: str, stdout: str) -> None:
        with self._lock.write():
            self._outputs[task_name] = stdout

    def get(self, task_name: str) -> str | None:
        with self._lock.read():
            return self._outputs.get(task_name)

    def snapshot(self) -> Mapping[str, str]:
        with self._lock.read():
            return dict(self._outputs)

    def __contains__(self, task_name: object) -> bool:
        with self._lock.read():
            return task_name in self._outputs

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._outputs)


@dataclass(slots=True)
class _TaskOutcome:
    result: TaskResult
    error: str | None = None


TaskStartCallback = Callable[[ExecutionTask, int, int], None]
TaskCompleteCallback = Callable[[TaskResult], None]


class WorkflowExecutor:
    """Runs one execution plan against an agent registry.

    An executor instance is single-use: ``execute`` moves it from
    ``NOT_STARTED`` to ``RUNNING`` and finally to ``COMPLETED`` or ``FAILED``.
    Task failures never raise; they are recorded in the returned
    ``RunResult`` and its ``error`` field.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        registry: AgentRegistry,
        sink: ResultSink | None = None,
        run_id: str = "",
        parallel: bool = False,
        max_parallel: int = 0,
        workdir: Path | None = None,
        cancel_event: threading.Event | None = None,
        on_task_start: TaskStartCallback | None = None,
        on_task_complete: TaskCompleteCallback | None = None,
    ) -> None:
        self.registry = registry
        self.sink = sink
        self.run_id = run_id or utc_now().strftime("%Y%m%d-%H%M%S")
        self.parallel = parallel
        self.max_parallel = max_parallel
        self.workdir = workdir
        self.cancel_event = cancel_event or threading.Event()
        self.on_task_start = on_task_start
        self.on_task_complete = on_task_complete
        self.outputs = OutputMap()
        self.status = RunStatus.NOT_STARTED
        self.result: RunResult | None = None
        self._results_lock = threading.Lock()
        self._dispatch_lock = threading.Lock()
        self._dispatched = 0

    def execute(self, plan: ExecutionPlan) -> RunResult:
        """Run every task of ``plan`` and return the aggregated result.

        Raises ``RuntimeError`` on a second call and ``CycleDetectedError``
        when parallel levels cannot cover the whole plan; the run result is
        finalised and handed to the sink in both halting paths.
        """

        if self.status is not RunStatus.NOT_STARTED:
            raise RuntimeError(f"Executor already used (status={self.status.value}).")

        run_result = RunResult(run_id=self.run_id, status=RunStatus.RUNNING)
        self.result = run_result
        self.status = RunStatus.RUNNING
        logger.info(
            "Run %s started: %d tasks, mode=%s",
            self.run_id,
            len(plan.tasks),
            "parallel" if self.parallel else "sequential",
        )

        try:
            if self.parallel:
                self._execute_parallel(plan, run_result)
            else:
                self._execute_sequential(plan, run_result)
        except CycleDetectedError as error:
            self._fail(run_result, str(error))
            raise
        except Exception as error:
            self._fail(run_result, f"run aborted: {error}")
            raise
        finally:
            self._finalize(run_result)

        return run_result

    def _execute_sequential(self, plan: ExecutionPlan, run_result: RunResult) -> None:
        total = len(plan.tasks)
        for task in plan.tasks:
            outcome = self._run_task(task, total)
            self._record(run_result, outcome)
            if outcome.error is not None:
                self._fail(run_result, outcome.error)
                return

    def _execute_parallel(self, plan: ExecutionPlan, run_result: RunResult) -> None:
        levels = plan.levels()
        total = len(plan.tasks)
        if total_tasks(levels) != total:
            raise CycleDetectedError(processed=total_tasks(levels), total=total)

        tasks_by_name = {task.name: task for task in plan.tasks}
        cpu_count = os.cpu_count() or 1

        for level in levels:
            limit = self.max_parallel if self.max_parallel > 0 else cpu_count
            workers = max(1, min(len(level.tasks), limit))
            logger.info(
                "Level %d: %d tasks, %d workers",
                level.level,
                len(level.tasks),
                workers,
            )

            with ThreadPoolExecutor(
                max_workers=workers,
                thread_name_prefix=f"cortex-level-{level.level}",
            ) as pool:
                futures = [
                    pool.submit(self._run_and_record, tasks_by_name[name], total, run_result)
                    for name in level.tasks
                ]
                wait(futures)

            level_errors = [future.result() for future in futures]
            first_error = next((error for error in level_errors if error is not None), None)
            if first_error is not None:
                self._fail(run_result, first_error)
                return

    def _run_and_record(
        self,
        task: ExecutionTask,
        total: int,
        run_result: RunResult,
    ) -> str | None:
        outcome = self._run_task(task, total)
        self._record(run_result, outcome)
        return outcome.error

    def _run_task(self, task: ExecutionTask, total: int) -> _TaskOutcome:
        if self.cancel_event.is_set():
            result = TaskResult(
                task_name=task.name,
                agent=task.agent_name,
                tool=task.tool,
                model=task.model,
                prompt="",
            )
            result.complete(
                stdout="",
                stderr="cancelled before dispatch",
                exit_code=CANCELLED_EXIT_CODE,
                success=False,
            )
            logger.info("Task %s cancelled before dispatch", task.name)
            return _TaskOutcome(result=result, error=f"task {task.name!r} cancelled before dispatch")

        with self._dispatch_lock:
            self._dispatched += 1
            index = self._dispatched
        if self.on_task_start is not None:
            self.on_task_start(task, index, total)

        agent = self.registry.get(task.tool)
        if agent is None:
            result = TaskResult(
                task_name=task.name,
                agent=task.agent_name,
                tool=task.tool,
                model=task.model,
                prompt="",
            )
            result.complete(
                stdout="",
                stderr=f"no adapter for tool {task.tool!r}",
                exit_code=1,
                success=False,
            )
            return _TaskOutcome(result=result, error=f"no adapter registered for tool {task.tool!r}")

        prompt = expand_prompt(task.prompt, self.outputs.snapshot())
        result = TaskResult(
            task_name=task.name,
            agent=task.agent_name,
            tool=task.tool,
            model=task.model,
            prompt=prompt,
        )
        agent_task = AgentTask(
            name=task.name,
            agent=task.agent_name,
            tool=task.tool,
            model=task.model,
            prompt=prompt,
            write=task.write,
            workdir=self.workdir,
            cancel_requested=self.cancel_event.is_set,
        )

        logger.info("Task %s dispatched to %s", task.name, task.tool)
        try:
            agent_result = agent.run(agent_task)
        except AgentRunError as error:
            result.complete(stdout="", stderr=str(error), exit_code=1, success=False)
            logger.info("Task %s could not run: %s", task.name, error)
            return _TaskOutcome(result=result, error=f"task {task.name!r} failed: {error}")
        except Exception as error:  # noqa: BLE001
            result.complete(stdout="", stderr=str(error), exit_code=1, success=False)
            logger.exception("Task %s raised unexpectedly", task.name)
            return _TaskOutcome(result=result, error=f"task {task.name!r} failed: {error}")

        result.complete(
            stdout=agent_result.stdout,
            stderr=agent_result.stderr,
            exit_code=agent_result.exit_code,
            success=agent_result.success,
        )
        self.outputs.set(task.name, agent_result.stdout)
        logger.info(
            "Task %s finished: exit_code=%d duration=%s",
            task.name,
            result.exit_code,
            result.duration,
        )

        if not result.success:
            return _TaskOutcome(
                result=result,
                error=f"task {task.name!r} failed with exit code {result.exit_code}",
            )
        return _TaskOutcome(result=result)

    def _record(self, run_result: RunResult, outcome: _TaskOutcome) -> None:
        with self._results_lock:
            run_result.tasks.append(outcome.result)
        self._save(lambda sink: sink.save_task_result(outcome.result))
        if self.on_task_complete is not None:
            self.on_task_complete(outcome.result)

    def _fail(self, run_result: RunResult, error: str) -> None:
        run_result.success = False
        if run_result.error is None:
            run_result.error = error
        logger.info("Run %s halted: %s", self.run_id, error)

    def _finalize(self, run_result: RunResult) -> None:
        run_result.end_time = utc_now()
        if run_result.success:
            run_result.success = all(task.success for task in run_result.tasks)
        run_result.status = RunStatus.COMPLETED if run_result.success else RunStatus.FAILED
        self.status = run_result.status
        self._save(lambda sink: sink.save_run_result(run_result))
        logger.info("Run %s finished: status=%s", self.run_id, run_result.status.value)

    def _save(self, action: Callable[[ResultSink], None]) -> None:
        if self.sink is None:
            return
        try:
            action(self.sink)
        except (OSError, ValueError) as error:
            logger.warning("Failed to persist result for run %s: %s", self.run_id, error)
