"""Execution plan construction from a validated workflow."""

from __future__ import annotations

from dataclasses import dataclass

from cortex.workflow.graph import DependencyGraph, build_dependency_graph, topological_sort
from cortex.workflow.levels import build_execution_levels
from cortex.workflow.models import ExecutionLevel, ExecutionTask, WorkflowConfig


@dataclass(slots=True)
class ExecutionPlan:
    """Topologically ordered tasks plus the graph they came from."""

    tasks: list[ExecutionTask]
    graph: DependencyGraph

    def task(self, name: str) -> ExecutionTask:
        for task in self.tasks:
            if task.name == name:
                return task
        raise KeyError(name)

    def levels(self) -> list[ExecutionLevel]:
        return build_execution_levels(self.graph)

    def describe(self) -> list[str]:
        """One display line per task in execution order."""

        lines: list[str] = []
        for index, task in enumerate(self.tasks, start=1):
            target = task.tool
            if task.model:
                target += f"/{task.model}"
            line = f"{index}. {task.name} ({task.agent_name} -> {target})"
            if task.dependencies:
                line += f" [depends: {', '.join(task.dependencies)}]"
            lines.append(line)
        return lines


def build_plan(config: WorkflowConfig) -> ExecutionPlan:
    """Resolve every task against its agent, in dependency order.

    Raises ``CycleDetectedError`` if a cycle slipped past validation.
    """

    graph = build_dependency_graph(config.tasks)
    order = topological_sort(graph)

    tasks: list[ExecutionTask] = []
    for name in order:
        task_config = config.tasks[name]
        agent_config = config.agents.get(task_config.agent)
        if agent_config is None:
            raise ValueError(f"Task {name!r} references undefined agent {task_config.agent!r}.")
        tasks.append(
            ExecutionTask(
                name=name,
                agent_name=task_config.agent,
                tool=agent_config.tool,
                model=agent_config.model,
                prompt=task_config.prompt_text,
                write=task_config.write,
                dependencies=tuple(task_config.needs),
            ),
        )

    return ExecutionPlan(tasks=tasks, graph=graph)
