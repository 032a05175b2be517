"""Dependency graph over workflow tasks and deterministic topological ordering."""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field

from cortex.workflow.errors import CycleDetectedError
from cortex.workflow.models import TaskConfig


@dataclass(slots=True)
class DependencyGraph:
    """DAG of task dependencies.

    ``edges`` maps a task to the tasks it depends on, ``reverse_edges`` maps a
    task to the tasks that depend on it, and ``in_degree`` counts each task's
    dependencies. Treat as read-only once built.
    """

    nodes: dict[str, TaskConfig] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)
    reverse_edges: dict[str, list[str]] = field(default_factory=dict)
    in_degree: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    @property
    def edge_count(self) -> int:
        return sum(len(dependencies) for dependencies in self.edges.values())

    def roots(self) -> list[str]:
        """Tasks without dependencies, sorted."""

        return sorted(name for name, degree in self.in_degree.items() if degree == 0)

    def dependencies(self, name: str) -> list[str]:
        return list(self.edges.get(name, ()))

    def dependents(self, name: str) -> list[str]:
        return list(self.reverse_edges.get(name, ()))


def build_dependency_graph(tasks: Mapping[str, TaskConfig]) -> DependencyGraph:
    """Build the graph from task ``needs`` lists.

    Referential and acyclic validity is the validator's job; only a dependency
    on a task missing from ``tasks`` is rejected here.
    """

    graph = DependencyGraph()
    for name, task in tasks.items():
        graph.nodes[name] = task
        graph.in_degree[name] = 0
        graph.edges[name] = []
        graph.reverse_edges[name] = []

    for name, task in tasks.items():
        for dependency in task.needs:
            if dependency not in graph.nodes:
                raise ValueError(f"Task {name!r} depends on unknown task {dependency!r}.")
            graph.edges[name].append(dependency)
            graph.reverse_edges[dependency].append(name)
            graph.in_degree[name] += 1

    return graph


def topological_sort(graph: DependencyGraph) -> list[str]:
    """Order tasks so that every task follows all of its dependencies.

    Kahn's algorithm; ties are broken by name, both for the initial roots and
    for each batch of newly ready tasks.
    """

    in_degree = dict(graph.in_degree)
    queue = deque(sorted(name for name, degree in in_degree.items() if degree == 0))

    order: list[str] = []
    while queue:
        current = queue.popleft()
        order.append(current)

        newly_ready: list[str] = []
        for dependent in graph.reverse_edges[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                newly_ready.append(dependent)
        queue.extend(sorted(newly_ready))

    if len(order) != len(graph):
        raise CycleDetectedError(processed=len(order), total=len(graph))
    return order
