"""Grouping of tasks into dependency levels for parallel execution."""

from __future__ import annotations

import logging

from cortex.workflow.graph import DependencyGraph
from cortex.workflow.models import ExecutionLevel

logger = logging.getLogger(__name__)


def build_execution_levels(graph: DependencyGraph) -> list[ExecutionLevel]:
    """Peel the graph into levels.

    Level 0 holds tasks without dependencies; level N holds tasks whose
    dependencies all sit in levels 0..N-1. When a round finds no ready task
    while tasks remain (a cycle), the levels built so far are returned.
    """

    remaining = dict(graph.in_degree)
    assigned: set[str] = set()
    levels: list[ExecutionLevel] = []

    while len(assigned) < len(graph):
        ready = sorted(
            name for name in graph.nodes if name not in assigned and remaining[name] == 0
        )
        if not ready:
            logger.warning(
                "Level building stopped with %d of %d tasks unassigned; dependency cycle?",
                len(graph) - len(assigned),
                len(graph),
            )
            break

        levels.append(ExecutionLevel(level=len(levels), tasks=ready))
        for name in ready:
            assigned.add(name)
            for dependent in graph.reverse_edges[name]:
                remaining[dependent] -= 1

    return levels


def total_tasks(levels: list[ExecutionLevel]) -> int:
    return sum(len(level.tasks) for level in levels)


def max_parallelism(levels: list[ExecutionLevel]) -> int:
    """Size of the largest level."""

    return max((len(level.tasks) for level in levels), default=0)


def level_for_task(levels: list[ExecutionLevel], task_name: str) -> int | None:
    for level in levels:
        if task_name in level.tasks:
            return level.level
    return None
