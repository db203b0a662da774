# src/pipeline/dag_builder.py — v2
"""DAG builder — resolve step dependencies into an execution order.

Depth-first topological sort over StepConfig.dependencies. Steps are
visited in declaration order, so independent branches keep the order in
which they were configured. Cycles, unknown dependencies and duplicate
step names are rejected before any step runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from shipyard.core.errors import ConfigurationError
from shipyard.pipeline.models import StepConfig

logger = logging.getLogger(__name__)


@dataclass
class ExecutionPlan:
    """Ordered execution plan for pipeline steps.

    order is the sequential execution order. levels groups steps whose
    dependencies are all satisfied by previous levels; it is informational
    only since execution is sequential.
    """

    order: list[str] = field(default_factory=list)
    levels: list[list[str]] = field(default_factory=list)

    @property
    def total_steps(self) -> int:
        return len(self.order)


def resolve_execution_order(steps: list[StepConfig]) -> list[str]:
    """Return step names so that every step follows all of its dependencies.

    Raises:
        ConfigurationError: On duplicate names, unknown dependencies or a
            circular dependency.
    """
    by_name: dict[str, StepConfig] = {}
    for step in steps:
        if step.name in by_name:
            raise ConfigurationError(f"Duplicate step name: '{step.name}'")
        by_name[step.name] = step

    for step in steps:
        for dep in step.dependencies:
            if dep not in by_name:
                raise ConfigurationError(
                    f"Step '{step.name}' depends on unknown step '{dep}'"
                )

    resolved: list[str] = []
    done: set[str] = set()
    resolving: list[str] = []

    def visit(name: str) -> None:
        if name in done:
            return
        if name in resolving:
            cycle = resolving[resolving.index(name):] + [name]
            raise ConfigurationError(
                f"circular dependency detected: {' -> '.join(cycle)}"
            )
        resolving.append(name)
        for dep in by_name[name].dependencies:
            visit(dep)
        resolving.pop()
        done.add(name)
        resolved.append(name)

    for step in steps:
        visit(step.name)

    return resolved


def build_plan(steps: list[StepConfig]) -> ExecutionPlan:
    """Build an ExecutionPlan (order + informational levels)."""
    order = resolve_execution_order(steps)
    deps = {s.name: s.dependencies for s in steps}

    depth: dict[str, int] = {}
    for name in order:
        depth[name] = 1 + max((depth[d] for d in deps[name]), default=-1)

    levels: list[list[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
    for name in order:
        levels[depth[name]].append(name)

    plan = ExecutionPlan(order=order, levels=levels)
    logger.info(
        "Execution plan: %d steps in %d levels -> %s",
        plan.total_steps,
        len(plan.levels),
        plan.order,
    )
    return plan
