# planner.py
# Orders registered steps and applies the resulting plan.
#
# Control flow:
#   registry → validate deps → deterministic topological sort → Plan
#   Plan → per-step preview (dry-run) or condition-gated run (execute)
#   → halt on first FAILED → RunReport
#
# Steps run strictly one after another. Shared system state (PATH, installed
# packages, profile files) is why the dependency graph, not a scheduler,
# governs order.

import heapq
from collections import defaultdict

from devbox import display
from devbox.errors import DependencyCycle, UnknownStep
from devbox.executor import Executor
from devbox.models import Plan, RunMode, RunReport, Step
from devbox.registry import StepRegistry


class Planner:
    """
    Builds and applies plans.

    Example:
        planner = Planner()
        plan = planner.plan(registry)
        report = planner.apply(plan, RunMode.DRY_RUN)
    """

    def __init__(self, executor: Executor | None = None) -> None:
        self._executor = executor or Executor()

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, registry: StepRegistry, only: list[str] | None = None) -> Plan:
        """
        Topologically sort the registry (Kahn's algorithm).

        Ties are broken by registration order so identical input always
        yields the identical plan. `only` restricts the plan to the named
        steps plus everything they transitively depend on.

        Raises UnknownDependency, UnknownStep or DependencyCycle before any
        step is touched.
        """
        registry.validate()

        steps = list(registry.all())
        if only:
            selected = self._with_dependencies(registry, only)
            steps = [step for step in steps if step.id in selected]

        position = {step.id: index for index, step in enumerate(steps)}
        indegree = {step.id: len(step.depends_on) for step in steps}
        dependents: dict[str, list[str]] = defaultdict(list)
        for step in steps:
            for dependency in step.depends_on:
                dependents[dependency].append(step.id)

        ready = [position[step_id] for step_id, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)

        ordered: list[Step] = []
        while ready:
            step = steps[heapq.heappop(ready)]
            ordered.append(step)
            for dependent in dependents[step.id]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    heapq.heappush(ready, position[dependent])

        if len(ordered) != len(steps):
            emitted = {step.id for step in ordered}
            remaining = [step for step in steps if step.id not in emitted]
            raise DependencyCycle(_find_cycle(remaining))

        return Plan(steps=tuple(ordered))

    @staticmethod
    def _with_dependencies(registry: StepRegistry, roots: list[str]) -> set[str]:
        selected: set[str] = set()
        pending = list(roots)
        while pending:
            step_id = pending.pop()
            if step_id in selected:
                continue
            step = registry.get(step_id)
            if step is None:
                raise UnknownStep(step_id)
            selected.add(step_id)
            pending.extend(step.depends_on)
        return selected

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def apply(self, plan: Plan, mode: RunMode) -> RunReport:
        """
        Walk the plan in order.

        DRY_RUN previews every step and never invokes an action.
        EXECUTE runs each step and stops at the first FAILED result; the
        report then holds the partial results and the failing step id.
        """
        report = RunReport(mode=mode)
        total = len(plan.steps)

        display.run_start(total, mode)

        for index, step in enumerate(plan.steps):
            display.step_start(index, total, step)

            if mode is RunMode.DRY_RUN:
                result = self._executor.preview(step)
            else:
                result = self._executor.run(step)

            report.results.append(result)
            display.step_result(result)

            if result.failed:
                report.failed_step = step.id
                break

        return report


def _find_cycle(remaining: list[Step]) -> list[str]:
    """
    Follow unresolved dependency edges until a node repeats.

    Every step left over by Kahn's algorithm still waits on another leftover
    step, so the walk always closes a loop.
    """
    by_id = {step.id: step for step in remaining}
    path: list[str] = []
    seen: dict[str, int] = {}

    node = remaining[0].id
    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = next(dep for dep in by_id[node].depends_on if dep in by_id)

    return path[seen[node]:]
