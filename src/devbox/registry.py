# registry.py
# Step registry: the catalogue of everything the engine may provision.
# Ordering is the planner's job; the registry only remembers insertion order
# so the planner can break ties deterministically.

from collections.abc import Iterator, ValuesView

from devbox.errors import DuplicateIdentifier, UnknownDependency
from devbox.models import Step


class StepRegistry:
    """
    Holds registered steps by id.

    Dependencies are resolved in a second pass (validate), so steps may be
    registered in any order.
    """

    def __init__(self, steps: list[Step] | None = None) -> None:
        self._steps: dict[str, Step] = {}
        for step in steps or []:
            self.register(step)

    def register(self, step: Step) -> Step:
        if step.id in self._steps:
            raise DuplicateIdentifier(step.id)
        self._steps[step.id] = step
        return step

    def validate(self) -> None:
        """Raise UnknownDependency for the first dependency that is not registered."""
        for step in self._steps.values():
            for dependency in step.depends_on:
                if dependency not in self._steps:
                    raise UnknownDependency(step.id, dependency)

    def all(self) -> ValuesView[Step]:
        """Lazy, restartable view over every registered step."""
        return self._steps.values()

    def get(self, step_id: str) -> Step | None:
        return self._steps.get(step_id)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)
