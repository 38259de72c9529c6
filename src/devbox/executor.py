# executor.py
# Condition-gated execution of a single step.
#
# Invariant: an action is never invoked while its condition holds. Errors
# raised by the step never escape run(); they become the cause of a FAILED
# result and the planner decides what to do with it. No retry, no rollback.

import time

from devbox.conditions import check
from devbox.errors import ActionError, ConditionUnevaluable, PostconditionNotMet
from devbox.models import Step, StepResult, StepStatus


class Executor:
    """Runs one step at a time against the live system."""

    def run(self, step: Step) -> StepResult:
        started = time.monotonic()

        def result(status: StepStatus, cause: BaseException | None = None) -> StepResult:
            return StepResult(
                step_id=step.id,
                status=status,
                cause=cause,
                duration=time.monotonic() - started,
            )

        try:
            if check(step.id, step.condition):
                return result(StepStatus.SKIPPED)
        except ConditionUnevaluable as exc:
            return result(StepStatus.FAILED, exc)

        try:
            step.action()
        except ActionError as exc:
            return result(StepStatus.FAILED, exc)
        except Exception as exc:
            wrapped = ActionError(f"Step '{step.id}' failed: {type(exc).__name__}: {exc}")
            wrapped.__cause__ = exc
            return result(StepStatus.FAILED, wrapped)

        if step.postcondition is not None:
            try:
                met = check(step.id, step.postcondition)
            except ConditionUnevaluable as exc:
                return result(StepStatus.FAILED, exc)
            if not met:
                return result(
                    StepStatus.FAILED,
                    PostconditionNotMet(
                        f"Step '{step.id}' ran but its postcondition does not hold."
                    ),
                )

        return result(StepStatus.APPLIED)

    def preview(self, step: Step) -> StepResult:
        """
        Dry-run a step: evaluate its condition only.

        An unevaluable condition previews as PENDING rather than FAILED; an
        earlier pending step is often what would make it checkable.
        """
        started = time.monotonic()
        note: BaseException | None = None
        try:
            satisfied = check(step.id, step.condition)
        except ConditionUnevaluable as exc:
            satisfied, note = False, exc

        return StepResult(
            step_id=step.id,
            status=StepStatus.SKIPPED if satisfied else StepStatus.PENDING,
            cause=note,
            duration=time.monotonic() - started,
        )
