import pytest
from unittest.mock import MagicMock

from devbox.errors import (
    ActionError,
    ConditionUnevaluable,
    DependencyCycle,
    DuplicateIdentifier,
    PostconditionNotMet,
    UnknownDependency,
    UnknownStep,
)
from devbox.executor import Executor
from devbox.models import RunMode, Step, StepStatus
from devbox.planner import Planner
from devbox.registry import StepRegistry


def make_step(step_id, depends_on=(), satisfied=False, action=None, postcondition=None):
    return Step(
        id=step_id,
        description=f"step {step_id}",
        depends_on=tuple(depends_on),
        condition=lambda: satisfied,
        action=action or MagicMock(),
        postcondition=postcondition,
    )


def stateful_steps(state, specs):
    """Steps whose condition reads `state` and whose action writes it."""
    steps = []
    for step_id, deps in specs:
        steps.append(
            Step(
                id=step_id,
                description=f"provision {step_id}",
                depends_on=tuple(deps),
                condition=lambda step_id=step_id: state.get(step_id, False),
                action=lambda step_id=step_id: state.__setitem__(step_id, True),
                postcondition=lambda step_id=step_id: state.get(step_id, False),
            )
        )
    return steps


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def test_register_duplicate_identifier():
    registry = StepRegistry([make_step("git")])
    with pytest.raises(DuplicateIdentifier, match="git"):
        registry.register(make_step("git"))


def test_unknown_dependency_detected_on_validate():
    registry = StepRegistry([make_step("zsh", depends_on=["apt"])])
    with pytest.raises(UnknownDependency) as info:
        registry.validate()
    assert info.value.step_id == "zsh"
    assert info.value.dependency == "apt"


def test_dependencies_may_be_registered_later():
    registry = StepRegistry([make_step("zsh", depends_on=["apt"]), make_step("apt")])
    registry.validate()
    assert len(registry) == 2
    assert "apt" in registry


def test_all_is_restartable():
    registry = StepRegistry([make_step("a"), make_step("b")])
    view = registry.all()
    assert [s.id for s in view] == ["a", "b"]
    assert [s.id for s in view] == ["a", "b"]


def test_steps_are_immutable():
    step = make_step("a")
    with pytest.raises(Exception):
        step.id = "b"


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

def test_plan_orders_dependencies_first():
    registry = StepRegistry([
        make_step("plugins", depends_on=["omz"]),
        make_step("omz", depends_on=["zsh", "curl"]),
        make_step("zsh", depends_on=["apt"]),
        make_step("curl", depends_on=["apt"]),
        make_step("apt"),
    ])
    plan = Planner().plan(registry)

    position = {step_id: i for i, step_id in enumerate(plan.ids)}
    for step in plan.steps:
        for dep in step.depends_on:
            assert position[dep] < position[step.id]


def test_plan_ties_follow_registration_order():
    registry = StepRegistry([make_step("c"), make_step("a"), make_step("b")])
    assert Planner().plan(registry).ids == ["c", "a", "b"]

    registry = StepRegistry([make_step("b", depends_on=["a"]), make_step("a"), make_step("c")])
    assert Planner().plan(registry).ids == ["a", "b", "c"]


def test_plan_is_deterministic():
    def build():
        return StepRegistry([
            make_step("x", depends_on=["base"]),
            make_step("y", depends_on=["base"]),
            make_step("base"),
            make_step("z"),
        ])

    assert Planner().plan(build()).ids == Planner().plan(build()).ids


def test_plan_cycle_names_both_steps_and_runs_nothing():
    action_a, action_b = MagicMock(), MagicMock()
    registry = StepRegistry([
        make_step("A", depends_on=["B"], action=action_a),
        make_step("B", depends_on=["A"], action=action_b),
    ])

    with pytest.raises(DependencyCycle) as info:
        Planner().plan(registry)

    assert set(info.value.identifiers) == {"A", "B"}
    action_a.assert_not_called()
    action_b.assert_not_called()


def test_plan_cycle_excludes_steps_merely_downstream():
    registry = StepRegistry([
        make_step("C", depends_on=["A"]),
        make_step("A", depends_on=["B"]),
        make_step("B", depends_on=["A"]),
    ])
    with pytest.raises(DependencyCycle) as info:
        Planner().plan(registry)
    assert sorted(info.value.identifiers) == ["A", "B"]


def test_plan_self_dependency_is_a_cycle():
    registry = StepRegistry([make_step("A", depends_on=["A"])])
    with pytest.raises(DependencyCycle, match="A -> A"):
        Planner().plan(registry)


def test_plan_only_includes_transitive_dependencies():
    registry = StepRegistry([
        make_step("apt"),
        make_step("zsh", depends_on=["apt"]),
        make_step("omz", depends_on=["zsh"]),
        make_step("git-config"),
    ])
    assert Planner().plan(registry, only=["omz"]).ids == ["apt", "zsh", "omz"]


def test_plan_only_unknown_step():
    registry = StepRegistry([make_step("apt")])
    with pytest.raises(UnknownStep):
        Planner().plan(registry, only=["nope"])


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------

def test_run_skips_satisfied_step_without_calling_action():
    action = MagicMock()
    result = Executor().run(make_step("a", satisfied=True, action=action))
    assert result.status is StepStatus.SKIPPED
    action.assert_not_called()


def test_run_applies_unsatisfied_step():
    action = MagicMock()
    result = Executor().run(make_step("a", action=action, postcondition=lambda: True))
    assert result.status is StepStatus.APPLIED
    assert result.cause is None
    action.assert_called_once_with()


def test_run_wraps_action_exception():
    boom = RuntimeError("download interrupted")
    result = Executor().run(make_step("a", action=MagicMock(side_effect=boom)))
    assert result.status is StepStatus.FAILED
    assert isinstance(result.cause, ActionError)
    assert result.cause.__cause__ is boom
    assert "download interrupted" in str(result.cause)


def test_run_false_postcondition_fails():
    result = Executor().run(make_step("a", postcondition=lambda: False))
    assert result.status is StepStatus.FAILED
    assert isinstance(result.cause, PostconditionNotMet)


def test_run_unevaluable_condition_fails_without_action():
    def broken():
        raise ConditionUnevaluable("dpkg-query is missing")

    action = MagicMock()
    step = Step(id="a", description="a", condition=broken, action=action)
    result = Executor().run(step)

    assert result.status is StepStatus.FAILED
    assert isinstance(result.cause, ConditionUnevaluable)
    assert "dpkg-query" in str(result.cause)
    action.assert_not_called()


def test_condition_crash_is_unevaluable():
    def broken():
        raise PermissionError("denied")

    step = Step(id="a", description="a", condition=broken, action=MagicMock())
    result = Executor().run(step)
    assert isinstance(result.cause, ConditionUnevaluable)


def test_preview_never_calls_action():
    action = MagicMock()
    assert Executor().preview(make_step("a", action=action)).status is StepStatus.PENDING
    assert Executor().preview(make_step("b", satisfied=True, action=action)).status is StepStatus.SKIPPED
    action.assert_not_called()


def test_preview_unevaluable_condition_is_pending():
    def broken():
        raise ConditionUnevaluable("git is not installed")

    step = Step(id="a", description="a", condition=broken, action=MagicMock())
    result = Executor().preview(step)
    assert result.status is StepStatus.PENDING
    assert isinstance(result.cause, ConditionUnevaluable)


# ---------------------------------------------------------------------------
# Applying plans
# ---------------------------------------------------------------------------

def test_execute_halts_at_first_failure():
    later = MagicMock()
    registry = StepRegistry([
        make_step("first"),
        make_step("broken", depends_on=["first"], postcondition=lambda: False),
        make_step("later", depends_on=["broken"], action=later),
    ])
    planner = Planner()
    report = planner.apply(planner.plan(registry), RunMode.EXECUTE)

    assert not report.ok
    assert report.failed_step == "broken"
    assert [r.step_id for r in report.results] == ["first", "broken"]
    assert isinstance(report.results[-1].cause, PostconditionNotMet)
    later.assert_not_called()


def test_second_run_is_idempotent():
    state = {}
    registry = StepRegistry(stateful_steps(state, [
        ("apt", []),
        ("zsh", ["apt"]),
        ("omz", ["zsh"]),
        ("plugins", ["omz"]),
    ]))
    planner = Planner()
    plan = planner.plan(registry)

    first = planner.apply(plan, RunMode.EXECUTE)
    second = planner.apply(plan, RunMode.EXECUTE)

    assert first.ok and second.ok
    assert {r.status for r in first.results} == {StepStatus.APPLIED}
    assert {r.status for r in second.results} == {StepStatus.SKIPPED}


def test_dry_run_matches_execute():
    state = {"apt": True}
    registry = StepRegistry(stateful_steps(state, [
        ("apt", []),
        ("zsh", ["apt"]),
        ("git", ["apt"]),
    ]))
    planner = Planner()
    plan = planner.plan(registry)

    preview = planner.apply(plan, RunMode.DRY_RUN)
    assert state == {"apt": True}
    assert preview.ok

    executed = planner.apply(plan, RunMode.EXECUTE)

    would_run = [r.step_id for r in preview.results if r.status is StepStatus.PENDING]
    applied = [r.step_id for r in executed.results if r.status is StepStatus.APPLIED]
    assert would_run == applied == ["zsh", "git"]
    assert preview.count(StepStatus.SKIPPED) == 1


def test_dry_run_never_invokes_actions():
    actions = [MagicMock() for _ in range(3)]
    registry = StepRegistry([
        make_step("a", action=actions[0]),
        make_step("b", depends_on=["a"], satisfied=True, action=actions[1]),
        make_step("c", depends_on=["b"], action=actions[2], postcondition=lambda: False),
    ])
    planner = Planner()
    report = planner.apply(planner.plan(registry), RunMode.DRY_RUN)

    assert report.mode is RunMode.DRY_RUN
    assert len(report.results) == 3
    for action in actions:
        action.assert_not_called()
