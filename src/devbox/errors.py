# errors.py
# Error taxonomy for the provisioning engine.
#
# Registry and planner errors are configuration errors: they are raised
# before any step runs. Step-level errors never escape the executor; they
# are captured as the cause of a FAILED StepResult.


class DevboxError(Exception):
    """Base class for every error raised by devbox."""


# ---------------------------------------------------------------------------
# Configuration errors (fatal before anything runs)
# ---------------------------------------------------------------------------


class StepFileError(DevboxError):
    """Raised when a step file cannot be read, parsed or validated."""


class DuplicateIdentifier(DevboxError):
    """Raised when a step id is registered twice."""

    def __init__(self, step_id: str) -> None:
        super().__init__(f"Step '{step_id}' is already registered.")
        self.step_id = step_id


class UnknownDependency(DevboxError):
    """Raised when a step depends on an id that was never registered."""

    def __init__(self, step_id: str, dependency: str) -> None:
        super().__init__(f"Step '{step_id}' depends on unknown step '{dependency}'.")
        self.step_id = step_id
        self.dependency = dependency


class DependencyCycle(DevboxError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, identifiers: list[str]) -> None:
        chain = " -> ".join([*identifiers, identifiers[0]])
        super().__init__(f"Dependency cycle detected: {chain}")
        self.identifiers = identifiers


class UnknownStep(DevboxError):
    """Raised when a step id requested by the caller is not registered."""

    def __init__(self, step_id: str) -> None:
        super().__init__(f"No step named '{step_id}'.")
        self.step_id = step_id


# ---------------------------------------------------------------------------
# Step-level errors (captured into StepResult.cause)
# ---------------------------------------------------------------------------


class ConditionUnevaluable(DevboxError):
    """Raised when a condition cannot be checked at all (distinct from False)."""


class ActionError(DevboxError):
    """Raised when a step action fails. Wraps the underlying cause."""


class CommandError(ActionError):
    """Raised when an external command exits non-zero."""

    def __init__(self, argv: list[str], returncode: int, stderr: str = "") -> None:
        message = f"Command {' '.join(argv)!r} exited with status {returncode}."
        tail = stderr.strip().splitlines()[-5:]
        if tail:
            message += "\n" + "\n".join(tail)
        super().__init__(message)
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr


class PostconditionNotMet(DevboxError):
    """Raised when an action succeeded but its postcondition is still false."""
