# models.py
# Data contracts for the provisioning engine.
# No business logic lives here. Pure schema and validation.

from enum import Enum
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field


class Step(BaseModel):
    """A single idempotent provisioning step."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique step identifier.")
    description: str = Field(..., description="Human-readable intent of this step.")
    depends_on: tuple[str, ...] = Field(
        default=(), description="Identifiers of steps that must run first."
    )
    condition: Callable[[], bool] = Field(
        ..., description="Side-effect-free check: True when the desired state already holds."
    )
    action: Callable[[], None] = Field(..., description="Side-effecting procedure.")
    postcondition: Callable[[], bool] | None = Field(
        default=None, description="Re-check run after the action to confirm it worked."
    )


class Plan(BaseModel):
    """Steps in an order where every dependency comes first."""

    model_config = ConfigDict(frozen=True)

    steps: tuple[Step, ...] = Field(default=())

    @property
    def ids(self) -> list[str]:
        return [step.id for step in self.steps]


class StepStatus(str, Enum):
    SKIPPED = "skipped"
    APPLIED = "applied"
    FAILED = "failed"
    # Dry-run only: the condition does not hold, the step would run.
    PENDING = "pending"


class RunMode(str, Enum):
    DRY_RUN = "dry-run"
    EXECUTE = "execute"


class StepResult(BaseModel):
    """Outcome of attempting one step during a single run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    step_id: str
    status: StepStatus
    cause: BaseException | None = Field(
        default=None, description="Error for failed steps, reason for pending ones."
    )
    duration: float = Field(default=0.0, description="Wall-clock seconds spent on the step.")

    @property
    def failed(self) -> bool:
        return self.status is StepStatus.FAILED


class RunReport(BaseModel):
    """Results of one plan application, in execution order."""

    mode: RunMode
    results: list[StepResult] = Field(default_factory=list)
    failed_step: str | None = Field(default=None, description="Step that halted the run.")

    @property
    def ok(self) -> bool:
        return self.failed_step is None

    def count(self, status: StepStatus) -> int:
        return sum(1 for result in self.results if result.status is status)
