# cli.py
# Entry point. Config and wiring only; no logic lives here.
#
# Exit codes:
#   0  every step skipped or applied (or would run, in a dry run)
#   1  a step failed; its id is printed and the run stopped there
#   2  configuration error (bad step file, duplicate/unknown id, cycle)

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from devbox import display
from devbox.config import load_settings
from devbox.errors import DevboxError
from devbox.loader import BUNDLED_STEPS, build_registry, bundled_step_file, read_step_file
from devbox.models import RunMode
from devbox.planner import Planner

EXIT_FAILED = 1
EXIT_CONFIG = 2


def provision(
    steps_file: Optional[Path] = typer.Argument(
        None, help="TOML step file. Defaults to $DEVBOX_STEPS_FILE, then the bundled Ubuntu steps."
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan and report only; never run an action."),
    only: Optional[list[str]] = typer.Option(
        None, "--only", help="Run only this step and its dependencies. Repeatable."
    ),
) -> None:
    """Bring this machine to the state described by a step file."""
    mode = RunMode.DRY_RUN if dry_run else RunMode.EXECUTE

    try:
        settings = load_settings()
    except ValidationError as exc:
        display.configuration_error(exc)
        raise typer.Exit(EXIT_CONFIG)

    source = steps_file or settings.steps_file
    display.banner(str(source) if source else f"{BUNDLED_STEPS} (bundled)", mode)

    planner = Planner()
    try:
        document = read_step_file(source) if source else bundled_step_file()
        registry = build_registry(document, settings)
        plan = planner.plan(registry, only=only or None)
    except DevboxError as exc:
        display.configuration_error(exc)
        raise typer.Exit(EXIT_CONFIG)

    display.plan_ready(plan)
    report = planner.apply(plan, mode)
    display.run_summary(report)

    if not report.ok:
        display.halted(report.failed_step)
        raise typer.Exit(EXIT_FAILED)

    display.finished(report, document.notice)


app = typer.Typer(
    name="devbox",
    help="Idempotent, dependency-ordered machine provisioning.",
    add_completion=False,
)
app.command()(provision)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
