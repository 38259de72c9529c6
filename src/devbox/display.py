# display.py
# All terminal output for devbox.
#
# This module owns presentation entirely. The engine never formats strings;
# it calls named functions here. Swap this file to change the entire UI.
#
# Colour language:
#   cyan: planning / routing events
#   yellow: dry-run previews, pending work
#   green: applied / satisfied
#   dim: skipped, nothing to do
#   red: failures, halts, configuration errors

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from devbox.models import Plan, RunMode, RunReport, Step, StepResult, StepStatus

console = Console()

_STATUS_STYLE = {
    StepStatus.SKIPPED: ("SKIP", "dim"),
    StepStatus.APPLIED: ("DONE", "bold green"),
    StepStatus.PENDING: ("WOULD RUN", "bold yellow"),
    StepStatus.FAILED: ("FAILED", "bold red"),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        value = value[:max_len] + "…"
    return escape(value)


def _cause(result: StepResult) -> str:
    if result.cause is None:
        return ""
    return f"{type(result.cause).__name__}: {result.cause}"


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


def banner(source: str, mode: RunMode) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]devbox[/bold cyan]\n"
            "[dim]Idempotent machine provisioning[/dim]\n\n"
            f"[dim]Steps :[/dim] [white]{escape(source)}[/white]\n"
            f"[dim]Mode  :[/dim] [white]{mode.value}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def configuration_error(exc: Exception) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]{escape(str(exc))}[/bold red]\n"
            "[dim]Nothing was run. Fix the step definitions and try again.[/dim]",
            title=_label("CONFIGURATION ERROR ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Plan display
# ---------------------------------------------------------------------------


def plan_ready(plan: Plan) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("#", justify="right", width=4)
    table.add_column("Step", style="bold white")
    table.add_column("Depends on", style="dim white")
    table.add_column("Description", style="white")

    for index, step in enumerate(plan.steps, start=1):
        table.add_row(
            str(index),
            escape(step.id),
            _mono(", ".join(step.depends_on), 40),
            escape(step.description),
        )

    console.print(
        Panel(
            table,
            title=_label("PLAN", "cyan"),
            subtitle=f"[dim]{len(plan.steps)} step(s) in dependency order[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


# ---------------------------------------------------------------------------
# Step progress
# ---------------------------------------------------------------------------


def run_start(total: int, mode: RunMode) -> None:
    console.print()
    title = "DRY RUN" if mode is RunMode.DRY_RUN else "EXECUTION"
    console.print(Rule(f"[cyan]{title}: {total} step(s)[/cyan]", style="cyan"))


def step_start(index: int, total: int, step: Step) -> None:
    console.print(
        f"[bold cyan]  STEP [{index + 1}/{total}][/bold cyan]  "
        f"[white]{escape(step.id)}[/white]  [dim]{escape(step.description)}[/dim]"
    )


def step_result(result: StepResult) -> None:
    tag, style = _STATUS_STYLE[result.status]
    line = f"    [{style}]↳ {tag}[/{style}]"
    if result.status is StepStatus.APPLIED:
        line += f"  [dim]{result.duration:.1f}s[/dim]"
    elif result.status is StepStatus.PENDING and result.cause is not None:
        line += f"  [dim]{_mono(str(result.cause))}[/dim]"
    console.print(line)

    if result.failed:
        console.print(
            Panel(
                f"[white]{escape(_cause(result))}[/white]",
                title=_label(f"STEP FAILED: {result.step_id}", "red"),
                border_style="red",
                padding=(0, 2),
            )
        )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def run_summary(report: RunReport) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Step", style="white")
    table.add_column("Status", justify="center", width=10)
    table.add_column("Time", justify="right", width=8)
    table.add_column("Detail", style="dim white")

    for result in report.results:
        tag, style = _STATUS_STYLE[result.status]
        table.add_row(
            escape(result.step_id),
            f"[{style}]{tag}[/{style}]",
            f"{result.duration:.1f}s",
            _mono(_cause(result), 60),
        )

    counts = ", ".join(
        f"{report.count(status)} {status.value}"
        for status in StepStatus
        if report.count(status)
    )
    console.print(
        Panel(
            table,
            title="[dim]RUN SUMMARY[/dim]",
            subtitle=f"[dim]{counts or 'nothing to do'}[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


def halted(step_id: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]Run halted at step '{escape(step_id)}'.[/bold white]\n"
            "[dim]Steps after it were not attempted. Fix the cause and rerun; "
            "completed steps will be skipped.[/dim]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


def finished(report: RunReport, notice: str | None = None) -> None:
    console.print()
    if report.mode is RunMode.DRY_RUN:
        pending = report.count(StepStatus.PENDING)
        console.print(
            Panel(
                f"[bold yellow]{pending} step(s) would run.[/bold yellow]\n"
                "[dim]No action was invoked.[/dim]",
                title=_label("DRY RUN COMPLETE", "yellow"),
                border_style="yellow",
                padding=(0, 2),
            )
        )
        return

    body = "[bold green]All steps satisfied.[/bold green]"
    if notice:
        body += f"\n\n[white]{escape(notice)}[/white]"
    console.print(
        Panel(
            body,
            title=_label("RESULT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()
