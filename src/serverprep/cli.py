"""CLI entrypoint.

Primary modes:
- serverprep run PLAN ...
- serverprep server ...

Utilities:
- serverprep status / reset
- serverprep init
- serverprep doctor

CONTRACT
- Inputs: Command line arguments (parsed by Typer)
- Outputs (required):
  - Exit code 0 on success, 1 when a step failed or the run halted,
    2 on a progress-log crash or failed doctor check
  - Console output (stdout/stderr) describing progress/results
- Invariants:
  - All commands validate their inputs (run_id, plan, answers) before execution
  - Orchestrator actions are delegated to appropriate modules
- Failure:
  - Invalid arguments raise Typer exit/error
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from .config import DEFAULT_STATE_DIR, ERROR_LOG_NAME, STEP_LOG_NAME, RunConfig
from .core.errors import StepLogError
from .core.report import StepOutcome
from .core.steplog import ErrorLog, StepLog, forget
from .doctor import doctor_report
from .orchestrator import RunResult, command_runner_for, run_plan, run_steps
from .recipes.answers import Questionnaire, collect_answers, load_answers, save_answers
from .recipes.server import ServerRecipe
from .util.ids import new_run_id, validate_run_id
from .util.redaction import Redactor

app = typer.Typer(add_completion=False, help="Resumable, retrying server provisioning.")

console = Console()

_OUTCOME_STYLE = {
    StepOutcome.SKIPPED: "dim",
    StepOutcome.SUCCEEDED: "green",
    StepOutcome.FAILED: "red",
}


def _version_callback(value: bool):
    if value:
        from . import __version__

        console.print(f"serverprep version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version."
    )
):
    pass


_STATE_DIR_OPTION = typer.Option(
    DEFAULT_STATE_DIR,
    "--state-dir",
    help="Directory holding the progress log, error log and run artifacts.",
)
_RUN_ID_OPTION = typer.Option(
    None,
    "--run-id",
    help="Run id (default: auto).",
)
_DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Print commands instead of running them; real progress log is untouched.",
)
_VERBOSE_OPTION = typer.Option(
    False,
    "--verbose",
    help="Show debug logging (every command).",
)


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        format="<green>{time:HH:mm:ss}</green> <level>{level: <7}</level> {message}",
    )


def _make_config(state_dir: Path, run_id: str | None, **kwargs) -> RunConfig:
    try:
        rid = validate_run_id(run_id or new_run_id())
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    return RunConfig(state_dir=state_dir, run_id=rid, **kwargs)


def _print_result(result: RunResult) -> None:
    table = Table(title=f"Run {result.run_dir.name}")
    table.add_column("Step")
    table.add_column("Outcome")
    table.add_column("Attempts", justify="right")
    table.add_column("Error")
    for rec in result.report.steps:
        style = _OUTCOME_STYLE[rec.outcome]
        table.add_row(rec.name, f"[{style}]{rec.outcome.value}[/{style}]", str(rec.attempts), rec.error or "")
    console.print(table)
    console.print(f"[bold]Status[/bold]: {result.status}")
    if result.report.aborted:
        console.print(f"[red]Halted at[/red] {result.report.aborted_at}; later steps were not attempted.")
    if result.crash_file:
        console.print(f"[red]Progress log failure[/red]; see {result.crash_file}")
    console.print(f"Artifacts: {result.run_dir}")


@app.command()
def run(
    plan: Path = typer.Argument(..., help="Plan YAML file."),
    state_dir: Path = _STATE_DIR_OPTION,
    run_id: str | None = _RUN_ID_OPTION,
    dry_run: bool = _DRY_RUN_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Run the steps of a plan file, skipping those already completed."""
    _configure_logging(verbose)
    if not plan.is_file():
        raise typer.BadParameter(f"Plan file not found: {plan}")
    cfg = _make_config(state_dir, run_id, plan_file=plan, dry_run=dry_run, verbose=verbose)
    try:
        result = run_plan(cfg)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    _print_result(result)
    raise typer.Exit(code=result.exit_code)


@app.command()
def server(
    state_dir: Path = _STATE_DIR_OPTION,
    run_id: str | None = _RUN_ID_OPTION,
    reconfigure: bool = typer.Option(False, "--reconfigure", help="Ask the setup questions again."),
    dry_run: bool = _DRY_RUN_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Provision this server (packages, firewall, PostgreSQL, Nginx, TLS, service, backups)."""
    _configure_logging(verbose)
    cfg = _make_config(state_dir, run_id, dry_run=dry_run, verbose=verbose)
    try:
        answers = load_answers(cfg.answers_path())
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    if answers is None or reconfigure:
        answers = collect_answers(Questionnaire(), previous=answers)
        save_answers(answers, cfg.answers_path())
        console.print(f"Answers saved to {cfg.answers_path()}")

    redactor = Redactor().with_literals(*answers.secrets())
    recipe = ServerRecipe(answers=answers, sh=command_runner_for(cfg, redactor))
    result = run_steps(cfg, recipe.steps(), kind="server", redactor=redactor)
    _print_result(result)
    if result.report.failed:
        console.print(f"Some steps failed; check {cfg.error_log_path()}")
    raise typer.Exit(code=result.exit_code)


@app.command()
def status(
    state_dir: Path = _STATE_DIR_OPTION,
    errors: int = typer.Option(10, "--errors", help="Number of error-log lines to show."),
) -> None:
    """Show completed steps and recent errors."""
    step_path = state_dir / STEP_LOG_NAME
    if not step_path.exists():
        console.print(f"[yellow]No progress log at {step_path}[/yellow]")
        raise typer.Exit(code=0)
    try:
        with StepLog(step_path) as log:
            done = log.completed()
        tail = ErrorLog(state_dir / ERROR_LOG_NAME).tail(errors)
    except StepLogError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)

    table = Table(title="Completed steps")
    table.add_column("#", justify="right")
    table.add_column("Step")
    for i, name in enumerate(done, start=1):
        table.add_row(str(i), name)
    console.print(table)
    if tail:
        console.print("[bold]Recent errors[/bold]")
        for line in tail:
            console.print(line, markup=False, highlight=False)


@app.command()
def reset(
    step: str | None = typer.Argument(None, help="Step name to run again."),
    all_steps: bool = typer.Option(False, "--all", help="Forget every completed step."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    state_dir: Path = _STATE_DIR_OPTION,
) -> None:
    """Remove steps from the progress log so the next run repeats them."""
    if (step is None) == (not all_steps):
        raise typer.BadParameter("Give a STEP name or --all (not both).")
    step_path = state_dir / STEP_LOG_NAME
    if all_steps and not yes:
        if not typer.confirm(f"Forget every completed step in {step_path}?"):
            raise typer.Abort()
    try:
        removed = forget(step_path, None if all_steps else step)
    except StepLogError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)
    if not removed:
        console.print(f"[yellow]Nothing to reset in {step_path}[/yellow]")
        raise typer.Exit(code=1)
    for name in removed:
        console.print(f"[green]Reset[/green] {name}")


@app.command()
def init(
    target: Path = typer.Option(DEFAULT_STATE_DIR, "--dir", help="Where to write plan.yaml."),
    force: bool = typer.Option(False, "--force", help="Overwrite existing templates."),
) -> None:
    """Write a starter plan.yaml."""
    from .init import write_templates

    written = write_templates(target, force=force)
    if written:
        for p in written:
            console.print(f"[green]Wrote[/green] {p}")
    else:
        console.print(f"[yellow]{target / 'plan.yaml'} exists; use --force to overwrite[/yellow]")


@app.command()
def doctor(
    state_dir: Path = _STATE_DIR_OPTION,
) -> None:
    """Environment and preflight checks."""
    report = doctor_report(state_dir)
    table = Table(title="serverprep doctor")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Details")
    for item in report.items:
        table.add_row(item.name, item.status, item.details)
    console.print(table)
    if report.ok:
        console.print("[green]OK[/green]")
    else:
        raise typer.Exit(code=2)


if __name__ == "__main__":
    app()
