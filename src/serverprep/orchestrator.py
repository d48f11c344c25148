from __future__ import annotations

"""Orchestrator for provisioning runs.

CONTRACT
- Inputs: RunConfig (state dir, run id, plan, dry-run) and an ordered list of Steps
- Outputs (required):
  - RunResult (status, run_dir, report)
  - Artifacts in <state_dir>/runs/<run_id>/
    - RUN.json, RUN_STATUS.json, RUN_REPORT.json, events.jsonl, serverprep.log
- Invariants:
  - Always writes RUN.json and RUN_STATUS.json once the run directory exists
  - Step names are checked for duplicates before the run directory is created
  - Dry runs never touch the real progress/error logs (they use copies in run_dir)
  - A progress/error log I/O failure writes CRASH.txt and reports CRASHED
- Failure:
  - Raises ValueError on duplicate step names (no artifacts written)
  - Returns RunResult(status="CRASHED") on StepLogError; other exceptions propagate
"""

import shutil
import traceback
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .artifacts.schemas import RunKind, RunMeta, RunStatus
from .artifacts.store import ArtifactStore
from .config import RunConfig, build_plan_steps, load_plan_file
from .core.errors import StepLogError
from .core.executor import Executor
from .core.report import RunReport
from .core.runner import Runner, check_unique_names
from .core.step import Step
from .core.steplog import ErrorLog, StepLog
from .util.events import EventLog
from .util.redaction import Redactor
from .util.shell import CommandRunner


@dataclass(frozen=True)
class RunResult:
    status: str
    run_dir: Path
    report: RunReport
    crash_file: Path | None = None

    @property
    def exit_code(self) -> int:
        if self.status == "CRASHED":
            return 2
        return self.report.exit_code


def _status_for(report: RunReport) -> str:
    if report.aborted:
        return "ABORTED"
    if report.failed:
        return "FAILED"
    return "OK"


def _log_paths(cfg: RunConfig, store: ArtifactStore) -> tuple[Path, Path]:
    if not cfg.dry_run:
        return cfg.step_log_path(), cfg.error_log_path()
    # Seed from the real log so completed steps are still skipped.
    step_copy = store.path("DRYRUN_progress.log")
    if cfg.step_log_path().exists():
        shutil.copyfile(cfg.step_log_path(), step_copy)
    return step_copy, store.path("DRYRUN_errors.log")


def command_runner_for(cfg: RunConfig, redactor: Redactor | None = None) -> CommandRunner:
    return CommandRunner(
        log_dir=cfg.run_dir() / "logs",
        dry_run=cfg.dry_run,
        redactor=redactor or Redactor(),
    )


def run_steps(
    cfg: RunConfig,
    steps: list[Step],
    *,
    kind: RunKind = "plan",
    executor: Executor | None = None,
    redactor: Redactor | None = None,
) -> RunResult:
    check_unique_names(steps)
    store = ArtifactStore(cfg.run_dir())
    store.ensure()
    ev = EventLog(store.path("events.jsonl"), run_id=cfg.run_id)
    sink_id = logger.add(str(store.path("serverprep.log")), level="DEBUG")
    redactor = redactor or Redactor()

    try:
        store.write_run_meta(
            RunMeta(
                run_id=cfg.run_id,
                kind=kind,
                state_dir=str(cfg.state_dir),
                plan_file=str(cfg.plan_file) if cfg.plan_file else None,
                dry_run=cfg.dry_run,
                steps=[s.name for s in steps],
            )
        )
        store.write_status(RunStatus(run_id=cfg.run_id, kind=kind, status="RUNNING", message="starting"))
        ev.emit(stage="run", action="start", steps=len(steps), dry_run=cfg.dry_run)

        step_log_path, error_log_path = _log_paths(cfg, store)
        runner = Runner(executor=executor or Executor(), events=ev)
        try:
            with StepLog(step_log_path) as step_log, ErrorLog(error_log_path, redactor) as error_log:
                report = runner.run(steps, step_log, error_log)
        except StepLogError as exc:
            logger.error(f"Run {cfg.run_id} crashed: {exc}")
            report = exc.report or RunReport(aborted=True)
            crash = store.write_text("CRASH.txt", traceback.format_exc())
            store.write_report(report)
            store.write_status(
                RunStatus(
                    run_id=cfg.run_id,
                    kind=kind,
                    status="CRASHED",
                    message=str(exc),
                    failed_steps=report.failed,
                )
            )
            ev.emit(stage="run", action="crash", error=str(exc))
            return RunResult(status="CRASHED", run_dir=store.run_dir, report=report, crash_file=crash)

        status = _status_for(report)
        message = f"halted at {report.aborted_at}" if report.aborted else f"{len(report.steps)} steps visited"
        store.write_report(report)
        store.write_status(
            RunStatus(run_id=cfg.run_id, kind=kind, status=status, message=message, failed_steps=report.failed)
        )
        ev.emit(stage="run", action="done", status=status)
        return RunResult(status=status, run_dir=store.run_dir, report=report)
    finally:
        logger.remove(sink_id)


def run_plan(cfg: RunConfig) -> RunResult:
    if cfg.plan_file is None:
        raise ValueError("RunConfig.plan_file is required to run a plan")
    plan = load_plan_file(cfg.plan_file)
    steps = build_plan_steps(plan, command_runner_for(cfg))
    return run_steps(cfg, steps, kind="plan")
