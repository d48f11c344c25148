"""Runner: sequence steps against the progress log.

CONTRACT
- Inputs: ordered steps, an open StepLog, an open ErrorLog, optional EventLog
- Outputs (required):
  - RunReport with one record per visited step
- Invariants:
  - A step already in the StepLog is skipped without calling its body
  - Success is recorded in the StepLog before the next step starts
  - Failure is recorded in the ErrorLog; HALT stops the run, CONTINUE_NEXT goes on
  - Steps after a halt are neither reported nor marked
- Failure:
  - ValueError on duplicate step names (before anything runs)
  - StepLogError (with the partial report attached) when a log cannot be read/written
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from loguru import logger

from ..util.events import EventLog
from .errors import FatalStepError, StepLogError
from .executor import Executor, _describe
from .report import RunReport, StepOutcome
from .step import ExecutionResult, FailurePolicy, Step
from .steplog import ErrorLog, StepLog


def check_unique_names(steps: list[Step]) -> None:
    seen: set[str] = set()
    for s in steps:
        if s.name in seen:
            raise ValueError(f"Duplicate step name: {s.name!r}")
        seen.add(s.name)


@dataclass
class Runner:
    executor: Executor = field(default_factory=Executor)
    events: EventLog | None = None

    def _emit(self, **event) -> None:
        if self.events is not None:
            self.events.emit(stage="step", **event)

    def run(self, steps: Iterable[Step], step_log: StepLog, error_log: ErrorLog) -> RunReport:
        steps = list(steps)
        check_unique_names(steps)
        report = RunReport()

        for step in steps:
            try:
                done = step_log.is_completed(step.name)
            except StepLogError as exc:
                report.aborted = True
                report.aborted_at = step.name
                exc.report = report
                raise

            if done:
                logger.info(f"Skipping {step.name!r} (already completed)")
                report.add(step.name, StepOutcome.SKIPPED)
                self._emit(step=step.name, action="skip")
                continue

            logger.info(f"Running {step.name!r}")
            self._emit(step=step.name, action="start")
            try:
                result = self.executor.run(step)
            except FatalStepError as exc:
                result = ExecutionResult(ok=False, attempts=exc.attempts, last_error=_describe(exc))

            try:
                if result.ok:
                    step_log.mark_completed(step.name)
                else:
                    logger.error(f"[ERROR] {step.name}: {error_log.redactor.redact(result.last_error or '')}")
                    error_log.record(step.name, result.last_error)
            except StepLogError as exc:
                logger.error(f"{step.name}: cannot record outcome: {exc}")
                report.add(step.name, StepOutcome.FAILED, result.attempts, str(exc))
                report.aborted = True
                report.aborted_at = step.name
                exc.report = report
                raise

            if result.ok:
                report.add(step.name, StepOutcome.SUCCEEDED, result.attempts)
                self._emit(step=step.name, action="succeeded", attempts=result.attempts)
                continue

            report.add(step.name, StepOutcome.FAILED, result.attempts, error_log.redactor.redact(result.last_error or ""))
            self._emit(step=step.name, action="failed", attempts=result.attempts)
            if step.on_failure == FailurePolicy.HALT:
                logger.error(f"Halting run at {step.name!r}")
                report.aborted = True
                report.aborted_at = step.name
                self._emit(step=step.name, action="halt")
                break

        return report
