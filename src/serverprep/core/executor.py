"""Executor: run one step body with bounded retry.

CONTRACT
- Inputs: Step
- Outputs (required):
  - ExecutionResult(ok, attempts, last_error)
- Invariants:
  - The body is attempted at most `step.retries` times; success short-circuits
  - `retry_delay` elapses between consecutive attempts, never after the last one
  - Never writes the step/error logs (reporting only)
- Failure:
  - FatalStepError propagates immediately with `attempts` set; nothing else escapes
    except BaseExceptions that are not Exceptions (KeyboardInterrupt, SystemExit)
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from loguru import logger

from .errors import FatalStepError
from .step import ExecutionResult, Step


def _describe(exc: BaseException) -> str:
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


@dataclass
class Executor:
    sleep: Callable[[float], None] = field(default=time.sleep)

    def run(self, step: Step) -> ExecutionResult:
        last_error: str | None = None
        for attempt in range(1, step.retries + 1):
            if attempt > 1:
                logger.info(f"Retrying {step.name!r} ({attempt - 1}/{step.retries})...")
                self.sleep(step.retry_delay)
            try:
                outcome = step.body()
            except FatalStepError as exc:
                exc.attempts = attempt
                raise
            except Exception as exc:
                last_error = _describe(exc)
                logger.warning(f"{step.name}: attempt {attempt}/{step.retries} failed: {last_error}")
                continue
            if outcome is False:
                last_error = "step body reported failure"
                logger.warning(f"{step.name}: attempt {attempt}/{step.retries} reported failure")
                continue
            return ExecutionResult(ok=True, attempts=attempt)

        return ExecutionResult(
            ok=False,
            attempts=step.retries,
            last_error=f"Failed after {step.retries} attempts: {last_error}",
        )
