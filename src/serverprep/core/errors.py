"""Error taxonomy for step execution.

CONTRACT
- TransientStepError: a failed attempt that may be retried
- FatalStepError: a failure that must not be retried
- StepLogError: progress/error log could not be read or written
- Invariants:
  - Step failures and log failures are distinct types (never conflated)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .report import RunReport


class StepError(Exception):
    """Base class for failures raised by step bodies."""


class TransientStepError(StepError):
    pass


class FatalStepError(StepError):
    # Set by the Executor to the attempt number that raised it.
    attempts: int = 1


class StepLogError(OSError):
    """Raised when the StepLog or ErrorLog cannot be read or written.

    When raised from the Runner, `report` holds the partial RunReport up to and
    including the step whose bookkeeping failed.
    """

    def __init__(self, message: str, *, report: RunReport | None = None) -> None:
        super().__init__(message)
        self.report = report
