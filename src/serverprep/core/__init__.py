"""Idempotent step engine: progress log, retrying executor, runner."""

from .errors import FatalStepError, StepError, StepLogError, TransientStepError
from .executor import Executor
from .report import RunReport, StepOutcome, StepRecord
from .runner import Runner
from .step import ExecutionResult, FailurePolicy, Step
from .steplog import ErrorLog, StepLog, forget

__all__ = [
    "ErrorLog",
    "ExecutionResult",
    "Executor",
    "FailurePolicy",
    "FatalStepError",
    "RunReport",
    "Runner",
    "Step",
    "StepError",
    "StepLog",
    "StepLogError",
    "StepOutcome",
    "StepRecord",
    "TransientStepError",
    "forget",
]
