from __future__ import annotations

"""Step definition.

CONTRACT
- Inputs: name, zero-argument body, retry policy
- Outputs:
  - Step (frozen), ExecutionResult
- Invariants:
  - name is non-empty and contains no line breaks (it is a StepLog line)
  - retries >= 1, retry_delay >= 0
- Failure:
  - Raises ValueError on invalid definitions
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ..util.ids import validate_step_name

StepBody = Callable[[], "bool | None"]


class FailurePolicy(str, Enum):
    HALT = "halt"
    CONTINUE_NEXT = "continue"


@dataclass(frozen=True)
class Step:
    name: str
    body: StepBody = field(repr=False, compare=False)
    retries: int = 3
    retry_delay: float = 2.0
    on_failure: FailurePolicy = FailurePolicy.HALT
    description: str = ""

    def __post_init__(self) -> None:
        validate_step_name(self.name)
        if self.retries < 1:
            raise ValueError(f"Step {self.name!r}: retries must be >= 1 (got {self.retries})")
        if self.retry_delay < 0:
            raise ValueError(f"Step {self.name!r}: retry_delay must be >= 0")
        if not callable(self.body):
            raise ValueError(f"Step {self.name!r}: body must be callable")
        # Accept plain strings from config ("halt" / "continue").
        object.__setattr__(self, "on_failure", FailurePolicy(self.on_failure))


@dataclass(frozen=True)
class ExecutionResult:
    ok: bool
    attempts: int
    last_error: str | None = None
