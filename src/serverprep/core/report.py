"""Run report schema.

CONTRACT
- Inputs: per-step outcomes appended by the Runner
- Outputs:
  - RunReport (pydantic, JSON-serializable as RUN_REPORT.json)
- Invariants:
  - `steps` lists every visited step in visiting order
  - exit_code is 0 only when no step failed and the run was not aborted
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class StepOutcome(str, Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StepRecord(BaseModel):
    name: str
    outcome: StepOutcome
    attempts: int = 0
    error: str | None = None


class RunReport(BaseModel):
    schema_version: int = 1
    steps: list[StepRecord] = Field(default_factory=list)
    aborted: bool = False
    aborted_at: str | None = None

    def add(self, name: str, outcome: StepOutcome, attempts: int = 0, error: str | None = None) -> StepRecord:
        rec = StepRecord(name=name, outcome=outcome, attempts=attempts, error=error)
        self.steps.append(rec)
        return rec

    def outcome_of(self, name: str) -> StepOutcome | None:
        for rec in self.steps:
            if rec.name == name:
                return rec.outcome
        return None

    @property
    def failed(self) -> list[str]:
        return [r.name for r in self.steps if r.outcome == StepOutcome.FAILED]

    @property
    def ok(self) -> bool:
        return not self.aborted and not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1
