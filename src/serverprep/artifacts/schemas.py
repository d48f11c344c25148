from __future__ import annotations

"""Artifact schemas.

CONTRACT
- Inputs: Pydantic models
- Outputs:
  - Validated JSON-serializable objects (RUN.json, RUN_STATUS.json)
- Invariants:
  - All schemas have schema_version int field
- Failure:
  - Raises ValidationError on schema mismatch
"""

from typing import Literal

from pydantic import BaseModel, Field

RunKind = Literal["plan", "server"]
RunState = Literal["RUNNING", "OK", "FAILED", "ABORTED", "CRASHED"]


class RunStatus(BaseModel):
    schema_version: int = 1
    run_id: str
    kind: RunKind
    status: RunState
    message: str = ""
    failed_steps: list[str] = Field(default_factory=list)


class RunMeta(BaseModel):
    schema_version: int = 1
    run_id: str
    kind: RunKind
    state_dir: str
    plan_file: str | None = None
    dry_run: bool = False
    steps: list[str] = Field(default_factory=list)


def validate_run_status(data: dict) -> tuple[bool, RunStatus | None, str]:
    """Validate RUN_STATUS.json against schema."""
    try:
        status = RunStatus(**data)
        return True, status, ""
    except Exception as e:
        return False, None, str(e)
