"""serverprep package.

Simple API for embedding applications:

    import serverprep
    from serverprep import FailurePolicy, Step

    steps = [
        Step("Install Dependencies", install_packages),
        Step("Setup Rclone Backup", setup_backup, on_failure=FailurePolicy.CONTINUE_NEXT),
    ]
    report = serverprep.provision(steps, state_dir="/var/lib/myapp/provision")
    if report.aborted:
        ...

Steps already recorded in `<state_dir>/setup_progress.log` are skipped, so calling
`provision` again after a failure resumes at the first step that has not completed.
"""

from pathlib import Path
from typing import Iterable, Optional

from .config import RunConfig
from .core import (
    ErrorLog,
    Executor,
    FailurePolicy,
    FatalStepError,
    RunReport,
    Runner,
    Step,
    StepLog,
    StepLogError,
    StepOutcome,
    TransientStepError,
)
from .orchestrator import RunResult, run_plan, run_steps
from .util.ids import new_run_id

__version__ = "0.1.0"


def provision(
    steps: Iterable[Step],
    state_dir: str | Path = ".serverprep",
    *,
    run_id: Optional[str] = None,
) -> RunReport:
    """Run `steps` against the progress log in `state_dir`.

    Returns the RunReport. Raises StepLogError if the progress or error log
    cannot be read or written (the partial report is on `exc.report`).
    """
    cfg = RunConfig(state_dir=Path(state_dir), run_id=run_id or new_run_id())
    result = run_steps(cfg, list(steps))
    if result.status == "CRASHED":
        raise StepLogError(f"Progress log failure; see {result.crash_file}", report=result.report)
    return result.report


__all__ = [
    "ErrorLog",
    "Executor",
    "FailurePolicy",
    "FatalStepError",
    "RunConfig",
    "RunReport",
    "RunResult",
    "Runner",
    "Step",
    "StepLog",
    "StepLogError",
    "StepOutcome",
    "TransientStepError",
    "provision",
    "run_plan",
    "run_steps",
]
