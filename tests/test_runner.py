import pytest
from pathlib import Path
from unittest.mock import MagicMock

from serverprep.core.errors import FatalStepError, StepLogError, TransientStepError
from serverprep.core.executor import Executor
from serverprep.core.report import StepOutcome
from serverprep.core.runner import Runner
from serverprep.core.step import FailurePolicy, Step
from serverprep.core.steplog import ErrorLog, StepLog
from serverprep.util.events import EventLog


def _ok():
    return MagicMock(return_value=None)


def _failing():
    return MagicMock(side_effect=TransientStepError("boom"))


@pytest.fixture
def logs(tmp_path):
    step_log = StepLog(tmp_path / "setup_progress.log").open()
    error_log = ErrorLog(tmp_path / "setup_errors.log").open()
    return step_log, error_log


@pytest.fixture
def runner():
    return Runner(executor=Executor(sleep=lambda s: None))


def _lines(path: Path) -> list[str]:
    return path.read_text().splitlines()


def test_halt_scenario(tmp_path, logs, runner):
    a, b, c = _ok(), _ok(), _failing()
    steps = [
        Step("A", a),
        Step("B", b),
        Step("C", c, retries=3, on_failure=FailurePolicy.HALT),
    ]
    report = runner.run(steps, *logs)

    assert _lines(tmp_path / "setup_progress.log") == ["A", "B"]
    errors = _lines(tmp_path / "setup_errors.log")
    assert len(errors) == 1 and "C:" in errors[0]
    assert report.aborted is True
    assert report.aborted_at == "C"
    assert [(r.name, r.outcome) for r in report.steps] == [
        ("A", StepOutcome.SUCCEEDED),
        ("B", StepOutcome.SUCCEEDED),
        ("C", StepOutcome.FAILED),
    ]
    assert c.call_count == 3
    assert report.exit_code == 1


def test_continue_next_scenario(tmp_path, logs, runner):
    steps = [
        Step("A", _ok()),
        Step("B", _ok()),
        Step("C", _failing(), retries=3, on_failure=FailurePolicy.CONTINUE_NEXT),
        Step("D", _ok()),
    ]
    report = runner.run(steps, *logs)

    assert _lines(tmp_path / "setup_progress.log") == ["A", "B", "D"]
    assert report.aborted is False
    assert [r.outcome for r in report.steps] == [
        StepOutcome.SUCCEEDED,
        StepOutcome.SUCCEEDED,
        StepOutcome.FAILED,
        StepOutcome.SUCCEEDED,
    ]
    assert report.failed == ["C"]
    assert not report.ok
    assert report.exit_code == 1


def test_preseeded_log_resumes(tmp_path, runner):
    (tmp_path / "setup_progress.log").write_text("A\n")
    a, b, c = _ok(), _ok(), _ok()
    step_log = StepLog(tmp_path / "setup_progress.log").open()
    error_log = ErrorLog(tmp_path / "setup_errors.log").open()

    report = runner.run([Step("A", a), Step("B", b), Step("C", c)], step_log, error_log)

    a.assert_not_called()
    b.assert_called_once()
    c.assert_called_once()
    assert _lines(tmp_path / "setup_progress.log") == ["A", "B", "C"]
    assert report.outcome_of("A") == StepOutcome.SKIPPED
    assert report.ok


def test_rerun_is_idempotent(tmp_path, runner):
    bodies = [_ok() for _ in range(3)]
    steps = [Step(n, b) for n, b in zip("XYZ", bodies)]

    for _ in range(2):
        with StepLog(tmp_path / "p.log") as sl, ErrorLog(tmp_path / "e.log") as el:
            report = runner.run(steps, sl, el)

    for b in bodies:
        b.assert_called_once()
    assert _lines(tmp_path / "p.log") == ["X", "Y", "Z"]
    assert all(r.outcome == StepOutcome.SKIPPED for r in report.steps)


def test_resume_after_halt_runs_remaining_in_order(tmp_path, runner):
    order = []

    def rec(name, fail=False):
        def body():
            order.append(name)
            if fail:
                raise TransientStepError("nope")

        return body

    first = [Step("S1", rec("S1")), Step("S2", rec("S2", fail=True), retries=1), Step("S3", rec("S3"))]
    with StepLog(tmp_path / "p.log") as sl, ErrorLog(tmp_path / "e.log") as el:
        report = runner.run(first, sl, el)
    assert report.aborted
    # S3 was never reached: not reported, not marked.
    assert report.outcome_of("S3") is None
    assert _lines(tmp_path / "p.log") == ["S1"]

    order.clear()
    fixed = [Step("S1", rec("S1")), Step("S2", rec("S2")), Step("S3", rec("S3"))]
    with StepLog(tmp_path / "p.log") as sl, ErrorLog(tmp_path / "e.log") as el:
        report = runner.run(fixed, sl, el)
    assert order == ["S2", "S3"]
    assert _lines(tmp_path / "p.log") == ["S1", "S2", "S3"]


def test_fatal_error_treated_as_failed(tmp_path, logs, runner):
    body = MagicMock(side_effect=FatalStepError("unrecoverable"))
    steps = [Step("A", body, retries=5), Step("B", _ok())]
    report = runner.run(steps, *logs)
    assert body.call_count == 1
    assert report.aborted
    assert report.steps[0].attempts == 1
    assert "unrecoverable" in report.steps[0].error
    assert len(_lines(tmp_path / "setup_errors.log")) == 1


def test_duplicate_names_rejected_before_running(logs, runner):
    body = _ok()
    with pytest.raises(ValueError, match="Duplicate"):
        runner.run([Step("A", body), Step("A", body)], *logs)
    body.assert_not_called()


def test_mark_completed_failure_is_not_success(tmp_path, runner):
    step_log = MagicMock(spec=StepLog)
    step_log.is_completed.return_value = False
    step_log.mark_completed.side_effect = StepLogError("disk full")
    error_log = ErrorLog(tmp_path / "e.log").open()
    later = _ok()

    with pytest.raises(StepLogError) as ei:
        runner.run([Step("A", _ok()), Step("B", later)], step_log, error_log)

    report = ei.value.report
    assert report is not None
    assert report.aborted
    assert report.outcome_of("A") == StepOutcome.FAILED
    later.assert_not_called()


def test_unreadable_step_log_stops_run(tmp_path, runner):
    step_log = MagicMock(spec=StepLog)
    step_log.is_completed.side_effect = StepLogError("cannot read")
    body = _ok()
    with pytest.raises(StepLogError):
        runner.run([Step("A", body)], step_log, ErrorLog(tmp_path / "e.log").open())
    body.assert_not_called()


def test_events_emitted(tmp_path, logs):
    ev = EventLog(tmp_path / "events.jsonl", run_id="r1")
    r = Runner(executor=Executor(sleep=lambda s: None), events=ev)
    r.run([Step("A", _ok()), Step("B", _failing(), retries=1)], *logs)
    actions = [(e["step"], e["action"]) for e in ev.read()]
    assert actions == [("A", "start"), ("A", "succeeded"), ("B", "start"), ("B", "failed"), ("B", "halt")]
    assert all(e["run_id"] == "r1" for e in ev.read())
