import pytest
from pathlib import Path

from serverprep.core.errors import StepLogError
from serverprep.core.steplog import ErrorLog, StepLog, forget


def test_open_creates_missing_log(tmp_path):
    path = tmp_path / "state" / "setup_progress.log"
    with StepLog(path) as log:
        assert path.exists()
        assert not log.is_completed("System Update")
        assert log.completed() == []


def test_mark_completed_is_visible_and_durable(tmp_path):
    path = tmp_path / "progress.log"
    with StepLog(path) as log:
        log.mark_completed("A")
        assert log.is_completed("A")
        # Written before returning, not on close.
        assert path.read_text() == "A\n"

    with StepLog(path) as reopened:
        assert reopened.is_completed("A")
        assert not reopened.is_completed("B")


def test_mark_completed_twice_writes_one_line(tmp_path):
    path = tmp_path / "progress.log"
    with StepLog(path) as log:
        log.mark_completed("A")
        log.mark_completed("A")
        assert log.is_completed("A")
        assert log.completed() == ["A"]
    assert path.read_text().splitlines() == ["A"]


def test_reopen_preserves_order(tmp_path):
    path = tmp_path / "progress.log"
    path.write_text("System Update\nInstall Dependencies\n")
    with StepLog(path) as log:
        log.mark_completed("Configure Firewall")
        assert log.completed() == ["System Update", "Install Dependencies", "Configure Firewall"]


def test_hand_edited_log_without_trailing_newline(tmp_path):
    path = tmp_path / "progress.log"
    path.write_text("A\n\nB")  # blank line and no final newline
    with StepLog(path) as log:
        assert log.completed() == ["A", "B"]
        log.mark_completed("C")
    assert path.read_text() == "A\n\nB\nC\n"


def test_names_with_newlines_rejected(tmp_path):
    with StepLog(tmp_path / "progress.log") as log:
        with pytest.raises(ValueError):
            log.mark_completed("bad\nname")


def test_unreadable_log_raises_steplog_error(tmp_path):
    path = tmp_path / "progress.log"
    path.mkdir()  # a directory cannot be read as a log
    with pytest.raises(StepLogError):
        StepLog(path).open()


def test_undecodable_log_raises_steplog_error(tmp_path):
    path = tmp_path / "progress.log"
    path.write_bytes(b"A\n\xff\n")
    with pytest.raises(StepLogError):
        StepLog(path).open()


def test_steplog_error_is_oserror():
    assert issubclass(StepLogError, OSError)


def test_error_log_record_single_line(tmp_path):
    path = tmp_path / "errors.log"
    with ErrorLog(path) as elog:
        elog.record("C", "first line\nsecond line")
    lines = path.read_text().splitlines()
    assert len(lines) == 1
    assert "[ERROR] C: first line | second line" in lines[0]


def test_error_log_redacts_secrets(tmp_path):
    path = tmp_path / "errors.log"
    with ErrorLog(path) as elog:
        elog.record("Create Database", "CREATE USER \"app\" WITH ENCRYPTED PASSWORD 'hunter2';")
    text = path.read_text()
    assert "hunter2" not in text
    assert "[REDACTED]" in text


def test_error_log_tail(tmp_path):
    elog = ErrorLog(tmp_path / "errors.log").open()
    for i in range(5):
        elog.record(f"S{i}", "boom")
    tail = elog.tail(2)
    assert len(tail) == 2
    assert "S4" in tail[-1]


def test_forget_single_and_all(tmp_path):
    path = tmp_path / "progress.log"
    path.write_text("A\nB\nC\n")
    assert forget(path, "B") == ["B"]
    assert path.read_text() == "A\nC\n"
    assert forget(path, "missing") == []
    assert forget(path) == ["A", "C"]
    assert path.read_text() == ""


def test_forget_missing_file(tmp_path):
    assert forget(tmp_path / "nope.log", "A") == []


def test_error_log_tail_undecodable(tmp_path):
    path = tmp_path / "errors.log"
    path.write_bytes(b"\xfe\xff broken\n")
    with pytest.raises(StepLogError):
        ErrorLog(path).tail()
