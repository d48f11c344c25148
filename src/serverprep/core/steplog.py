"""Durable progress and error logs.

CONTRACT
- Inputs: file paths
- Outputs:
  - StepLog: one completed step name per line (append-only)
  - ErrorLog: one human-readable failure line per failed step
- Invariants:
  - A name is written at most once; reopening a log restores every prior name
  - Each append is flushed and fsynced before returning
  - The Runner never truncates either file (see `forget` for operator repair)
- Failure:
  - Raises StepLogError on any read/write failure
"""

from __future__ import annotations

import datetime
import os
from pathlib import Path

from loguru import logger

from ..util.ids import validate_step_name
from ..util.redaction import Redactor
from .errors import StepLogError


def _append_line(path: Path, line: str) -> None:
    with path.open("ab+") as f:
        f.seek(0, os.SEEK_END)
        prefix = b""
        # Hand-edited files may lack a trailing newline; never merge entries.
        if f.tell() > 0:
            f.seek(-1, os.SEEK_END)
            if f.read(1) != b"\n":
                prefix = b"\n"
        f.write(prefix + line.encode("utf-8") + b"\n")
        f.flush()
        os.fsync(f.fileno())


class StepLog:
    """Ordered set of completed step names backed by a line-delimited file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._names: list[str] | None = None

    def open(self) -> StepLog:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StepLogError(f"Cannot open step log {self.path}: {exc}") from exc
        names: list[str] = []
        for raw in text.splitlines():
            name = raw.rstrip("\r")
            if name and name not in names:
                names.append(name)
        self._names = names
        logger.debug(f"Opened step log {self.path} ({len(names)} completed)")
        return self

    def close(self) -> None:
        self._names = None

    def __enter__(self) -> StepLog:
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _loaded(self) -> list[str]:
        if self._names is None:
            self.open()
        assert self._names is not None
        return self._names

    def is_completed(self, name: str) -> bool:
        return name in self._loaded()

    def mark_completed(self, name: str) -> None:
        validate_step_name(name)
        names = self._loaded()
        if name in names:
            return
        try:
            _append_line(self.path, name)
        except OSError as exc:
            raise StepLogError(f"Cannot record step {name!r} in {self.path}: {exc}") from exc
        names.append(name)

    def completed(self) -> list[str]:
        return list(self._loaded())


class ErrorLog:
    """Append-only failure record. Diagnostics only; never read for control flow."""

    def __init__(self, path: Path, redactor: Redactor | None = None) -> None:
        self.path = Path(path)
        self.redactor = redactor or Redactor()

    def open(self) -> ErrorLog:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)
        except OSError as exc:
            raise StepLogError(f"Cannot open error log {self.path}: {exc}") from exc
        return self

    def close(self) -> None:
        pass

    def __enter__(self) -> ErrorLog:
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def record(self, step: str, message: str | None) -> None:
        ts = datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds")
        text = self.redactor.redact(message or "")
        text = " | ".join(part.strip() for part in text.splitlines() if part.strip())
        text = text or "unknown error"
        try:
            _append_line(self.path, f"{ts} [ERROR] {step}: {text}")
        except OSError as exc:
            raise StepLogError(f"Cannot write error log {self.path}: {exc}") from exc

    def tail(self, n: int = 10) -> list[str]:
        if not self.path.exists():
            return []
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as exc:
            raise StepLogError(f"Cannot read error log {self.path}: {exc}") from exc
        return lines[-n:]


def forget(path: Path, name: str | None = None) -> list[str]:
    """Operator repair: drop `name` (or every entry) from a step log.

    Returns the names that were removed. The Runner never calls this.
    """
    path = Path(path)
    if not path.exists():
        return []
    try:
        lines = [ln.rstrip("\r") for ln in path.read_text(encoding="utf-8").splitlines()]
        entries = [ln for ln in lines if ln]
        if name is None:
            keep: list[str] = []
        else:
            keep = [ln for ln in entries if ln != name]
        removed = [ln for ln in entries if ln not in keep]
        path.write_text("".join(f"{ln}\n" for ln in keep), encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise StepLogError(f"Cannot rewrite step log {path}: {exc}") from exc
    return removed
