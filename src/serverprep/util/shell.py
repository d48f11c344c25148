from __future__ import annotations

"""Shell command execution.

CONTRACT
- Inputs: Command string or argv list, cwd, timeout, optional stdin text
- Outputs (required):
  - CmdResult(returncode, stdout_path, stderr_path)
- Invariants:
  - Writes stdout/stderr to specified files
  - Respects timeout_s (returncode 124 if exceeded)
  - CommandRunner.check() raises TransientStepError on non-zero exit
- Failure:
  - run_cmd returns CmdResult with exit code (does NOT raise on non-zero exit)
"""

import os
import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from ..core.errors import TransientStepError
from .paths import safe_filename
from .redaction import Redactor


def which(cmd: str) -> str | None:
    for p in os.environ.get("PATH", "").split(os.pathsep):
        candidate = Path(p) / cmd
        if candidate.exists() and os.access(candidate, os.X_OK):
            return str(candidate)
    return None


@dataclass(frozen=True)
class CmdResult:
    cmd: str
    returncode: int
    stdout_path: Path
    stderr_path: Path
    elapsed_s: float
    stdout_bytes: int
    stderr_bytes: int

    def read_stdout(self) -> str:
        if not self.stdout_path.exists():
            return ""
        return self.stdout_path.read_text(encoding="utf-8", errors="replace")

    def stderr_tail(self, lines: int = 5) -> str:
        if not self.stderr_path.exists():
            return ""
        text = self.stderr_path.read_text(encoding="utf-8", errors="replace")
        return "\n".join(text.strip().splitlines()[-lines:])


def run_cmd(
    cmd: str | list[str],
    cwd: Path,
    stdout_path: Path | None = None,
    stderr_path: Path | None = None,
    env: dict[str, str] | None = None,
    timeout_s: float | None = None,
    input_text: str | None = None,
) -> CmdResult:
    """Run a shell command and store stdout/stderr to files.

    CONTRACT:
    - Accepts cmd as str (run with shell=True) or list[str] (run with shell=False).
    - Always writes stdout/stderr files (creates temp if not provided).
    - Never raises for non-zero exit; caller inspects return code.
    - Records duration and output size.
    """
    # Handle optional paths by creating temp files if needed
    if stdout_path is None:
        tf_out = tempfile.NamedTemporaryFile(delete=False, prefix="serverprep_stdout_")
        stdout_path = Path(tf_out.name)
        tf_out.close()
    if stderr_path is None:
        tf_err = tempfile.NamedTemporaryFile(delete=False, prefix="serverprep_stderr_")
        stderr_path = Path(tf_err.name)
        tf_err.close()

    stdout_path.parent.mkdir(parents=True, exist_ok=True)
    stderr_path.parent.mkdir(parents=True, exist_ok=True)

    # Determine shell mode: string -> True, list -> False
    use_shell = isinstance(cmd, str)

    start_t = time.time()
    with (
        stdout_path.open("w", encoding="utf-8") as out_f,
        stderr_path.open("w", encoding="utf-8") as err_f,
    ):
        try:
            p = subprocess.run(
                cmd,
                cwd=str(cwd),
                shell=use_shell,
                env=(os.environ | env) if env else None,
                input=input_text,
                stdin=None if input_text is not None else subprocess.DEVNULL,
                stdout=out_f,
                stderr=err_f,
                timeout=timeout_s,
                text=True,
            )
            rc = p.returncode
        except subprocess.TimeoutExpired:
            rc = 124  # Standard timeout exit code
            err_f.write("\nTimeout expired.\n")
        except OSError as e:
            rc = 127
            err_f.write(f"\nException: {e}\n")

    end_t = time.time()

    out_b = stdout_path.stat().st_size if stdout_path.exists() else 0
    err_b = stderr_path.stat().st_size if stderr_path.exists() else 0

    return CmdResult(
        cmd=cmd if isinstance(cmd, str) else " ".join(cmd),
        returncode=rc,
        stdout_path=stdout_path,
        stderr_path=stderr_path,
        elapsed_s=end_t - start_t,
        stdout_bytes=out_b,
        stderr_bytes=err_b,
    )


@dataclass
class CommandRunner:
    """Runs commands for step bodies, one log file pair per invocation.

    In dry-run mode commands are printed (redacted) and reported as successful.
    """

    log_dir: Path
    cwd: Path = field(default_factory=Path.cwd)
    timeout_s: float | None = None
    dry_run: bool = False
    redactor: Redactor = field(default_factory=Redactor)
    _counter: int = field(default=0, init=False, repr=False)

    def _log_paths(self, label: str) -> tuple[Path, Path]:
        self._counter += 1
        stem = f"{self._counter:03d}_{safe_filename(label, default='cmd')}"
        return self.log_dir / f"{stem}.stdout.log", self.log_dir / f"{stem}.stderr.log"

    def run(
        self,
        cmd: str | list[str],
        *,
        label: str = "cmd",
        env: dict[str, str] | None = None,
        input_text: str | None = None,
        timeout_s: float | None = None,
    ) -> CmdResult:
        shown = self.redactor.redact(cmd if isinstance(cmd, str) else " ".join(cmd))
        out_path, err_path = self._log_paths(label)
        if self.dry_run:
            logger.info(f"[dry-run] {shown}")
            return CmdResult(
                cmd=shown, returncode=0, stdout_path=out_path, stderr_path=err_path,
                elapsed_s=0.0, stdout_bytes=0, stderr_bytes=0,
            )
        logger.debug(f"$ {shown}")
        return run_cmd(
            cmd,
            cwd=self.cwd,
            stdout_path=out_path,
            stderr_path=err_path,
            env=env,
            timeout_s=timeout_s if timeout_s is not None else self.timeout_s,
            input_text=input_text,
        )

    def check(self, cmd: str | list[str], **kwargs) -> CmdResult:
        res = self.run(cmd, **kwargs)
        if res.returncode != 0:
            shown = self.redactor.redact(res.cmd)
            tail = self.redactor.redact(res.stderr_tail())
            msg = f"`{shown}` exited with {res.returncode}"
            if tail:
                msg += f": {tail}"
            raise TransientStepError(msg)
        return res

    def write_root_file(self, path: str | Path, content: str, *, append: bool = False, label: str = "tee") -> CmdResult:
        argv = ["sudo", "tee"] + (["-a"] if append else []) + [str(path)]
        return self.check(argv, label=label, input_text=content)


if __name__ == "__main__":
    import argparse
    import sys

    parser = argparse.ArgumentParser(description="Run shell commands safely")
    parser.add_argument("--cmd", required=True, help="Command to run")
    parser.add_argument("--cwd", default=".", help="Working directory")
    parser.add_argument("--timeout", type=int, default=10, help="Timeout in seconds")
    args = parser.parse_args()

    stdout = Path("shell_cli.stdout.log")
    stderr = Path("shell_cli.stderr.log")

    res = run_cmd(
        cmd=args.cmd,
        cwd=Path(args.cwd),
        stdout_path=stdout,
        stderr_path=stderr,
        timeout_s=args.timeout,
    )
    print(f"Exit code: {res.returncode}")
    print(f"Stdout: {stdout.read_text(encoding='utf-8')}")
    print(f"Stderr: {stderr.read_text(encoding='utf-8')}")
    sys.exit(res.returncode)
