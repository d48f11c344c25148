"""Scheduled database backups to an S3-compatible store via rclone.

CONTRACT
- Inputs: BackupAnswers, CommandRunner, home directory
- Outputs (required):
  - ~/.config/rclone/rclone.conf (0600)
  - ~/rclone_backup.sh (0700)
  - crontab entry running the script `frequency` times per day
- Invariants:
  - Re-running replaces this script's crontab entries instead of adding more
  - Backups are spread evenly over the day, at minute 0
- Failure:
  - Raises TransientStepError when a command fails; ValueError on bad frequency
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from string import Template

from loguru import logger

from ..util.paths import read_template
from ..util.shell import CommandRunner
from .answers import BackupAnswers


def cron_hours(frequency: int) -> list[int]:
    if not 1 <= frequency <= 24:
        raise ValueError(f"Backup frequency must be between 1 and 24 per day (got {frequency})")
    return [i * 24 // frequency for i in range(frequency)]


def cron_line(frequency: int, script: Path) -> str:
    hours = ",".join(str(h) for h in cron_hours(frequency))
    return f"0 {hours} * * * /bin/bash {script}"


def merge_crontab(existing: str, script: Path, line: str) -> str:
    kept = [ln for ln in existing.splitlines() if ln.strip() and str(script) not in ln]
    return "\n".join(kept + [line]) + "\n"


def render_rclone_conf(answers: BackupAnswers) -> str:
    return Template(read_template("rclone.conf")).substitute(
        remote_name=answers.remote_name,
        access_key_id=answers.access_key_id,
        secret_access_key=answers.secret_access_key,
        endpoint=answers.endpoint,
    )


def render_backup_script(answers: BackupAnswers) -> str:
    folder = answers.folder.strip("/")
    s3_path = f"{answers.remote_name}:{answers.bucket}" + (f"/{folder}" if folder else "")
    values = {
        "backup_dir": answers.backup_dir,
        "log_file": str(Path(answers.backup_dir) / "rclone_backup.log"),
        "db_name": answers.db_name,
        "db_user": answers.db_user,
        "db_host": answers.db_host,
        "db_port": str(answers.db_port),
        "db_password": answers.db_password,
        "s3_path": s3_path,
        "gpg_recipient": answers.gpg_recipient or "",
    }
    return Template(read_template("rclone_backup.sh")).substitute(
        {k: shlex.quote(v) for k, v in values.items()}
    )


@dataclass
class BackupSetup:
    answers: BackupAnswers
    sh: CommandRunner
    home: Path

    @property
    def config_path(self) -> Path:
        return self.home / ".config" / "rclone" / "rclone.conf"

    @property
    def script_path(self) -> Path:
        return self.home / "rclone_backup.sh"

    def _write_private(self, path: Path, text: str, mode: int) -> None:
        if self.sh.dry_run:
            logger.info(f"[dry-run] write {path} ({mode:o})")
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        # O_CREAT mode does not apply to an existing file.
        os.chmod(path, mode)

    def install_crontab(self) -> None:
        line = cron_line(self.answers.frequency, self.script_path)
        current = self.sh.run(["crontab", "-l"], label="crontab_list")
        # `crontab -l` exits non-zero when the user has no crontab yet.
        existing = current.read_stdout() if current.returncode == 0 else ""
        self.sh.check(["crontab", "-"], label="crontab_install", input_text=merge_crontab(existing, self.script_path, line))

    def __call__(self) -> None:
        self.sh.check("sudo apt install -y rclone", label="install_rclone")
        self._write_private(self.config_path, render_rclone_conf(self.answers), 0o600)
        self._write_private(self.script_path, render_backup_script(self.answers), 0o700)
        self.install_crontab()
        logger.info(
            f"Automatic database backup configured: {self.answers.frequency} per day "
            f"to {self.answers.remote_name}:{self.answers.bucket}"
        )
